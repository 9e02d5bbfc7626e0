# -*- coding: utf-8 -*-
# Crunchyroll
# Copyright (C) 2023 smirgol
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.

import logging
import re
from typing import TYPE_CHECKING, Iterator, List, Optional, Sequence, Tuple

from . import utils
from .api import fetch_raw, get_json_from_response
from .cache import ChildCache
from .model import ErrorKind, NotFoundError, RequestError

if TYPE_CHECKING:
    from .api import API

BEST = "best"
WORST = "worst"

STREAM_INF_PREFIX = "#EXT-X-STREAM-INF:"
ATTRIBUTE_PATTERN = re.compile(r'([A-Z0-9-]+)=("[^"]*"|[^,]*)')
RESOLUTION_PATTERN = re.compile(r"([0-9]+)x([0-9]+)")


class Subtitle:
    def __init__(self, locale: str, url: str = "", format: str = "") -> None:
        self.locale = locale
        self.url = url
        self.format = format

    def fetch(self, api: "API") -> str:
        """ Download the subtitle file """
        return fetch_raw(api.http, self.url, timeout=api.config.timeout).text

    def __repr__(self) -> str:
        return f"Subtitle(locale={self.locale!r}, format={self.format!r})"


class Format:
    """ One rendition of a stream """

    def __init__(
            self,
            resolution: str,
            url: str = "",
            bandwidth: int = 0,
            frame_rate: float = 0.0,
            codecs: str = "",
            audio_locale: str = "",
            hardsub_locale: str = ""
    ) -> None:
        # "WIDTHxHEIGHT", kept as sent by the service
        self.resolution = resolution
        self.url = url
        self.bandwidth = bandwidth
        self.frame_rate = frame_rate
        self.codecs = codecs
        self.audio_locale = audio_locale
        self.hardsub_locale = hardsub_locale

    def __repr__(self) -> str:
        return f"Format(resolution={self.resolution!r}, bandwidth={self.bandwidth})"


class Stream:
    """ A stream variant: one audio locale with one (or no) hardsub locale.

    Its formats are loaded from the hls master playlist on first access.
    """

    def __init__(
            self,
            api: Optional["API"],
            audio_locale: str,
            hardsub_locale: str = "",
            subtitles: Optional[List[Subtitle]] = None,
            url: str = "",
            media_id: str = "",
            formats: Optional[List[Format]] = None
    ) -> None:
        self._api = api
        self.audio_locale = audio_locale
        self.hardsub_locale = hardsub_locale
        self.subtitles: List[Subtitle] = subtitles or []
        self.url = url
        self.media_id = media_id
        self._formats: ChildCache[List[Format]] = ChildCache(formats)

    @classmethod
    def from_video_streams(cls, api: "API", stream_id: str) -> List["Stream"]:
        """ All hls stream variants of a video """
        r = api.make_request(method="GET", url=api.cms_url(f"videos/{stream_id}/streams"), params=api.cms_params())
        r_json = get_json_from_response(r, "streams")

        audio_locale = r_json.get("audio_locale") or ""
        subtitles_json = r_json.get("subtitles")
        subtitles = [
            Subtitle(entry.get("locale") or locale, entry.get("url") or "", entry.get("format") or "")
            for locale, entry in (subtitles_json.items() if isinstance(subtitles_json, dict) else ())
            if isinstance(entry, dict)
        ]

        streams_json = r_json.get("streams")
        variants = streams_json.get("adaptive_hls") if isinstance(streams_json, dict) else None
        if not isinstance(variants, dict):
            raise RequestError(
                "failed to parse 'streams' response: missing 'adaptive_hls' streams", r, ErrorKind.MALFORMED_BODY
            )

        return [
            cls(
                api,
                audio_locale,
                hardsub_locale=entry.get("hardsub_locale") or "",
                subtitles=list(subtitles),
                url=entry.get("url") or "",
                media_id=r_json.get("media_id") or ""
            )
            for entry in variants.values()
            if isinstance(entry, dict)
        ]

    def formats(self) -> List[Format]:
        return self._formats.get(self._caching, self._load_formats)

    def _caching(self) -> bool:
        return self._api is None or self._api.caching

    def _load_formats(self) -> List[Format]:
        if self._api is None:
            raise NotFoundError("stream is not bound to a session, formats can not be loaded")
        r = fetch_raw(self._api.http, self.url, timeout=self._api.config.timeout)
        return parse_master_playlist(r.text, self.audio_locale, self.hardsub_locale)

    def __repr__(self) -> str:
        return f"Stream(audio_locale={self.audio_locale!r}, hardsub_locale={self.hardsub_locale!r})"


def parse_master_playlist(playlist: str, audio_locale: str = "", hardsub_locale: str = "") -> List[Format]:
    """ Formats listed in an hls master playlist, in playlist order """
    lines = [line.strip() for line in playlist.splitlines()]
    formats = []
    for index, line in enumerate(lines):
        if not line.startswith(STREAM_INF_PREFIX):
            continue

        attributes = {
            key: value.strip('"')
            for key, value in ATTRIBUTE_PATTERN.findall(line[len(STREAM_INF_PREFIX):])
        }
        url = next((uri for uri in lines[index + 1:] if uri and not uri.startswith("#")), "")

        try:
            bandwidth = int(attributes.get("BANDWIDTH", 0))
        except ValueError:
            bandwidth = 0
        try:
            frame_rate = float(attributes.get("FRAME-RATE", 0))
        except ValueError:
            frame_rate = 0.0

        formats.append(Format(
            resolution=attributes.get("RESOLUTION", ""),
            url=url,
            bandwidth=bandwidth,
            frame_rate=frame_rate,
            codecs=attributes.get("CODECS", ""),
            audio_locale=audio_locale,
            hardsub_locale=hardsub_locale
        ))

    return formats


def iter_matching_streams(streams: Sequence[Stream], subtitle: str, hardsub: bool) -> Iterator[Stream]:
    """ Streams matching the requested subtitle, in the given order.

    With hardsub the subtitle must be burned in, otherwise it must be one of the soft subtitles.
    Requesting no subtitle ("") matches streams without hardsub either way.
    """
    for stream in streams:
        if (hardsub and stream.hardsub_locale == subtitle) or (stream.hardsub_locale == "" and subtitle == ""):
            yield stream
        elif not hardsub and any(track.locale == subtitle for track in stream.subtitles):
            yield stream


def parse_resolution(resolution: str) -> Optional[Tuple[int, int]]:
    """ "1920x1080" -> (1920, 1080), None if malformed """
    match = RESOLUTION_PATTERN.fullmatch(resolution)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def select_format(formats: Sequence[Format], resolution: str) -> Format:
    """ The format with the given resolution, or the best / worst one.

    Best and worst are ranked by width + height, ties keep the format listed first.
    Any other resolution has to match exactly.
    """
    ranked: Optional[Format] = None
    ranked_size = 0
    for fmt in formats:
        if resolution in (BEST, WORST):
            size = parse_resolution(fmt.resolution)
            if size is None:
                continue
            width, height = size
            if ranked is None \
                    or resolution == WORST and width + height < ranked_size \
                    or resolution == BEST and width + height > ranked_size:
                ranked = fmt
                ranked_size = width + height
        elif fmt.resolution == resolution:
            return fmt

    if ranked is not None:
        return ranked

    raise NotFoundError("no matching resolution found")


def get_format(streams: Sequence[Stream], resolution: str, subtitle: str, hardsub: bool) -> Format:
    """ Pick the stream matching the subtitle request, then the matching format of it """
    stream = next(iter_matching_streams(streams, subtitle, hardsub), None)
    if stream is None:
        raise NotFoundError("no matching stream found")

    utils.crunchy_log(
        "Selected stream", logging.DEBUG, audio_locale=stream.audio_locale, hardsub_locale=stream.hardsub_locale
    )
    return select_format(stream.formats(), resolution)
