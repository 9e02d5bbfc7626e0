"""Tests for stream variants, playlist parsing and format selection."""

from __future__ import annotations

from typing import List

import pytest
import responses
from responses import matchers

from crunchyroll_api.model import ErrorKind, NotFoundError, RequestError
from crunchyroll_api.videostream import (
    Format,
    Stream,
    Subtitle,
    get_format,
    iter_matching_streams,
    parse_master_playlist,
    parse_resolution,
    select_format,
)

from .conftest import CMS_PARAMS, cms_url

_PLAYLIST_URL = "https://pl.crunchyroll.com/evs/master.m3u8"

_MASTER_PLAYLIST = """#EXTM3U
#EXT-X-STREAM-INF:PROGRAM-ID=1,BANDWIDTH=4112345,RESOLUTION=1920x1080,FRAME-RATE=23.974,CODECS="avc1.640028,mp4a.40.2"
https://pl.crunchyroll.com/evs/1080.m3u8
#EXT-X-STREAM-INF:PROGRAM-ID=1,BANDWIDTH=1234567,RESOLUTION=1280x720,FRAME-RATE=23.974,CODECS="avc1.4d401f,mp4a.40.2"
https://pl.crunchyroll.com/evs/720.m3u8
#EXT-X-STREAM-INF:PROGRAM-ID=1,BANDWIDTH=456789,RESOLUTION=640x360,FRAME-RATE=23.974,CODECS="avc1.42c015,mp4a.40.2"
https://pl.crunchyroll.com/evs/360.m3u8
"""

_STREAMS = {
    "media_id": "MEDIA1",
    "audio_locale": "ja-JP",
    "subtitles": {
        "en-US": {"locale": "en-US", "url": "https://sub.crunchyroll.com/en.ass", "format": "ass"},
        "de-DE": {"locale": "de-DE", "url": "https://sub.crunchyroll.com/de.ass", "format": "ass"},
    },
    "streams": {
        "adaptive_hls": {
            "": {"hardsub_locale": "", "url": _PLAYLIST_URL},
            "en-US": {"hardsub_locale": "en-US", "url": "https://pl.crunchyroll.com/evs/en-US.m3u8"},
        },
        "drm_adaptive_dash": {},
    },
}


def _formats(*resolutions: str) -> List[Format]:
    return [Format(resolution, url=f"https://pl/{index}.m3u8") for index, resolution in enumerate(resolutions)]


def _stream(hardsub: str = "", subtitles: tuple = (), formats: List[Format] = None) -> Stream:
    return Stream(
        None,
        "ja-JP",
        hardsub_locale=hardsub,
        subtitles=[Subtitle(locale) for locale in subtitles],
        formats=formats if formats is not None else _formats("1920x1080", "1280x720"),
    )


# ---------------------------------------------------------------------------
# select_format
# ---------------------------------------------------------------------------


class TestSelectFormat:
    def test_best_and_worst(self) -> None:
        formats = _formats("1280x720", "1920x1080", "640x360")
        assert select_format(formats, "best").resolution == "1920x1080"
        assert select_format(formats, "worst").resolution == "640x360"

    def test_exact_match(self) -> None:
        formats = _formats("1920x1080", "1280x720", "640x360")
        assert select_format(formats, "1280x720") is formats[1]

    def test_exact_match_is_verbatim(self) -> None:
        with pytest.raises(NotFoundError):
            select_format(_formats("1280x720"), "1280X720")
        with pytest.raises(NotFoundError):
            select_format(_formats("1280x720"), "01280x720")

    def test_ties_keep_the_first_format(self) -> None:
        formats = _formats("1280x720", "1000x1000", "640x360", "500x500")
        assert select_format(formats, "best") is formats[0]
        assert select_format(formats, "worst") is formats[2]

    def test_malformed_resolutions_are_skipped(self) -> None:
        formats = [Format(""), Format("auto"), Format("axb"), *_formats("1280x720", "640x360")]
        assert select_format(formats, "best").resolution == "1280x720"
        assert select_format(formats, "worst").resolution == "640x360"

    @pytest.mark.parametrize("resolution", ["best", "worst", "1920x1080"])
    def test_no_formats(self, resolution: str) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            select_format([], resolution)
        assert exc_info.value.message == "no matching resolution found"
        assert exc_info.value.kind is ErrorKind.NOT_FOUND

    def test_only_malformed_formats(self) -> None:
        with pytest.raises(NotFoundError):
            select_format([Format("auto"), Format("")], "best")

    def test_selection_is_idempotent(self) -> None:
        formats = _formats("640x360", "1920x1080", "1280x720")
        order = list(formats)
        first = select_format(formats, "best")
        assert select_format(formats, "best") is first
        assert formats == order

    def test_parse_resolution(self) -> None:
        assert parse_resolution("1920x1080") == (1920, 1080)
        assert parse_resolution("1920") is None
        assert parse_resolution("x1080") is None
        assert parse_resolution("") is None
        assert parse_resolution(" 1_920 x 1_080 ") is None
        assert parse_resolution("1920x1080 ") is None
        assert parse_resolution("+1920x1080") is None

    def test_loosely_written_resolution_is_skipped(self) -> None:
        formats = [*_formats("640x360"), Format(" 1_920 x 1_080 ")]
        assert select_format(formats, "best").resolution == "640x360"
        assert select_format(formats, "worst").resolution == "640x360"


# ---------------------------------------------------------------------------
# Stream matching
# ---------------------------------------------------------------------------


class TestStreamMatching:
    def test_hardsub_picks_burned_in_locale(self) -> None:
        streams = [_stream(""), _stream("de-DE"), _stream("en-US")]
        assert list(iter_matching_streams(streams, "en-US", True)) == [streams[2]]

    def test_no_subtitle_matches_clean_stream_with_hardsub(self) -> None:
        streams = [_stream("de-DE"), _stream("")]
        assert list(iter_matching_streams(streams, "", True)) == [streams[1]]

    def test_no_subtitle_matches_clean_stream_without_hardsub(self) -> None:
        streams = [_stream("de-DE", subtitles=("de-DE",)), _stream("", subtitles=("en-US",))]
        assert list(iter_matching_streams(streams, "", False)) == [streams[1]]

    def test_softsub_needs_a_subtitle_track(self) -> None:
        streams = [_stream("", subtitles=("de-DE",)), _stream("en-US"), _stream("", subtitles=("en-US", "de-DE"))]
        assert list(iter_matching_streams(streams, "en-US", False)) == [streams[2]]

    def test_softsub_does_not_use_hardsub(self) -> None:
        streams = [_stream("en-US")]
        assert list(iter_matching_streams(streams, "en-US", False)) == []

    def test_get_format_of_first_matching_stream(self) -> None:
        streams = [
            _stream("", formats=_formats("1280x720")),
            _stream("", formats=_formats("1920x1080")),
        ]
        assert get_format(streams, "best", "", False).resolution == "1280x720"

    def test_get_format_only_loads_selected_stream(self) -> None:
        # a stream without formats and without session raises once its formats are loaded
        unloaded = Stream(None, "ja-JP", hardsub_locale="de-DE")
        streams = [unloaded, _stream("en-US", formats=_formats("640x360"))]
        assert get_format(streams, "worst", "en-US", True).resolution == "640x360"
        with pytest.raises(NotFoundError):
            unloaded.formats()

    def test_no_matching_stream(self) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            get_format([_stream("de-DE")], "best", "fr-FR", True)
        assert exc_info.value.message == "no matching stream found"

    def test_matching_stream_without_resolution(self) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            get_format([_stream("")], "3840x2160", "", True)
        assert exc_info.value.message == "no matching resolution found"


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------


class TestMasterPlaylist:
    def test_parse(self) -> None:
        formats = parse_master_playlist(_MASTER_PLAYLIST, "ja-JP", "en-US")
        assert [f.resolution for f in formats] == ["1920x1080", "1280x720", "640x360"]
        first = formats[0]
        assert first.url == "https://pl.crunchyroll.com/evs/1080.m3u8"
        assert first.bandwidth == 4112345
        assert first.frame_rate == pytest.approx(23.974)
        assert first.codecs == "avc1.640028,mp4a.40.2"
        assert first.audio_locale == "ja-JP"
        assert first.hardsub_locale == "en-US"

    def test_missing_attributes(self) -> None:
        playlist = "#EXTM3U\n#EXT-X-STREAM-INF:BANDWIDTH=abc\n\nvariant.m3u8\n"
        formats = parse_master_playlist(playlist)
        assert len(formats) == 1
        assert formats[0].resolution == ""
        assert formats[0].bandwidth == 0
        assert formats[0].url == "variant.m3u8"

    def test_empty_playlist(self) -> None:
        assert parse_master_playlist("") == []
        assert parse_master_playlist("#EXTM3U\n") == []


# ---------------------------------------------------------------------------
# Streams bound to a session
# ---------------------------------------------------------------------------


class TestSessionStreams:
    def _add_streams(self, mocked: responses.RequestsMock, body: dict = _STREAMS) -> None:
        mocked.add(
            responses.GET, cms_url("videos/VID1/streams"), json=body,
            match=[matchers.query_param_matcher(CMS_PARAMS)],
        )

    def test_from_video_streams(self, mocked, api) -> None:
        self._add_streams(mocked)
        streams = Stream.from_video_streams(api, "VID1")

        assert [s.hardsub_locale for s in streams] == ["", "en-US"]
        assert all(s.audio_locale == "ja-JP" for s in streams)
        assert streams[0].url == _PLAYLIST_URL
        assert streams[0].media_id == "MEDIA1"
        assert sorted(sub.locale for sub in streams[0].subtitles) == ["de-DE", "en-US"]

    def test_missing_adaptive_hls(self, mocked, api) -> None:
        self._add_streams(mocked, {"audio_locale": "ja-JP", "streams": {}})
        with pytest.raises(RequestError) as exc_info:
            Stream.from_video_streams(api, "VID1")
        assert exc_info.value.kind is ErrorKind.MALFORMED_BODY

    @pytest.mark.parametrize("streams", ["adaptive_hls", ["adaptive_hls"], 1])
    def test_streams_of_wrong_type(self, mocked, api, streams: object) -> None:
        self._add_streams(mocked, dict(_STREAMS, streams=streams))
        with pytest.raises(RequestError) as exc_info:
            Stream.from_video_streams(api, "VID1")
        assert exc_info.value.kind is ErrorKind.MALFORMED_BODY

    def test_subtitles_of_wrong_type_are_ignored(self, mocked, api) -> None:
        self._add_streams(mocked, dict(_STREAMS, subtitles=[{"locale": "en-US"}]))
        streams = Stream.from_video_streams(api, "VID1")
        assert len(streams) == 2
        assert all(s.subtitles == [] for s in streams)

    def test_variants_do_not_share_subtitles(self, mocked, api) -> None:
        self._add_streams(mocked)
        first, second = Stream.from_video_streams(api, "VID1")
        assert first.subtitles == second.subtitles
        assert first.subtitles is not second.subtitles

        first.subtitles.append(Subtitle("fr-FR", "https://sub.crunchyroll.com/fr.ass", "ass"))
        first.subtitles.sort(key=lambda sub: sub.locale)
        assert sorted(sub.locale for sub in second.subtitles) == ["de-DE", "en-US"]
        assert [sub.locale for sub in second.subtitles] == ["en-US", "de-DE"]

    def test_formats_are_loaded_once(self, mocked, api) -> None:
        self._add_streams(mocked)
        mocked.add(responses.GET, _PLAYLIST_URL, body=_MASTER_PLAYLIST)

        stream = Stream.from_video_streams(api, "VID1")[0]
        assert get_format([stream], "best", "", True).url == "https://pl.crunchyroll.com/evs/1080.m3u8"
        assert stream.formats()[2].resolution == "640x360"
        assert len([c for c in mocked.calls if c.request.url == _PLAYLIST_URL]) == 1

    def test_formats_reloaded_without_caching(self, mocked, api) -> None:
        api.caching = False
        mocked.add(responses.GET, _PLAYLIST_URL, body=_MASTER_PLAYLIST)

        stream = Stream(api, "ja-JP", url=_PLAYLIST_URL)
        stream.formats()
        stream.formats()
        assert len(mocked.calls) == 2

    def test_playlist_http_error(self, mocked, api) -> None:
        mocked.add(responses.GET, _PLAYLIST_URL, status=403, body="denied")
        with pytest.raises(RequestError) as exc_info:
            Stream(api, "ja-JP", url=_PLAYLIST_URL).formats()
        assert exc_info.value.status_code == 403
        assert exc_info.value.kind is ErrorKind.HTTP_STATUS

    def test_subtitle_fetch(self, mocked, api) -> None:
        mocked.add(responses.GET, "https://sub.crunchyroll.com/en.ass", body="[Script Info]\nTitle: Ünïcode\n")
        subtitle = Subtitle("en-US", "https://sub.crunchyroll.com/en.ass", "ass")
        assert subtitle.fetch(api).startswith("[Script Info]\nTitle: Ünïcode")
