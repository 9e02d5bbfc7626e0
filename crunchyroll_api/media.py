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

import re
from typing import Dict, List, Optional, Tuple

from requests import Response

from .api import API, get_items_from_response, get_json_from_response, require
from .cache import ChildCache
from .model import ErrorKind, NotFoundError, RequestError
from .videostream import Format, Stream, get_format

STREAM_HREF_PATTERN = re.compile(r"^/cms/v2/\S+videos/(\w+)/streams$", re.MULTILINE)


def stream_id_from_links(data: Dict) -> str:
    """ Extract the video id from the streams link of a cms object """
    links = data.get("__links__")
    streams = links.get("streams") if isinstance(links, dict) else None
    href = streams.get("href") if isinstance(streams, dict) else None
    if not isinstance(href, str):
        return ""
    if match := STREAM_HREF_PATTERN.search(href):
        return match.group(1)
    return ""


class Object:
    """ Base of all cms objects, bound to the session that fetched them """

    def __init__(self, api: API, data: Dict) -> None:
        self._api = api
        self.id: str = data.get("id") or ""
        self.title: str = data.get("title") or ""
        self.slug_title: str = data.get("slug_title") or ""
        self.description: str = data.get("description") or ""

    def _caching(self) -> bool:
        return self._api.caching

    def _fetch(self, path: str, context: str, **params) -> Tuple[Response, List[Dict]]:
        r = self._api.make_request(method="GET", url=self._api.cms_url(path), params=self._api.cms_params(**params))
        return r, get_items_from_response(r, context)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, title={self.title!r})"


class PlayableObject(Object):
    """ Episodes and movies, objects which have streams """

    def __init__(self, api: API, data: Dict) -> None:
        super().__init__(api, data)
        self.duration_ms: int = data.get("duration_ms") or 0
        self.is_premium_only: bool = bool(data.get("is_premium_only"))
        self.playback: str = data.get("playback") or ""
        self.stream_id: str = stream_id_from_links(data) if self.playback else ""
        self._streams: ChildCache[List[Stream]] = ChildCache()

    def available(self) -> bool:
        """ If streams of this object can be played with the session's account """
        return self._api.account_data.premium or not self.is_premium_only

    def streams(self) -> List[Stream]:
        return self._streams.get(self._caching, self._load_streams)

    def _load_streams(self) -> List[Stream]:
        if not self.stream_id:
            raise NotFoundError(f"{self.id} has no playable streams")
        return Stream.from_video_streams(self._api, self.stream_id)

    def audio_locale(self) -> str:
        """ Audio locale of the first stream.

        Fails if no streams are available, check available() first to avoid misleading errors.
        """
        streams = self.streams()
        if not streams:
            raise NotFoundError(f"{self.id} has no streams")
        return streams[0].audio_locale

    def get_format(self, resolution: str, subtitle: str, hardsub: bool) -> Format:
        """ The format matching resolution ("1920x1080", "best" or "worst") and subtitle locale """
        return get_format(self.streams(), resolution, subtitle, hardsub)


class Episode(PlayableObject):
    def __init__(self, api: API, data: Dict) -> None:
        super().__init__(api, data)
        self.channel_id: str = data.get("channel_id") or ""
        self.series_id: str = data.get("series_id") or ""
        self.series_title: str = data.get("series_title") or ""
        self.season_id: str = data.get("season_id") or ""
        self.season_title: str = data.get("season_title") or ""
        self.season_number: int = data.get("season_number") or 0
        self.episode: str = data.get("episode") or ""
        self.episode_number: int = data.get("episode_number") or 0
        self.sequence_number: float = data.get("sequence_number") or 0.0
        self.next_episode_id: str = data.get("next_episode_id") or ""
        self.is_subbed: bool = bool(data.get("is_subbed"))
        self.is_dubbed: bool = bool(data.get("is_dubbed"))
        self.is_mature: bool = bool(data.get("is_mature"))
        self.maturity_ratings: List[str] = data.get("maturity_ratings") or []
        self.subtitle_locales: List[str] = data.get("subtitle_locales") or []
        self.episode_air_date: Optional[str] = data.get("episode_air_date")

    @classmethod
    def from_id(cls, api: API, episode_id: str) -> "Episode":
        r = api.make_request(method="GET", url=api.cms_url(f"episodes/{episode_id}"), params=api.cms_params())
        data = {"id": episode_id}
        data.update(_object_from_response(r, "episode"))
        return cls(api, data)


class MovieListing(PlayableObject):
    """ A single video of a movie """

    def __init__(self, api: API, data: Dict) -> None:
        super().__init__(api, data)
        self.movie_listing_id: str = data.get("movie_listing_id") or ""
        self.is_mature: bool = bool(data.get("is_mature"))


class Season(Object):
    def __init__(self, api: API, data: Dict) -> None:
        super().__init__(api, data)
        self.series_id: str = data.get("series_id") or ""
        self.season_number: int = data.get("season_number") or 0
        self.is_subbed: bool = bool(data.get("is_subbed"))
        self.is_dubbed: bool = bool(data.get("is_dubbed"))
        self.is_mature: bool = bool(data.get("is_mature"))
        self.audio_locales: List[str] = data.get("audio_locales") or []
        self._episodes: ChildCache[List[Episode]] = ChildCache()

    @classmethod
    def from_id(cls, api: API, season_id: str) -> "Season":
        r = api.make_request(method="GET", url=api.cms_url(f"seasons/{season_id}"), params=api.cms_params())
        data = {"id": season_id}
        data.update(_object_from_response(r, "season"))
        return cls(api, data)

    def episodes(self) -> List[Episode]:
        return self._episodes.get(self._caching, self._load_episodes)

    def _load_episodes(self) -> List[Episode]:
        r, items = self._fetch("episodes", "episodes", season_id=self.id)
        return [Episode(self._api, _with_id(item, r, "episodes")) for item in items]


class Series(Object):
    def __init__(self, api: API, data: Dict) -> None:
        super().__init__(api, data)
        self.episode_count: int = data.get("episode_count") or 0
        self.season_count: int = data.get("season_count") or 0
        self.is_simulcast: bool = bool(data.get("is_simulcast"))
        self.is_subbed: bool = bool(data.get("is_subbed"))
        self.is_dubbed: bool = bool(data.get("is_dubbed"))
        self.is_mature: bool = bool(data.get("is_mature"))
        self.maturity_ratings: List[str] = data.get("maturity_ratings") or []
        self.availability_notes: str = data.get("availability_notes") or ""
        self._seasons: ChildCache[List[Season]] = ChildCache()

    @classmethod
    def from_id(cls, api: API, series_id: str) -> "Series":
        r = api.make_request(method="GET", url=api.cms_url(f"series/{series_id}"), params=api.cms_params())
        data = {"id": series_id}
        data.update(_object_from_response(r, "series"))
        return cls(api, data)

    def seasons(self) -> List[Season]:
        return self._seasons.get(self._caching, self._load_seasons)

    def _load_seasons(self) -> List[Season]:
        r, items = self._fetch("seasons", "seasons", series_id=self.id)
        return [Season(self._api, _with_id(item, r, "seasons")) for item in items]


class Movie(Object):
    """ A movie listing, the container of one or more movie videos """

    def __init__(self, api: API, data: Dict) -> None:
        super().__init__(api, data)
        self.is_subbed: bool = bool(data.get("is_subbed"))
        self.is_dubbed: bool = bool(data.get("is_dubbed"))
        self.is_mature: bool = bool(data.get("is_mature"))
        self.is_premium_only: bool = bool(data.get("is_premium_only"))
        self.movie_release_year: int = data.get("movie_release_year") or 0
        self._movie_listing: ChildCache[List[MovieListing]] = ChildCache()

    @classmethod
    def from_id(cls, api: API, movie_id: str) -> "Movie":
        r = api.make_request(method="GET", url=api.cms_url(f"movie_listings/{movie_id}"), params=api.cms_params())
        data = {"id": movie_id}
        data.update(_object_from_response(r, "movie"))
        return cls(api, data)

    def movie_listing(self) -> List[MovieListing]:
        return self._movie_listing.get(self._caching, self._load_movie_listing)

    def _load_movie_listing(self) -> List[MovieListing]:
        r, items = self._fetch("movies", "movies", movie_listing_id=self.id)
        return [MovieListing(self._api, _with_id(item, r, "movies")) for item in items]


def _object_from_response(r: Response, context: str) -> Dict:
    # single objects come either plain or wrapped in an items list
    r_json = get_json_from_response(r, context)
    if isinstance(r_json.get("items"), list) and "id" not in r_json:
        items = r_json["items"]
        if not items or not isinstance(items[0], dict):
            raise RequestError(
                f"failed to parse '{context}' response: missing object", r, ErrorKind.MALFORMED_BODY
            )
        r_json = items[0]
    return _with_id(r_json, r, context)


def _with_id(item: Dict, r: Response, context: str) -> Dict:
    require(item, "id", r, context)
    return item
