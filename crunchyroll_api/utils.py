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
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional

import structlog

log = structlog.get_logger("crunchyroll_api")

LOCALE_LANGUAGES = {
    "ja-JP": "Japanese",
    "en-US": "English (US)",
    "es-419": "Spanish (Latin America)",
    "es-LA": "Spanish (Latin America)",
    "es-ES": "Spanish (Spain)",
    "fr-FR": "French",
    "pt-PT": "Portuguese (Europe)",
    "pt-BR": "Portuguese (Brazil)",
    "it-IT": "Italian",
    "de-DE": "German",
    "ru-RU": "Russian",
    "ar-SA": "Arabic",
    "ar-ME": "Arabic",
    "zh-CN": "Chinese",
    "hi-IN": "Hindi",
}


def crunchy_log(message: str, loglevel: int = logging.INFO, **fields: Any) -> None:
    log.log(loglevel, message, **fields)


def log_error_with_trace(message: str) -> None:
    """ Log an error together with the exception currently being handled """
    log.error(message, exc_info=True)


def configure_logging(level: str = "INFO", fmt: str = "console") -> None:
    """ Set up structlog for applications using this package.

    :param level: minimum level name, e.g. "DEBUG"
    :param fmt: "console" for human readable output, "json" for one json object per line
    """
    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if fmt == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper(), logging.INFO)),
        cache_logger_on_first_use=False,
    )


def locale_language(locale: str) -> str:
    """ Human readable language of a locale, empty if the locale is unknown """
    return LOCALE_LANGUAGES.get(locale, "")


def _resolution_sum(resolution: str) -> int:
    width, _, height = resolution.partition("x")
    try:
        return int(width) + int(height)
    except ValueError:
        return 0


def sort_episodes_by_season(episodes: List) -> List[List]:
    """ Group episodes by series and season, seasons ascending, episodes by number.

    The same episode with different audio locales lands in the same group.
    """
    grouped: Dict[str, Dict[int, List]] = {}
    for episode in episodes:
        grouped.setdefault(episode.series_id, {}).setdefault(episode.season_number, []).append(episode)

    result = []
    for seasons in grouped.values():
        for season_number in sorted(seasons):
            if seasons[season_number]:
                result.append(sort_episodes_by_number(seasons[season_number]))

    return result


def sort_episodes_by_audio(episodes: List, max_workers: Optional[int] = None) -> Dict[str, List]:
    """ Group available episodes by their audio locale.

    Every lookup may hit the api, so they run in parallel. The first failing lookup is raised,
    lookups that have not started yet are cancelled.
    """
    result: Dict[str, List] = {}
    lock = threading.Lock()

    def lookup(episode) -> None:
        audio_locale = episode.audio_locale()
        with lock:
            result.setdefault(audio_locale, []).append(episode)

    available = [episode for episode in episodes if episode.available()]
    if not available:
        return result

    with ThreadPoolExecutor(max_workers=max_workers or min(32, len(available))) as executor:
        futures = [executor.submit(lookup, episode) for episode in available]
        for future in as_completed(futures):
            error = future.exception()
            if error is not None:
                for pending in futures:
                    pending.cancel()
                raise error

    return result


def sort_episodes_by_number(episodes: List) -> List:
    return sorted(episodes, key=lambda episode: episode.episode_number)


def sort_episodes_by_duration(episodes: List) -> List:
    return sorted(episodes, key=lambda episode: episode.duration_ms)


def sort_movie_listings_by_duration(movie_listings: List) -> List:
    return sorted(movie_listings, key=lambda movie_listing: movie_listing.duration_ms)


def sort_formats_by_resolution(formats: List) -> List:
    # same width + height measure the format selection uses
    return sorted(formats, key=lambda fmt: _resolution_sum(fmt.resolution))


def sort_subtitles_by_locale(subtitles: List) -> List:
    return sorted(subtitles, key=lambda subtitle: locale_language(subtitle.locale))
