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

from .api import API
from .config import ClientConfig, load_client_config
from .media import Episode, Movie, MovieListing, Season, Series
from .model import (
    CrunchyrollError,
    ErrorKind,
    Locale,
    LoginError,
    MediaType,
    NotFoundError,
    RequestError,
    SessionInvalidatedError,
)
from .videostream import Format, Stream, Subtitle, get_format, select_format

__all__ = [
    "API",
    "ClientConfig",
    "CrunchyrollError",
    "Episode",
    "ErrorKind",
    "Format",
    "Locale",
    "LoginError",
    "MediaType",
    "Movie",
    "MovieListing",
    "NotFoundError",
    "RequestError",
    "Season",
    "Series",
    "SessionInvalidatedError",
    "Stream",
    "Subtitle",
    "get_format",
    "load_client_config",
    "select_format",
]
