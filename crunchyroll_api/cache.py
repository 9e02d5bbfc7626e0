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
from typing import Callable, Generic, Optional, TypeVar

from . import utils

T = TypeVar("T")


class ChildCache(Generic[T]):
    """ Lazily loaded child list of an api object (seasons of a series, streams of an episode, ...)

    Loading is single flight: concurrent callers wait for the one in progress instead of
    firing their own request. Whether the result is kept is decided by the session's caching
    flag at load time. Values already kept are served even after caching got disabled.
    """

    def __init__(self, value: Optional[T] = None) -> None:
        self._lock = threading.Lock()
        self._value = value
        self._filled = value is not None

    @property
    def filled(self) -> bool:
        return self._filled

    def get(self, caching: Callable[[], bool], loader: Callable[[], T]) -> T:
        if self._filled:
            return self._value

        with self._lock:
            if self._filled:
                return self._value

            value = loader()
            if caching():
                utils.crunchy_log(
                    "Caching loaded child objects", logging.DEBUG, loader=getattr(loader, "__qualname__", None)
                )
                self._value = value
                self._filled = True
            return value
