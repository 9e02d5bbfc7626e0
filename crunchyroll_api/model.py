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

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from requests import Response


class Locale:
    """Locales / languages known to the api"""
    JP = "ja-JP"
    US = "en-US"
    LA = "es-419"
    LA2 = "es-LA"
    ES = "es-ES"
    FR = "fr-FR"
    PT = "pt-PT"
    BR = "pt-BR"
    IT = "it-IT"
    DE = "de-DE"
    RU = "ru-RU"
    AR = "ar-SA"
    ME = "ar-ME"
    CN = "zh-CN"
    IN = "hi-IN"


class MediaType:
    SERIES = "series"
    MOVIE = "movie_listing"


class ErrorKind(Enum):
    """ What went wrong with a request.

    TRANSPORT is never raised by this package, transport exceptions of the http session propagate
    as they are. It is reserved for callers that wrap those exceptions into a CrunchyrollError.
    """
    TRANSPORT = "transport failure"
    MALFORMED_BODY = "malformed error body"
    REMOTE = "classified remote error"
    HTTP_STATUS = "http status error"
    SESSION_INVALIDATED = "session invalidated"
    NOT_FOUND = "not found"


class CrunchyrollError(Exception):
    """Base class of all errors raised by this package"""

    kind: ErrorKind = ErrorKind.REMOTE

    def __init__(self, message: str, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class RequestError(CrunchyrollError):
    """ A request reached the service but failed.

    The response stays attached, so callers can tell a conflict (409) from a missing
    resource (404) or a validation failure (422) via ``status_code`` instead of the message.
    """

    def __init__(
            self,
            message: str,
            response: Optional[Response] = None,
            kind: ErrorKind = ErrorKind.REMOTE
    ) -> None:
        super().__init__(message, kind)
        self.response = response

    @property
    def status_code(self) -> Optional[int]:
        if self.response is None:
            return None
        return self.response.status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"[{self.status_code}] {self.message}"


class LoginError(RequestError):
    pass


class SessionInvalidatedError(CrunchyrollError):
    kind = ErrorKind.SESSION_INVALIDATED


class NotFoundError(CrunchyrollError):
    kind = ErrorKind.NOT_FOUND


class ErrorBody:
    """ One of the layouts the service uses to report errors.

    The api is inconsistent across endpoints, so every layout gets its own parser.
    ``parse`` returns None if the payload does not have this layout, it never raises.
    """

    message: str

    @classmethod
    def parse(cls, body: Dict[str, Any]) -> Optional["ErrorBody"]:
        raise NotImplementedError


@dataclass(frozen=True)
class StringError(ErrorBody):
    """{"error": "invalid_grant", "code": "auth.obtain_access_token.invalid_credentials"}"""
    error: str
    code: Optional[str] = None

    @classmethod
    def parse(cls, body: Dict[str, Any]) -> Optional["StringError"]:
        error = body.get("error")
        if not isinstance(error, str):
            return None
        code = body.get("code")
        return cls(error, code if isinstance(code, str) else None)

    @property
    def message(self) -> str:
        if self.code is None:
            return self.error
        return f"{self.error} - {self.code}"


@dataclass(frozen=True)
class FlagError(ErrorBody):
    """{"error": true, "message": "...", "code": "bad_session"}"""
    message: str

    @classmethod
    def parse(cls, body: Dict[str, Any]) -> Optional["FlagError"]:
        message = body.get("message")
        if body.get("error") is not True or not isinstance(message, str):
            return None
        return cls(message)


@dataclass(frozen=True)
class FieldError(ErrorBody):
    """{"code": "validation.failed", "context": [{"code": "...", "field": "...", "message": "..."}]}"""
    field_name: str
    reason: str

    @classmethod
    def parse(cls, body: Dict[str, Any]) -> Optional["FieldError"]:
        if "error" in body or "code" not in body:
            return None
        context = body.get("context")
        if not isinstance(context, list) or not context or not isinstance(context[0], dict):
            return None
        entry = context[0]
        reason = entry.get("message")
        if not isinstance(reason, str):
            reason = entry.get("code")
        name = entry.get("field")
        if not isinstance(reason, str) or not isinstance(name, str):
            return None
        return cls(name, reason)

    @property
    def message(self) -> str:
        return f"{self.reason} - {self.field_name}"


@dataclass(frozen=True)
class CodeMessageError(ErrorBody):
    """{"code": "not_found", "message": "..."}"""
    message: str

    @classmethod
    def parse(cls, body: Dict[str, Any]) -> Optional["CodeMessageError"]:
        if "error" in body or "code" not in body:
            return None
        # a field context, even a broken one, takes precedence over the message
        context = body.get("context")
        if isinstance(context, list) and context:
            return None
        message = body.get("message")
        if not isinstance(message, str):
            return None
        return cls(message)


ERROR_SHAPES = (StringError, FlagError, FieldError, CodeMessageError)


def classify_error_body(body: Dict[str, Any]) -> Optional[ErrorBody]:
    """ Try every known error layout in order and return the first that matches """
    for shape in ERROR_SHAPES:
        error_body = shape.parse(body)
        if error_body is not None:
            return error_body
    return None


@dataclass
class TokenResponse:
    access_token: str
    refresh_token: str = ""
    expires_in: int = 0
    token_type: str = "Bearer"
    scope: str = ""
    country: str = ""
    account_id: str = ""

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "TokenResponse":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            expires_in=int(data.get("expires_in") or 0),
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope") or "",
            country=data.get("country") or "",
            account_id=data.get("account_id") or "",
        )


@dataclass
class CmsData:
    bucket: str = ""
    policy: str = ""
    signature: str = ""
    key_pair_id: str = ""


@dataclass
class AccountData:
    token_type: str = ""
    access_token: str = ""
    refresh_token: str = ""
    expires: Optional[datetime] = None
    account_id: str = ""
    external_id: str = ""
    country: str = ""
    maturity_rating: str = ""
    premium: bool = False
    cms: CmsData = field(default_factory=CmsData)
