# -*- coding: utf-8 -*-
# Crunchyroll
# based on work by stefanodvx
# Copyright (C) 2023 smirgol
#
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
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from requests import Response

from . import utils
from .config import ClientConfig, HttpSession, create_http_session
from .model import (
    AccountData,
    CmsData,
    ErrorKind,
    Locale,
    LoginError,
    RequestError,
    SessionInvalidatedError,
    TokenResponse,
    classify_error_body,
)


class API:
    """Api documentation
    https://github.com/CloudMax94/crunchyroll-api/wiki/Api

    An API instance is a logged in session. Create one with one of the login_* class methods.
    """

    # Authentication endpoints
    TOKEN_ENDPOINT = "https://beta-api.crunchyroll.com/auth/v1/token"
    INDEX_ENDPOINT = "https://beta-api.crunchyroll.com/index/v2"
    ACCOUNT_ENDPOINT = "https://beta-api.crunchyroll.com/accounts/v1/me"
    PROFILE_ENDPOINT = "https://beta-api.crunchyroll.com/accounts/v1/me/profile"
    # legacy api, only used to exchange a session id for an etp_rt cookie
    START_SESSION_ENDPOINT = "https://api.crunchyroll.com/start_session.0.json"
    LOGOUT_ENDPOINT = "https://crunchyroll.com/logout"

    # Content endpoints, relative to the cms bucket
    CMS_ENDPOINT = "https://www.crunchyroll.com/cms/v2/{}/{}"

    def __init__(
            self,
            locale: str = Locale.US,
            http: Optional[HttpSession] = None,
            config: Optional[ClientConfig] = None
    ) -> None:
        self.config: ClientConfig = config or ClientConfig.from_env()
        self.http: HttpSession = http if http is not None else create_http_session(self.config)
        self.locale: str = locale
        self.account_data: AccountData = AccountData()
        self.api_headers: Dict = default_request_headers(self.config)
        self._caching: bool = True
        self._invalidated: bool = False

    @classmethod
    def login_with_credentials(
            cls,
            username: str,
            password: str,
            locale: str = Locale.US,
            http: Optional[HttpSession] = None,
            config: Optional[ClientConfig] = None
    ) -> "API":
        """ Log in with the username (or email) and password of an account """
        config = config or ClientConfig.from_env()
        http = http if http is not None else create_http_session(config)

        utils.crunchy_log("Attempting username/password login", client_id=config.client_id)
        token = acquire_token(
            http,
            config,
            grant_type="password",
            parameters={"username": username, "password": password},
            client_auth=config.client_auth_b64
        )
        return post_login(http, token, locale, config)

    @classmethod
    def login_with_session_id(
            cls,
            session_id: str,
            locale: str = Locale.US,
            http: Optional[HttpSession] = None,
            config: Optional[ClientConfig] = None
    ) -> "API":
        """ Log in with a session id of the legacy api.

        The session id is exchanged for an etp_rt cookie, which is then used as refresh token.
        Prefer login_with_refresh_token, session id login broke repeatedly in the past.
        """
        config = config or ClientConfig.from_env()
        http = http if http is not None else create_http_session(config)

        utils.crunchy_log("Attempting session id login")
        r = http.get(
            API.START_SESSION_ENDPOINT,
            params={"session_id": session_id},
            headers=default_request_headers(config),
            timeout=config.timeout
        )
        if r.status_code != 200:
            raise LoginError(f"failed to start session: {status_line(r)}", r, ErrorKind.HTTP_STATUS)

        try:
            r_json = r.json()
        except ValueError as e:
            raise LoginError(
                f"failed to parse start session with session id response: {e}", r, ErrorKind.MALFORMED_BODY
            ) from e
        if not isinstance(r_json, dict):
            raise LoginError(
                "failed to parse start session with session id response: expected an object",
                r,
                ErrorKind.MALFORMED_BODY
            )

        if r_json.get("error") is True:
            raise LoginError(f"invalid session id ({r_json.get('message')}): {r_json.get('code')}", r)

        etp_rt = r.cookies.get("etp_rt")
        if not etp_rt:
            raise LoginError("start session response did not set an etp_rt cookie", r)

        return cls.login_with_refresh_token(etp_rt, locale, http, config)

    @classmethod
    def login_with_refresh_token(
            cls,
            refresh_token: str,
            locale: str = Locale.US,
            http: Optional[HttpSession] = None,
            config: Optional[ClientConfig] = None
    ) -> "API":
        """ Log in with a refresh token, e.g. the etp_rt cookie of a browser session """
        config = config or ClientConfig.from_env()
        http = http if http is not None else create_http_session(config)

        try:
            token = acquire_token(
                http,
                config,
                grant_type="refresh_token",
                parameters={"refresh_token": refresh_token},
                client_auth=config.client_auth_b64
            )
        except RequestError as e:
            if e.status_code != 400:
                raise

            # tokens which came from a browser cookie are only accepted by the cookie grant
            utils.crunchy_log(
                "refresh_token grant rejected, retrying with etp_rt_cookie grant",
                logging.WARNING,
                client_id=config.cookie_client_id
            )
            token = acquire_token(
                http,
                config,
                grant_type="etp_rt_cookie",
                parameters={},
                client_auth=config.cookie_client_auth_b64,
                cookies={"etp_rt": refresh_token}
            )

        return post_login(http, token, locale, config)

    @property
    def caching(self) -> bool:
        """ If true, child objects (seasons, episodes, streams, ...) are cached after the first request.

        Disabling it is not retroactive: already cached objects are still returned.
        Create a new session to get rid of them.
        """
        return self._caching

    @caching.setter
    def caching(self, caching: bool) -> None:
        self._caching = caching

    @property
    def invalidated(self) -> bool:
        return self._invalidated

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.account_data.expires is None:
            return False
        return (now or get_date()) > self.account_data.expires

    def make_request(
            self,
            method: str,
            url: str,
            headers=None,
            params=None,
            data=None,
            json_data=None,
            cookies=None,
    ) -> Response:
        """ Send a request authenticated with the session's bearer token """
        if self._invalidated:
            raise SessionInvalidatedError("session has been invalidated, log in again to create a new one")

        request_headers = {}
        request_headers.update(self.api_headers)
        request_headers["Authorization"] = f"{self.account_data.token_type} {self.account_data.access_token}"
        if headers:
            request_headers.update(headers)

        return send_request(
            self.http,
            method,
            url,
            headers=request_headers,
            params=params,
            data=data,
            json=json_data,
            cookies=cookies,
            timeout=self.config.timeout
        )

    def request_json(self, method: str, url: str, context: str, **kwargs) -> Dict:
        """ make_request and decode the response body, context names the call in error messages """
        r = self.make_request(method, url, **kwargs)
        return get_json_from_response(r, context)

    def cms_url(self, path: str) -> str:
        return API.CMS_ENDPOINT.format(self.account_data.cms.bucket, path)

    def cms_params(self, **params: Any) -> Dict:
        """ Query parameters every request against the cms bucket needs """
        cms = self.account_data.cms
        result = {
            "locale": self.locale,
            "Signature": cms.signature,
            "Policy": cms.policy,
            "Key-Pair-Id": cms.key_pair_id
        }
        result.update(params)
        return result

    def invalidate_session(self) -> None:
        """ Log out. The session can not be used afterwards, even if logging out failed """
        try:
            self.make_request(method="GET", url=API.LOGOUT_ENDPOINT)
        finally:
            self._invalidated = True
            utils.crunchy_log("Session invalidated")

    def refresh_session(self) -> "API":
        """ Log in again with the stored refresh token. Returns a new session, this one stays as is """
        if self._invalidated:
            raise SessionInvalidatedError("session has been invalidated, log in again to create a new one")

        return API.login_with_refresh_token(
            self.account_data.refresh_token,
            self.locale,
            self.http,
            self.config
        )


def acquire_token(
        http: HttpSession,
        config: ClientConfig,
        grant_type: str,
        parameters: Dict[str, str],
        client_auth: str,
        cookies: Optional[Dict[str, str]] = None
) -> TokenResponse:
    """ Request an access token from the token endpoint """
    data = {
        "grant_type": grant_type,
        "scope": "offline_access"
    }
    data.update(parameters)
    headers = {
        "Authorization": f"Basic {client_auth}",
        "Content-Type": "application/x-www-form-urlencoded",
        "User-Agent": config.user_agent,
        "Accept": "application/json"
    }

    utils.crunchy_log("Requesting access token", logging.DEBUG, grant_type=grant_type)
    r = send_request(
        http,
        "POST",
        API.TOKEN_ENDPOINT,
        headers=headers,
        data=data,
        cookies=cookies,
        timeout=config.timeout
    )

    r_json = get_json_from_response(r, "token")
    try:
        return TokenResponse.from_json(r_json)
    except (KeyError, TypeError, ValueError) as e:
        raise RequestError(f"failed to parse 'token' response: {e}", r, ErrorKind.MALFORMED_BODY) from e


def post_login(
        http: HttpSession,
        token: TokenResponse,
        locale: str,
        config: ClientConfig
) -> API:
    """ Build a session from a token response.

    Fetches cms signing data, external id and maturity rating. If any of the calls fails the
    error is raised and no session is returned.
    """
    api = API(locale=locale, http=http, config=config)
    account_data = api.account_data
    account_data.token_type = token.token_type
    account_data.access_token = token.access_token
    account_data.refresh_token = token.refresh_token
    account_data.account_id = token.account_id
    account_data.country = token.country
    if token.expires_in:
        account_data.expires = get_date() + timedelta(seconds=token.expires_in)

    r = api.make_request(method="GET", url=API.INDEX_ENDPOINT)
    cms = get_json_from_response(r, "index").get("cms")
    if not isinstance(cms, dict):
        raise RequestError("failed to parse 'index' response: missing 'cms' object", r, ErrorKind.MALFORMED_BODY)
    # stripped so urls can be built like .../{bucket}/...
    bucket = require(cms, "bucket", r, "index")
    if bucket.startswith("/"):
        bucket = bucket[1:]
    account_data.cms = CmsData(
        bucket=bucket,
        policy=require(cms, "policy", r, "index"),
        signature=require(cms, "signature", r, "index"),
        key_pair_id=require(cms, "key_pair_id", r, "index")
    )
    account_data.premium = bucket.endswith("crunchyroll")

    r = api.make_request(method="GET", url=API.ACCOUNT_ENDPOINT)
    account_data.external_id = require(get_json_from_response(r, "account"), "external_id", r, "account")

    r = api.make_request(method="GET", url=API.PROFILE_ENDPOINT)
    account_data.maturity_rating = require(get_json_from_response(r, "profile"), "maturity_rating", r, "profile")

    utils.crunchy_log("Login successful", premium=account_data.premium, locale=locale)
    return api


def send_request(http: HttpSession, method: str, url: str, **kwargs) -> Response:
    """ Perform a request and turn every error the service reports into a RequestError.

    Transport errors (no response at all) are raised unmodified. The response body stays
    readable for the caller.
    """
    r = http.request(method, url, **kwargs)

    if r.content:
        try:
            r_json = r.json()
        except ValueError as e:
            raise RequestError(f"invalid json response: {e}", r, ErrorKind.MALFORMED_BODY) from e
        if not isinstance(r_json, dict):
            raise RequestError("invalid json response: expected an object", r, ErrorKind.MALFORMED_BODY)

        error_body = classify_error_body(r_json)
        if error_body is not None:
            utils.crunchy_log(
                "Request failed", logging.DEBUG, url=url, status=r.status_code, error=error_body.message
            )
            raise RequestError(error_body.message, r, ErrorKind.REMOTE)

    if r.status_code >= 400:
        raise RequestError(status_line(r), r, ErrorKind.HTTP_STATUS)

    return r


def fetch_raw(http: HttpSession, url: str, timeout: Optional[float] = None) -> Response:
    """ GET a non json resource (playlists, subtitles). Only the http status is checked """
    r = http.get(url, timeout=timeout)
    if r.status_code >= 400:
        raise RequestError(status_line(r), r, ErrorKind.HTTP_STATUS)
    # we always receive utf-8, the guessed encoding is often wrong
    r.encoding = "utf-8"
    return r


def get_json_from_response(r: Response, context: str) -> Dict:
    try:
        r_json = r.json()
    except ValueError as e:
        utils.log_error_with_trace(f"Failed to parse '{context}' response data")
        raise RequestError(f"failed to parse '{context}' response: {e}", r, ErrorKind.MALFORMED_BODY) from e
    if not isinstance(r_json, dict):
        raise RequestError(
            f"failed to parse '{context}' response: expected an object", r, ErrorKind.MALFORMED_BODY
        )
    return r_json


def get_items_from_response(r: Response, context: str) -> List[Dict]:
    items = get_json_from_response(r, context).get("items")
    if not isinstance(items, list):
        raise RequestError(f"failed to parse '{context}' response: missing 'items'", r, ErrorKind.MALFORMED_BODY)
    return [item for item in items if isinstance(item, dict)]


def require(data: Dict, key: str, r: Optional[Response], context: str) -> str:
    """ A required string field of a response """
    value = data.get(key)
    if not isinstance(value, str):
        raise RequestError(f"failed to parse '{context}' response: missing '{key}'", r, ErrorKind.MALFORMED_BODY)
    return value


def status_line(r: Response) -> str:
    return f"{r.status_code} {r.reason or ''}".strip()


def default_request_headers(config: ClientConfig) -> Dict:
    return {
        "User-Agent": config.user_agent,
        "Accept": "application/json",
        "Accept-Charset": "UTF-8"
    }


def get_date() -> datetime:
    return datetime.now(timezone.utc)
