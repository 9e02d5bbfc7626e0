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

import base64
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Union

import requests
from curl_cffi import CurlError
from curl_cffi import requests as curl

from . import utils

# Basic auth of the client used for password and refresh_token grants
DEFAULT_CLIENT_AUTH_B64 = "aHJobzlxM2F3dnNrMjJ1LXRzNWE6cHROOURteXRBU2Z6QjZvbXVsSzh6cUxzYTczVE1TY1k="
# Basic auth of the client used for the etp_rt_cookie grant
DEFAULT_COOKIE_CLIENT_AUTH_B64 = "bm9haWhkZXZtXzZpeWcwYThsMHE6"
DEFAULT_USER_AGENT = "Crunchyroll/3.46.2 Android/13 okhttp/4.12.0"
# tls fingerprint of the default transport, see curl_cffi BrowserType
DEFAULT_IMPERSONATE = "chrome120"

LATEST_JSON_URL = "https://reroll.is-cool.dev/latest.json"

ENV_CLIENT_AUTH = "CRUNCHYROLL_CLIENT_AUTH"
ENV_COOKIE_CLIENT_AUTH = "CRUNCHYROLL_COOKIE_CLIENT_AUTH"
ENV_USER_AGENT = "CRUNCHYROLL_USER_AGENT"
ENV_TIMEOUT = "CRUNCHYROLL_TIMEOUT"
ENV_IMPERSONATE = "CRUNCHYROLL_IMPERSONATE"

# requests and curl_cffi sessions share the same api
HttpSession = Union[requests.Session, curl.Session]


@dataclass
class ClientConfig:
    """ Client identity and transport settings.

    The two basic auth values belong to two different api clients. The token endpoint only
    accepts the etp_rt_cookie grant from the second one, so they can not be merged.
    """
    client_auth_b64: str = DEFAULT_CLIENT_AUTH_B64
    cookie_client_auth_b64: str = DEFAULT_COOKIE_CLIENT_AUTH_B64
    user_agent: str = DEFAULT_USER_AGENT
    # None leaves the deadline to the transport
    timeout: Optional[float] = None
    impersonate: str = DEFAULT_IMPERSONATE

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        return cls().apply_env(environ)

    def apply_env(self, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """ Override values with CRUNCHYROLL_* environment variables, if set """
        if environ is None:
            environ = os.environ

        self.client_auth_b64 = environ.get(ENV_CLIENT_AUTH) or self.client_auth_b64
        self.cookie_client_auth_b64 = environ.get(ENV_COOKIE_CLIENT_AUTH) or self.cookie_client_auth_b64
        self.user_agent = environ.get(ENV_USER_AGENT) or self.user_agent
        self.impersonate = environ.get(ENV_IMPERSONATE) or self.impersonate
        if timeout := environ.get(ENV_TIMEOUT):
            try:
                self.timeout = float(timeout)
            except ValueError:
                utils.crunchy_log(f"Ignoring invalid {ENV_TIMEOUT} value: {timeout}", logging.WARNING)

        return self

    def update_from_latest_json(self, cfg: Dict) -> None:
        """ Take client auth and user agent from a latest.json document.

        Both the nested layout ({"mobile": {...}}) and the older flat layout are understood.
        """
        mobile = cfg.get("mobile") or {}
        source = mobile if mobile else cfg
        if not mobile:
            utils.crunchy_log("Using legacy flat configuration structure", logging.DEBUG)

        self.client_auth_b64 = source.get("auth") or self.client_auth_b64
        self.user_agent = source.get("user-agent") or self.user_agent

    @property
    def client_id(self) -> str:
        return client_id_from_auth(self.client_auth_b64)

    @property
    def cookie_client_id(self) -> str:
        return client_id_from_auth(self.cookie_client_auth_b64)


def client_id_from_auth(auth_b64: str) -> str:
    """ Client id part of a base64 encoded "id:secret" pair, empty if it can not be decoded """
    try:
        decoded = base64.b64decode(auth_b64, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return ""
    return decoded.split(":", 1)[0]


def load_client_config(
        url: str = LATEST_JSON_URL,
        http: Optional[HttpSession] = None,
        environ: Optional[Mapping[str, str]] = None
) -> ClientConfig:
    """ Build a ClientConfig from a remote latest.json document, then apply the environment.

    Falls back to the built-in defaults if the document can not be loaded.
    """
    config = ClientConfig()
    http = http or requests.Session()

    utils.crunchy_log(f"Loading client config from: {url}")
    try:
        resp = http.get(url, timeout=10)
        resp.raise_for_status()
        document = resp.json()
        if not isinstance(document, dict):
            raise ValueError("latest.json is not an object")
        config.update_from_latest_json(document)
        utils.crunchy_log("Successfully loaded client configuration")
    except (requests.exceptions.RequestException, CurlError, ValueError) as e:
        utils.crunchy_log(f"Failed to load client config, using defaults: {e}", logging.WARNING)

    return config.apply_env(environ)


def create_http_session(config: ClientConfig) -> HttpSession:
    """ Default transport, a curl session with a browser tls fingerprint so cloudflare lets it pass """
    http = curl.Session(impersonate=config.impersonate)
    http.headers.update({"User-Agent": config.user_agent})
    return http
