"""Shared fixtures: a mocked requests transport and a logged in session."""

from __future__ import annotations

from typing import Iterator

import pytest
import requests
import responses

from crunchyroll_api.api import API
from crunchyroll_api.config import ClientConfig
from crunchyroll_api.model import CmsData

# base64 of "client-a:secret-a" and "client-b:"
CLIENT_AUTH_A = "Y2xpZW50LWE6c2VjcmV0LWE="
CLIENT_AUTH_B = "Y2xpZW50LWI6"

CMS_PARAMS = {
    "locale": "en-US",
    "Signature": "sig",
    "Policy": "pol",
    "Key-Pair-Id": "kp",
}


def cms_url(path: str) -> str:
    return f"https://www.crunchyroll.com/cms/v2/cms/bucket/{path}"


@pytest.fixture()
def mocked() -> Iterator[responses.RequestsMock]:
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture()
def config() -> ClientConfig:
    return ClientConfig(
        client_auth_b64=CLIENT_AUTH_A,
        cookie_client_auth_b64=CLIENT_AUTH_B,
        user_agent="test-agent/1.0",
    )


@pytest.fixture()
def http() -> requests.Session:
    return requests.Session()


@pytest.fixture()
def api(http: requests.Session, config: ClientConfig) -> API:
    session = API(locale="en-US", http=http, config=config)
    session.account_data.token_type = "Bearer"
    session.account_data.access_token = "access-token"
    session.account_data.refresh_token = "refresh-token"
    session.account_data.premium = True
    session.account_data.cms = CmsData(bucket="cms/bucket", policy="pol", signature="sig", key_pair_id="kp")
    return session
