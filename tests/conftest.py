"""Shared fixtures: a pinned clock, in-memory stores and HTTP response fakes."""

from datetime import datetime, timedelta
from typing import Any
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest

from gcal.oauth_client import OAuthClient
from gcal.token_store import TokenStore
from storage.alarm_store import AlarmStore
from storage.kv_store import MemoryStore

TZ = ZoneInfo("Asia/Tokyo")
REDIRECT_URI = "http://localhost:8080/oauth2callback"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_response(status_code: int = 200, payload: Any = None) -> MagicMock:
    """Build a stand-in for requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload if payload is not None else {}
    return response


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 10, 12, 10, 0, tzinfo=TZ))


@pytest.fixture
def kv() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def tokens(kv) -> TokenStore:
    store = TokenStore(kv)
    store.set_client("client-123", "secret-456")
    return store


@pytest.fixture
def alarm_store(kv) -> AlarmStore:
    return AlarmStore(kv)


@pytest.fixture
def signed_in_tokens(tokens, clock) -> TokenStore:
    """Token store holding a valid access token and a refresh token."""
    tokens.set_access_token("access-1", clock() + timedelta(hours=1))
    tokens.set_refresh_token("refresh-1")
    return tokens


@pytest.fixture
def client(signed_in_tokens, clock) -> OAuthClient:
    return OAuthClient(signed_in_tokens, redirect_uri=REDIRECT_URI, clock=clock)
