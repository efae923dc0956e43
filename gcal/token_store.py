"""Credential storage for the Google OAuth session.

Pure storage over the key-value store: no validation, no network. Every
mutation is written through immediately. The OAuth client is the only
writer.
"""

from dataclasses import dataclass
from datetime import datetime

from storage.kv_store import KeyValueStore

KEY_CLIENT_ID = "google.client_id"
KEY_CLIENT_SECRET = "google.client_secret"
KEY_ACCESS_TOKEN = "google.access_token"
KEY_REFRESH_TOKEN = "google.refresh_token"
KEY_TOKEN_EXPIRY = "google.token_expiry"
KEY_OAUTH_STATE = "google.oauth_state"

_ALL_KEYS = (
    KEY_CLIENT_ID,
    KEY_CLIENT_SECRET,
    KEY_ACCESS_TOKEN,
    KEY_REFRESH_TOKEN,
    KEY_TOKEN_EXPIRY,
    KEY_OAUTH_STATE,
)


@dataclass
class Credentials:
    """Snapshot of everything stored for the OAuth session."""

    client_id: str = ""
    client_secret: str = ""
    access_token: str | None = None
    refresh_token: str | None = None
    expiry: datetime | None = None

    def access_token_valid(self, now: datetime) -> bool:
        """True while an access token exists and its expiry is still ahead."""
        return bool(self.access_token) and self.expiry is not None and self.expiry > now


class TokenStore:
    """Get/set/clear the OAuth credentials."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    def get_credentials(self) -> Credentials:
        return Credentials(
            client_id=self.kv.get(KEY_CLIENT_ID) or "",
            client_secret=self.kv.get(KEY_CLIENT_SECRET) or "",
            access_token=self.kv.get(KEY_ACCESS_TOKEN),
            refresh_token=self.kv.get(KEY_REFRESH_TOKEN),
            expiry=_parse_timestamp(self.kv.get(KEY_TOKEN_EXPIRY)),
        )

    def set_client(self, client_id: str, client_secret: str) -> None:
        self.kv.set(KEY_CLIENT_ID, client_id)
        self.kv.set(KEY_CLIENT_SECRET, client_secret)

    def set_access_token(self, token: str, expiry: datetime) -> None:
        self.kv.set(KEY_ACCESS_TOKEN, token)
        self.kv.set(KEY_TOKEN_EXPIRY, expiry.isoformat())

    def set_refresh_token(self, token: str) -> None:
        self.kv.set(KEY_REFRESH_TOKEN, token)

    def get_pending_state(self) -> str | None:
        return self.kv.get(KEY_OAUTH_STATE)

    def set_pending_state(self, state: str) -> None:
        self.kv.set(KEY_OAUTH_STATE, state)

    def clear_pending_state(self) -> None:
        self.kv.remove(KEY_OAUTH_STATE)

    def clear_all(self) -> None:
        """Forget the whole session, client registration included."""
        for key in _ALL_KEYS:
            self.kv.remove(key)


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
