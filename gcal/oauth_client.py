"""Google OAuth2 client and authenticated event fetching.

Implements the installed-app authorization code flow by hand against
Google's endpoints:
- Authorization URL with a one-time CSRF ``state``
- Code -> token exchange (form-encoded POST)
- Refresh-token grant
- Today's events, with a single refresh-and-retry on HTTP 401

Blocking ``requests`` calls run in a worker thread so they never stall
the event loop the scheduler lives on.
"""

import asyncio
import logging
import uuid
from datetime import timedelta
from typing import Any
from urllib.parse import urlencode

import requests

from config.clock import Clock, make_clock
from gcal.errors import (
    AuthError,
    AuthorizationDeniedError,
    DecodeError,
    InvalidStateError,
    MissingClientIdError,
    NetworkError,
    NotAuthenticatedError,
    TokenExchangeError,
)
from gcal.events import EVENTS_URL, CalendarEvent, day_window, parse_events, request_events
from gcal.redirect_server import RedirectListener
from gcal.token_store import TokenStore

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
SCOPE = "https://www.googleapis.com/auth/calendar.readonly"

# A 401 on the events endpoint is retried at most this many times, each after a refresh.
MAX_AUTH_RETRIES = 1


class OAuthClient:
    """Owns the OAuth session: authorization, token refresh and event fetches."""

    def __init__(
        self,
        tokens: TokenStore,
        redirect_uri: str,
        clock: Clock | None = None,
        listener: RedirectListener | None = None,
        timeout: int = 30,
        token_url: str = TOKEN_URL,
        events_url: str = EVENTS_URL,
    ) -> None:
        """Initialize the OAuthClient.

        Args:
            tokens: Credential storage.
            redirect_uri: Redirect URI registered for the OAuth client.
            clock: Returns the current aware local time.
            listener: Loopback listener started whenever a new authorization URL is issued.
            timeout: HTTP timeout in seconds.
            token_url: Token endpoint.
            events_url: Calendar events endpoint.
        """
        self.tokens = tokens
        self.redirect_uri = redirect_uri
        self.clock = clock or make_clock()
        self.listener = listener
        self.timeout = timeout
        self.token_url = token_url
        self.events_url = events_url

        creds = self.tokens.get_credentials()
        # An expired access token with a refresh token still counts: the next
        # authenticated call refreshes first.
        self.is_authenticated = creds.access_token_valid(self.clock()) or bool(creds.refresh_token)

    def configure_client(self, client_id: str, client_secret: str) -> None:
        """Store the OAuth client registration."""
        self.tokens.set_client(client_id.strip(), client_secret.strip())

    # -----------------------------------------------------------------------
    # Authorization
    # -----------------------------------------------------------------------

    def build_authorization_url(self) -> str:
        """Issue a consent-screen URL with a fresh CSRF state.

        Starts the redirect listener when one is attached, so it must be
        called from inside the running event loop in that case.

        Returns:
            The authorization URL to open in a browser.

        Raises:
            MissingClientIdError: If no client id is configured.
            AuthError: If the redirect listener cannot bind its port.
        """
        creds = self.tokens.get_credentials()
        if not creds.client_id:
            raise MissingClientIdError("Google OAuth client id is not configured.")

        if self.listener is not None:
            try:
                self.listener.start()
            except OSError as e:
                raise AuthError(f"Cannot listen for the OAuth redirect on {self.redirect_uri}: {e}") from e

        state = str(uuid.uuid4())
        self.tokens.set_pending_state(state)

        query = urlencode(
            {
                "client_id": creds.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": "code",
                "scope": SCOPE,
                "access_type": "offline",
                "prompt": "consent",
                "state": state,
            }
        )
        return f"{AUTH_URL}?{query}"

    async def complete_authorization(self, timeout: float | None = None) -> None:
        """Wait for the browser redirect and exchange its code.

        Args:
            timeout: Seconds to wait for the redirect (None: forever).

        Raises:
            AuthorizationDeniedError: If the provider redirected with an error.
            TokenExchangeError: If the redirect had no code or the exchange failed.
            InvalidStateError: If the redirect's state does not match.
            asyncio.TimeoutError: If no redirect arrived in time.
        """
        if self.listener is None:
            raise RuntimeError("No redirect listener attached")

        try:
            callback = await self.listener.wait_for_callback(timeout)
        finally:
            self.listener.stop()

        if callback.error:
            raise AuthorizationDeniedError(f"Authorization was denied: {callback.error}")
        if not callback.code:
            raise TokenExchangeError("Redirect carried no authorization code.")

        await self.exchange_code_for_token(callback.code, callback.state or "")

    async def exchange_code_for_token(self, code: str, state: str) -> None:
        """Trade an authorization code for tokens.

        The pending state is only cleared on success; after that the same
        state can never be exchanged again.

        Raises:
            InvalidStateError: If ``state`` is not the pending one.
            TokenExchangeError: On transport failure, non-200 or a malformed body.
        """
        pending = self.tokens.get_pending_state()
        if not pending or state != pending:
            raise InvalidStateError("OAuth state does not match the pending authorization.")

        creds = self.tokens.get_credentials()
        form = {
            "code": code,
            "client_id": creds.client_id,
            "client_secret": creds.client_secret,
            "redirect_uri": self.redirect_uri,
            "grant_type": "authorization_code",
        }

        try:
            response = await asyncio.to_thread(requests.post, self.token_url, data=form, timeout=self.timeout)
        except requests.RequestException as e:
            raise TokenExchangeError(f"Token request failed: {e}") from e

        if response.status_code != 200:
            raise TokenExchangeError(f"Token endpoint returned HTTP {response.status_code}.")

        payload = _token_payload(response)
        if payload is None:
            raise TokenExchangeError("Token response is missing access_token or expires_in.")

        access_token, expires_in, refresh_token = payload
        self.tokens.set_access_token(access_token, self.clock() + timedelta(seconds=expires_in))
        if refresh_token:
            self.tokens.set_refresh_token(refresh_token)
        self.tokens.clear_pending_state()
        self.is_authenticated = True
        logger.info("Authorization code exchanged (refresh token issued: %s)", bool(refresh_token))

    def logout(self) -> None:
        """Forget every stored credential."""
        self.tokens.clear_all()
        self.is_authenticated = False
        if self.listener is not None:
            self.listener.stop()
        logger.info("Logged out of Google Calendar")

    # -----------------------------------------------------------------------
    # Token lifecycle
    # -----------------------------------------------------------------------

    async def refresh_access_token(self) -> bool:
        """Use the refresh token to obtain a new access token.

        Any failure is terminal for the session: it is marked
        unauthenticated and needs a fresh interactive authorization.
        The refresh token itself is left untouched.

        Returns:
            True if a new access token was stored.
        """
        creds = self.tokens.get_credentials()
        if not creds.refresh_token:
            logger.warning("No refresh token stored; interactive authorization required")
            self.is_authenticated = False
            return False

        form = {
            "client_id": creds.client_id,
            "client_secret": creds.client_secret,
            "refresh_token": creds.refresh_token,
            "grant_type": "refresh_token",
        }

        try:
            response = await asyncio.to_thread(requests.post, self.token_url, data=form, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Token refresh failed: %s", e)
            self.is_authenticated = False
            return False

        payload = _token_payload(response) if response.status_code == 200 else None
        if payload is None:
            logger.error("Token refresh rejected (HTTP %d)", response.status_code)
            self.is_authenticated = False
            return False

        access_token, expires_in, _ = payload
        expiry = self.clock() + timedelta(seconds=expires_in)
        self.tokens.set_access_token(access_token, expiry)
        self.is_authenticated = True
        logger.info("Access token refreshed, valid until %s", expiry.isoformat(timespec="seconds"))
        return True

    async def restore_session(self) -> bool:
        """Re-establish the session from stored credentials at startup."""
        creds = self.tokens.get_credentials()
        if creds.access_token_valid(self.clock()):
            self.is_authenticated = True
        elif creds.refresh_token:
            await self.refresh_access_token()
        else:
            self.is_authenticated = False
        return self.is_authenticated

    async def ensure_access_token(self) -> str:
        """Return a usable access token, refreshing it first if it has expired.

        Raises:
            NotAuthenticatedError: If there is no valid token and refreshing failed.
        """
        creds = self.tokens.get_credentials()
        if creds.access_token_valid(self.clock()):
            return creds.access_token

        if creds.refresh_token and await self.refresh_access_token():
            return self.tokens.get_credentials().access_token

        self.is_authenticated = False
        raise NotAuthenticatedError("No valid access token; sign in again.")

    # -----------------------------------------------------------------------
    # Events
    # -----------------------------------------------------------------------

    async def fetch_events_for_today(self) -> list[CalendarEvent]:
        """Fetch the primary calendar's events from local midnight to the next.

        Raises:
            NotAuthenticatedError: If not signed in, or a 401 persists after one refresh.
            NetworkError: On transport failure or any other non-200 status.
            DecodeError: If the response body is not an events list.
        """
        if not self.is_authenticated:
            raise NotAuthenticatedError("Not signed in to Google Calendar.")

        token = await self.ensure_access_token()
        now = self.clock()
        time_min, time_max = day_window(now)

        for attempt in range(MAX_AUTH_RETRIES + 1):
            try:
                response = await asyncio.to_thread(
                    request_events, token, time_min, time_max, self.events_url, self.timeout
                )
            except requests.RequestException as e:
                raise NetworkError(f"Events request failed: {e}") from e

            if response.status_code != 401:
                break
            if attempt == MAX_AUTH_RETRIES:
                raise NotAuthenticatedError("Access token still rejected after refresh.")

            logger.warning("Events request returned 401; refreshing access token")
            if not await self.refresh_access_token():
                raise NotAuthenticatedError("Access token rejected and refresh failed.")
            token = self.tokens.get_credentials().access_token

        if response.status_code != 200:
            raise NetworkError(f"Events request returned HTTP {response.status_code}.")

        try:
            payload = response.json()
        except ValueError as e:
            raise DecodeError(f"Events response is not JSON: {e}") from e

        return parse_events(payload, now)


def _token_payload(response: requests.Response) -> tuple[str, int, str | None] | None:
    """Pull (access_token, expires_in, refresh_token) out of a token response."""
    try:
        data: Any = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None

    access_token = data.get("access_token")
    expires_in = data.get("expires_in")
    if not isinstance(access_token, str) or not access_token:
        return None
    if isinstance(expires_in, bool) or not isinstance(expires_in, int):
        return None

    refresh_token = data.get("refresh_token")
    return access_token, expires_in, refresh_token if isinstance(refresh_token, str) else None
