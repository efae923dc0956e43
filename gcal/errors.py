"""Errors raised by the Google Calendar integration.

Interactive operations (building the authorization URL, exchanging the
code) raise these to the caller. Background work catches them, logs
them and degrades instead.
"""


class CalendarServiceError(Exception):
    """Base class for every calendar integration failure."""


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthError(CalendarServiceError):
    """OAuth failure."""


class MissingClientIdError(AuthError):
    """No OAuth client id is configured."""


class InvalidStateError(AuthError):
    """The redirect's state does not match the pending authorization."""


class TokenExchangeError(AuthError):
    """The token endpoint rejected the authorization code."""


class AuthorizationDeniedError(TokenExchangeError):
    """The provider redirected back with an error instead of a code."""


class NotAuthenticatedError(AuthError):
    """No usable access token and no way to refresh one."""


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------


class FetchError(CalendarServiceError):
    """Event fetch failure."""


class NetworkError(FetchError):
    """Transport failure or an unexpected HTTP status."""


class DecodeError(FetchError):
    """The response body is not a valid events list."""
