"""Global Settings - Loads configuration from environment variables.

Centralizes all configuration so the OAuth client, scheduler and CLI
don't read env vars directly.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    """Application-wide settings loaded from environment variables."""

    # Google OAuth client (optional: can also be stored via setup_calendar.py)
    google_client_id: str = ""
    google_client_secret: str = ""

    # Loopback redirect listener
    redirect_port: int = 8080
    redirect_path: str = "/oauth2callback"

    # Local persistence
    state_path: str = "data/state.json"
    sync_log_dir: str = "logs/sync_history"

    # User preferences
    user_timezone: str = ""
    alarm_lead_minutes: int = 2

    # Network
    request_timeout: int = 30
    auth_timeout: int = 300

    @property
    def redirect_uri(self) -> str:
        """The redirect URI registered with the OAuth provider."""
        return f"http://localhost:{self.redirect_port}{self.redirect_path}"


def load_settings() -> Settings:
    """Load settings from environment variables with sensible defaults.

    Environment variables:
        GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET: OAuth client credentials
        OAUTH_REDIRECT_PORT: Loopback port for the OAuth redirect (default: 8080)
        OAUTH_REDIRECT_PATH: Callback path (default: "/oauth2callback")
        STATE_PATH: JSON file backing the key-value store
        SYNC_LOG_DIR: Directory for daily sync history logs
        USER_TIMEZONE: IANA timezone string (empty: system local time)
        ALARM_LEAD_MINUTES: Minutes before an event to ring (default: 2)
        REQUEST_TIMEOUT: HTTP timeout in seconds
        AUTH_TIMEOUT: Seconds to wait for the browser redirect

    Returns:
        A populated Settings instance.
    """
    redirect_path = os.getenv("OAUTH_REDIRECT_PATH", "/oauth2callback").strip() or "/oauth2callback"
    if not redirect_path.startswith("/"):
        redirect_path = "/" + redirect_path

    return Settings(
        google_client_id=os.getenv("GOOGLE_CLIENT_ID", "").strip(),
        google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", "").strip(),
        redirect_port=int(os.getenv("OAUTH_REDIRECT_PORT", "8080")),
        redirect_path=redirect_path,
        state_path=os.getenv("STATE_PATH", "data/state.json"),
        sync_log_dir=os.getenv("SYNC_LOG_DIR", "logs/sync_history"),
        user_timezone=os.getenv("USER_TIMEZONE", "").strip(),
        alarm_lead_minutes=int(os.getenv("ALARM_LEAD_MINUTES", "2")),
        request_timeout=int(os.getenv("REQUEST_TIMEOUT", "30")),
        auth_timeout=int(os.getenv("AUTH_TIMEOUT", "300")),
    )
