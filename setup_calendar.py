"""Google Calendar OAuth Setup.

Run this once to sign in to Google Calendar. Stores the OAuth client id
and secret, opens your browser on the consent screen, catches the
redirect on the loopback listener, exchanges the code for tokens and
turns calendar alarms on.

Register http://localhost:8080/oauth2callback (or your OAUTH_REDIRECT_PORT
and OAUTH_REDIRECT_PATH) as a redirect URI of the OAuth client first.

Usage:
    python setup_calendar.py
    python setup_calendar.py --client-id ID --client-secret SECRET
"""

import argparse
import asyncio
import sys
import webbrowser

from config.settings import load_settings
from gcal.errors import CalendarServiceError
from main import Services, build_services


async def authorize(services: Services, open_browser: bool) -> None:
    """Run the interactive authorization and enable calendar alarms."""
    client = services.client
    url = client.build_authorization_url()

    print("Open this URL to authorize read-only calendar access:")
    print()
    print(f"  {url}")
    print()
    if open_browser:
        webbrowser.open(url)

    print(f"Waiting for the redirect on {services.settings.redirect_uri} ...")
    await client.complete_authorization(timeout=services.settings.auth_timeout)
    print("Authorization complete.")

    if not services.scheduler.state.is_enabled:
        await services.scheduler.enable()
        services.scheduler.stop()
        print(f"Calendar alarms enabled; {len(services.alarm_store.list())} alarms stored.")


def main() -> int:
    """Store client credentials and run the OAuth flow."""
    parser = argparse.ArgumentParser(description="Sign in to Google Calendar.")
    parser.add_argument("--client-id", help="OAuth client id (default: GOOGLE_CLIENT_ID or stored value)")
    parser.add_argument("--client-secret", help="OAuth client secret (default: GOOGLE_CLIENT_SECRET or stored value)")
    parser.add_argument("--no-browser", action="store_true", help="Only print the authorization URL.")
    args = parser.parse_args()

    services = build_services(load_settings())
    if args.client_id:
        services.client.configure_client(args.client_id, args.client_secret or "")

    print("Starting Google Calendar authentication...")
    print()

    try:
        asyncio.run(authorize(services, open_browser=not args.no_browser))
    except CalendarServiceError as e:
        print(f"  ERROR: {e}")
        return 1
    except asyncio.TimeoutError:
        print("  ERROR: No redirect received before the timeout.")
        return 1

    print()
    print("You can now run: python main.py run")
    return 0


if __name__ == "__main__":
    sys.exit(main())
