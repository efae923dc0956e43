"""Loopback OAuth Redirect Listener.

A tiny Flask app bound to 127.0.0.1 that catches the browser redirect
from Google's consent screen:
- GET <callback path>?code=...&state=...  (or ?error=...)
- Always answers with a static "you can close this window" page

The captured query parameters are handed to the asyncio side through a
future, so the OAuth flow can simply ``await`` the callback.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from threading import Thread

from flask import Flask, Response, request
from werkzeug.serving import BaseWSGIServer, make_server

logger = logging.getLogger(__name__)

CLOSE_WINDOW_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Authorization complete</title>
    <meta charset="UTF-8">
</head>
<body>
    <h1>Authorization complete</h1>
    <p>You can close this window and return to the terminal.</p>
    <script>
        setTimeout(function() {
            window.close();
        }, 2000);
    </script>
</body>
</html>
"""


@dataclass
class OAuthCallback:
    """Query parameters carried by the provider's redirect."""

    code: str | None = None
    state: str | None = None
    error: str | None = None


def create_app(callback_path: str, on_callback: Callable[[OAuthCallback], None]) -> Flask:
    """Build the redirect-catching Flask app.

    Args:
        callback_path: Path registered as the OAuth redirect (e.g. "/oauth2callback").
        on_callback: Invoked with the parsed parameters on every redirect hit.

    Returns:
        The Flask application.
    """
    app = Flask(__name__)

    @app.route(callback_path, methods=["GET"])
    def oauth_callback() -> Response:
        callback = OAuthCallback(
            code=request.args.get("code"),
            state=request.args.get("state"),
            error=request.args.get("error"),
        )
        logger.info(
            "OAuth redirect received (code=%s, error=%s)",
            "yes" if callback.code else "no",
            callback.error,
        )
        on_callback(callback)
        return Response(CLOSE_WINDOW_HTML, status=200, mimetype="text/html")

    return app


class RedirectListener:
    """Runs the redirect app in a background thread while an authorization is pending."""

    def __init__(self, port: int = 8080, callback_path: str = "/oauth2callback", host: str = "127.0.0.1") -> None:
        self.host = host
        self.port = port
        self.callback_path = callback_path
        self._server: BaseWSGIServer | None = None
        self._thread: Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._future: asyncio.Future | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start serving, replacing any previous pending callback.

        Must be called from the event loop thread that will await the callback.
        """
        self._loop = asyncio.get_running_loop()
        self._future = self._loop.create_future()

        if self.is_running:
            return

        # Suppress Werkzeug request logs
        logging.getLogger("werkzeug").setLevel(logging.WARNING)

        app = create_app(self.callback_path, self._deliver)
        self._server = make_server(self.host, self.port, app, threaded=False)
        self._thread = Thread(target=self._server.serve_forever, name="OAuth Redirect Listener", daemon=True)
        self._thread.start()
        logger.info("OAuth redirect listener started on %s:%d%s", self.host, self.port, self.callback_path)

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            logger.info("OAuth redirect listener stopped")
        self._server = None
        self._thread = None

    async def wait_for_callback(self, timeout: float | None = None) -> OAuthCallback:
        """Wait for the next redirect hit.

        Raises:
            RuntimeError: If the listener was never started.
            asyncio.TimeoutError: If no redirect arrives in time.
        """
        if self._future is None:
            raise RuntimeError("Redirect listener is not started")
        return await asyncio.wait_for(asyncio.shield(self._future), timeout)

    def _deliver(self, callback: OAuthCallback) -> None:
        """Called on the server thread; hop onto the event loop."""
        if self._loop is None or self._future is None:
            return
        self._loop.call_soon_threadsafe(self._resolve, self._future, callback)

    @staticmethod
    def _resolve(future: asyncio.Future, callback: OAuthCallback) -> None:
        if not future.done():
            future.set_result(callback)
