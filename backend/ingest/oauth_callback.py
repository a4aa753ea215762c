"""
OAuth Redirect Listener

Receives the authorization-code redirect for the loopback OAuth flow.
A throwaway Flask app is served on localhost:{port}/callback until the
first callback arrives or the timeout passes.
"""

import secrets
import threading
import time
import webbrowser
from abc import ABC, abstractmethod

from flask import Flask, request
from werkzeug.serving import make_server

from ingest.error_tracking import OAuthError
from ingest.logging_config import get_logger

logger = get_logger(__name__)

CALLBACK_PATH = "/callback"
DENIED_MESSAGE = "OAuth authorization was denied or failed"

SUCCESS_PAGE = (
    "<html><body><h2>Gmail connected</h2>"
    "<p>You can close this window and return to the app.</p></body></html>"
)
FAILURE_PAGE = (
    "<html><body><h2>Authorization failed</h2>"
    "<p>You can close this window and try again.</p></body></html>"
)


class AuthBroker(ABC):
    """Obtains an authorization code for an authorization URL."""

    @abstractmethod
    def authorize(self, auth_url: str, state: str) -> str:
        """
        Send the user to auth_url and wait for the redirect.

        Returns:
            Authorization code

        Raises:
            OAuthError: Denied, state mismatch, or timed out
        """


def create_callback_app(result: dict, done: threading.Event) -> Flask:
    """
    Build the callback app; the first /callback request fills `result`
    with code/state/error and sets `done`.
    """
    app = Flask(__name__)

    @app.route(CALLBACK_PATH)
    def oauth_callback():
        if done.is_set():
            return FAILURE_PAGE, 409

        result["code"] = request.args.get("code")
        result["state"] = request.args.get("state")
        result["error"] = request.args.get("error")
        done.set()

        if result["error"] or not result["code"]:
            return FAILURE_PAGE, 400
        return SUCCESS_PAGE

    return app


def resolve_callback(result: dict, expected_state: str | None) -> str:
    """Validate a received callback and return its authorization code."""
    if result.get("error"):
        logger.warning(f"OAuth callback returned error: {result['error']}")
        raise OAuthError(DENIED_MESSAGE)
    if not result.get("code"):
        raise OAuthError(DENIED_MESSAGE)
    if expected_state is not None and not secrets.compare_digest(
        result.get("state") or "", expected_state
    ):
        logger.warning("OAuth callback state mismatch")
        raise OAuthError(DENIED_MESSAGE)
    return result["code"]


class LocalCallbackBroker(AuthBroker):
    """
    Loopback redirect broker.

    Args:
        port: Local port matching the registered redirect URI
        timeout: Seconds to wait for the browser redirect
        open_browser: Callable(url) that presents the consent page
    """

    def __init__(self, port: int, timeout: int = 300, open_browser=webbrowser.open):
        self.port = port
        self.timeout = timeout
        self.open_browser = open_browser

    def authorize(self, auth_url: str, state: str) -> str:
        result: dict = {}
        done = threading.Event()
        app = create_callback_app(result, done)

        server = make_server("127.0.0.1", self.port, app)
        server.timeout = 1
        logger.info(f"Waiting for OAuth callback on port {self.port}")

        try:
            self.open_browser(auth_url)
            deadline = time.monotonic() + self.timeout
            while not done.is_set() and time.monotonic() < deadline:
                server.handle_request()
        finally:
            server.server_close()

        if not done.is_set():
            raise OAuthError(f"Timed out waiting for OAuth callback after {self.timeout}s")

        return resolve_callback(result, state)
