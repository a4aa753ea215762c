"""
Gmail API Client Module

Handles the Gmail REST calls used by receipt sync: message search,
history listing, message fetch and profile lookup. Every non-2xx response
is mapped onto the GmailApiError taxonomy; a 401 triggers a single forced
token refresh and retry.
"""

import base64
import binascii
import re
from datetime import date
from email.utils import parseaddr

import requests
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials

from ingest.error_tracking import (
    AuthExpiredError,
    AuthRequiredError,
    CursorExpiredError,
    GmailApiError,
    GmailNetworkError,
    MessageNotFoundError,
    RateLimitedError,
)
from ingest.logging_config import get_logger

logger = get_logger(__name__)

# Gmail API base URL (authenticated user)
GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1/users/me"

REQUEST_TIMEOUT = 60
MAX_PAGE_SIZE = 500


def build_gmail_session(access_token: str) -> AuthorizedSession:
    """
    Build a requests-based Gmail session for a bearer token.

    Automatic refresh on 401 is disabled; token refresh belongs to the
    TokenManager so that expired credentials surface as AuthExpiredError.

    Args:
        access_token: Valid OAuth access token

    Returns:
        AuthorizedSession object for making Gmail API requests
    """
    credentials = Credentials(token=access_token)
    return AuthorizedSession(credentials, refresh_status_codes=())


def raise_for_gmail_status(response, cursor_request: bool = False) -> None:
    """
    Map a Gmail API response status onto the error taxonomy.

    Args:
        response: requests.Response
        cursor_request: True for history listing, where 404 means the
            start history id is no longer valid

    Raises:
        RateLimitedError, AuthExpiredError, CursorExpiredError,
        MessageNotFoundError, GmailApiError
    """
    status = response.status_code
    if 200 <= status < 300:
        return

    body = (response.text or "")[:500]
    if status == 429:
        raise RateLimitedError("Gmail API rate limit exceeded", status_code=status)
    if status == 401:
        raise AuthExpiredError("Gmail access token rejected", status_code=status)
    if status == 404:
        if cursor_request:
            raise CursorExpiredError("History ID expired, full sync needed", status_code=status)
        raise MessageNotFoundError(f"Gmail resource not found: {body}", status_code=status)
    raise GmailApiError(f"Gmail API request failed ({status}): {body}", status_code=status)


def build_sender_query(sender_emails: list[str], after: date | None = None) -> str:
    """
    Build Gmail search query restricted to sender addresses.

    Args:
        sender_emails: Enabled sender filter addresses
        after: Only messages after this date

    Returns:
        Query such as '(from:a@x.com OR from:b@y.com) after:2024/01/15'
    """
    from_clause = " OR ".join(f"from:{email}" for email in sender_emails)
    query = f"({from_clause})"
    if after:
        query = f"{query} after:{after.strftime('%Y/%m/%d')}"
    return query


def decode_body_data(data: str) -> str | None:
    """Decode URL-safe base64 body data (Gmail omits padding)."""
    try:
        padded = data + "=" * (-len(data) % 4)
        return base64.urlsafe_b64decode(padded).decode("utf-8")
    except (binascii.Error, ValueError):
        return None


def _find_html_in_parts(parts: list[dict]) -> str | None:
    for part in parts:
        data = part.get("body", {}).get("data")
        if part.get("mimeType") == "text/html" and data:
            return decode_body_data(data)
        # Recurse into nested multipart
        if part.get("parts"):
            html = _find_html_in_parts(part["parts"])
            if html:
                return html
    return None


def extract_html_body(message: dict) -> str | None:
    """
    Extract the HTML body from a full-format message.

    Checks the payload itself, then searches MIME parts recursively.
    """
    payload = message.get("payload") or {}
    data = payload.get("body", {}).get("data")
    if payload.get("mimeType") == "text/html" and data:
        return decode_body_data(data)
    if payload.get("parts"):
        return _find_html_in_parts(payload["parts"])
    return None


def get_header(message: dict, name: str) -> str | None:
    """Case-insensitive header lookup."""
    for header in (message.get("payload") or {}).get("headers", []):
        if header.get("name", "").lower() == name.lower():
            return header.get("value")
    return None


def parse_sender_email(from_header: str | None) -> str:
    """'Amazon <auto-confirm@amazon.com>' -> 'auto-confirm@amazon.com'."""
    if not from_header:
        return ""
    _, address = parseaddr(from_header)
    if not address:
        match = re.search(r"[\w.+-]+@[\w.-]+", from_header)
        address = match.group(0) if match else from_header
    return address.strip().lower()


class GmailClient:
    """
    Gmail API calls authenticated through a token provider.

    Args:
        token_provider: Callable(force_refresh: bool) -> access token
            (normally TokenManager.get_valid_access_token)
        access_token: Token already obtained for this cycle (optional)
    """

    def __init__(self, token_provider, access_token: str | None = None, timeout: int = REQUEST_TIMEOUT):
        self.token_provider = token_provider
        self.timeout = timeout
        self._session = build_gmail_session(access_token) if access_token else None

    def _get_session(self, force_refresh: bool = False) -> AuthorizedSession:
        if self._session is None or force_refresh:
            self._session = build_gmail_session(self.token_provider(force_refresh))
        return self._session

    def _send(self, session, url: str, params: dict | None, cursor_request: bool) -> dict:
        try:
            response = session.request("GET", url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise GmailNetworkError(f"Gmail API request failed: {e}") from e
        raise_for_gmail_status(response, cursor_request=cursor_request)
        return response.json()

    def request(self, path: str, params: dict | None = None, cursor_request: bool = False) -> dict:
        """
        GET a Gmail API path, retrying once with a fresh token on 401.

        Raises:
            AuthRequiredError: Token rejected after a forced refresh
            GmailApiError: Any other API failure
        """
        url = f"{GMAIL_API_BASE}/{path}"
        try:
            return self._send(self._get_session(), url, params, cursor_request)
        except AuthExpiredError:
            logger.info("Gmail returned 401, forcing token refresh")

        session = self._get_session(force_refresh=True)
        try:
            return self._send(session, url, params, cursor_request)
        except AuthExpiredError as e:
            raise AuthRequiredError("Gmail rejected the refreshed access token") from e

    def get_profile(self) -> dict:
        """Profile of the authenticated user (emailAddress, historyId)."""
        return self.request("profile")

    def list_messages(self, query: str, page_token: str | None = None, max_results: int = 50) -> dict:
        """
        List messages matching a search query.

        Returns:
            Dictionary with 'messages' list and 'nextPageToken'
        """
        params = {"q": query, "maxResults": min(max_results, MAX_PAGE_SIZE)}
        if page_token:
            params["pageToken"] = page_token

        result = self.request("messages", params=params)
        return {
            "messages": result.get("messages", []),
            "nextPageToken": result.get("nextPageToken"),
        }

    def list_history(self, start_history_id: str, page_token: str | None = None) -> dict:
        """
        List messageAdded history records since a history id.

        Raises:
            CursorExpiredError: start_history_id is too old (HTTP 404)
        """
        params = {"startHistoryId": start_history_id, "historyTypes": "messageAdded"}
        if page_token:
            params["pageToken"] = page_token

        result = self.request("history", params=params, cursor_request=True)
        return {
            "history": result.get("history", []),
            "nextPageToken": result.get("nextPageToken"),
            "historyId": result.get("historyId"),
        }

    def get_message(self, message_id: str) -> dict:
        """Fetch a full-format message (headers and MIME parts)."""
        return self.request(f"messages/{message_id}", params={"format": "full"})
