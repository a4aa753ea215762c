"""
Gmail OAuth 2.0 Authentication Module

Handles the OAuth 2.0 authorization code flow (loopback redirect, optional
PKCE), token refresh and revocation, and token encryption at rest.

TokenManager is the single source of bearer tokens for sync: it refreshes
shortly before expiry and reports any unusable credential as
AuthRequiredError.
"""

import base64
import hashlib
import secrets
import threading
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

import requests
from cryptography.fernet import Fernet, InvalidToken

from ingest.error_tracking import AuthRequiredError, OAuthError
from ingest.logging_config import get_logger

logger = get_logger(__name__)

# Google OAuth URLs
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"

# Gmail API scope - readonly access to inbox
GMAIL_SCOPE = "https://www.googleapis.com/auth/gmail.readonly"

TOKEN_REQUEST_TIMEOUT = 10
DEFAULT_EXPIRES_IN = 3600

AUTH_REQUIRED_EVENT = "gmail:auth-required"


def generate_state() -> str:
    """Generate a random state parameter for OAuth security (CSRF prevention)."""
    return secrets.token_urlsafe(32)


def generate_pkce_challenge() -> tuple:
    """
    Generate PKCE code_verifier and code_challenge.

    PKCE (Proof Key for Code Exchange) adds security for public clients
    by requiring a code_verifier to be sent with the token exchange.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    code_verifier = (
        base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("utf-8").rstrip("=")
    )
    code_challenge = (
        base64.urlsafe_b64encode(hashlib.sha256(code_verifier.encode()).digest())
        .decode("utf-8")
        .rstrip("=")
    )
    return code_verifier, code_challenge


def get_authorization_url(
    client_id: str,
    redirect_uri: str,
    state: str | None = None,
    code_challenge: str | None = None,
) -> str:
    """
    Generate Google OAuth authorization URL for Gmail access.

    Args:
        client_id: OAuth client id
        redirect_uri: Loopback callback URL
        state: CSRF state echoed back on the callback
        code_challenge: PKCE S256 challenge (omitted when None)

    Returns:
        Authorization URL to open in the browser
    """
    if not client_id:
        raise OAuthError("OAuth client id is not configured")

    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": GMAIL_SCOPE,
        "access_type": "offline",  # Request refresh token
        "prompt": "consent",  # Force consent screen for refresh token
    }
    if state:
        params["state"] = state
    if code_challenge:
        params["code_challenge"] = code_challenge
        params["code_challenge_method"] = "S256"

    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


def _post_token_request(data: dict, action: str) -> dict:
    headers = {"Content-Type": "application/x-www-form-urlencoded"}
    try:
        response = requests.post(
            GOOGLE_TOKEN_URL, data=data, headers=headers, timeout=TOKEN_REQUEST_TIMEOUT
        )
    except requests.RequestException as e:
        raise OAuthError(f"Token {action} request failed: {e}") from e

    if not response.ok:
        raise OAuthError(f"Token {action} failed ({response.status_code}): {response.text[:300]}")

    try:
        return response.json()
    except ValueError as e:
        raise OAuthError(f"Token {action} returned invalid JSON") from e


def _expires_at(token_data: dict) -> datetime:
    expires_in = int(token_data.get("expires_in", DEFAULT_EXPIRES_IN))
    return datetime.now(UTC) + timedelta(seconds=expires_in)


def exchange_code_for_token(
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    code_verifier: str | None = None,
) -> dict:
    """
    Exchange authorization code for access and refresh tokens.

    Returns:
        Dictionary with 'access_token', 'refresh_token', 'expires_at'

    Raises:
        OAuthError: HTTP failure or no refresh token in the response
    """
    data = {
        "grant_type": "authorization_code",
        "client_id": client_id,
        "client_secret": client_secret,
        "redirect_uri": redirect_uri,
        "code": code,
    }
    if code_verifier:
        data["code_verifier"] = code_verifier

    token_data = _post_token_request(data, "exchange")

    if not token_data.get("access_token"):
        raise OAuthError("Token exchange response did not include an access token")
    if not token_data.get("refresh_token"):
        raise OAuthError(
            "No refresh token received. Revoke app access in your Google account and connect again."
        )

    logger.info("Gmail token exchange successful")
    return {
        "access_token": token_data["access_token"],
        "refresh_token": token_data["refresh_token"],
        "expires_at": _expires_at(token_data),
        "scope": token_data.get("scope", GMAIL_SCOPE),
    }


def refresh_access_token(refresh_token: str, client_id: str, client_secret: str) -> dict:
    """
    Refresh an expired access token.

    Returns:
        Dictionary with new 'access_token' and 'expires_at'

    Raises:
        OAuthError: HTTP failure or malformed response
    """
    data = {
        "grant_type": "refresh_token",
        "client_id": client_id,
        "client_secret": client_secret,
        "refresh_token": refresh_token,
    }
    token_data = _post_token_request(data, "refresh")

    if not token_data.get("access_token"):
        raise OAuthError("Token refresh response did not include an access token")

    return {
        "access_token": token_data["access_token"],
        "expires_at": _expires_at(token_data),
    }


def revoke_token(token: str) -> bool:
    """Revoke a token with Google (best effort; failures are logged only)."""
    try:
        response = requests.post(
            GOOGLE_REVOKE_URL,
            params={"token": token},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=TOKEN_REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.warning(f"Token revocation request failed: {e}")
        return False

    if not response.ok:
        logger.warning(f"Token revocation returned {response.status_code}")
        return False
    return True


def encrypt_token(token: str, cipher: Fernet | None) -> str:
    """Encrypt sensitive token for storage."""
    if not cipher:
        logger.warning(
            "ENCRYPTION_KEY not set. Storing token unencrypted (NOT recommended for production)"
        )
        return token
    return cipher.encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str, cipher: Fernet | None) -> str:
    """Decrypt stored token."""
    if not cipher:
        return encrypted_token
    return cipher.decrypt(encrypted_token.encode()).decode()


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class TokenManager:
    """
    Supplies valid Gmail access tokens from the Store.

    Args:
        store: Store with credential and token operations
        config: IngestConfig (refresh buffer, cipher)
        notifier: Callable(event, payload) for UI notifications
    """

    def __init__(self, store, config, notifier=None):
        self.store = store
        self.config = config
        self.notifier = notifier or (lambda event, payload: None)
        self._refresh_lock = threading.Lock()

    def _auth_required(self, reason: str, cause: Exception | None = None):
        logger.warning(f"Gmail authorization required: {reason}")
        self.notifier(AUTH_REQUIRED_EVENT, {"reason": reason})
        raise AuthRequiredError(reason) from cause

    def get_client_credentials(self) -> tuple:
        """
        Stored OAuth client credentials.

        Returns:
            Tuple of (client_id, client_secret) or None when not configured
        """
        creds = self.store.get_credentials()
        if not creds:
            return None
        return creds["client_id"], decrypt_token(creds["client_secret"], self.config.cipher)

    def save_token_set(self, token_data: dict, email_address: str | None) -> None:
        """Persist a freshly authorized token set (encrypted)."""
        cipher = self.config.cipher
        self.store.save_tokens(
            email_address=email_address,
            access_token=encrypt_token(token_data["access_token"], cipher),
            refresh_token=encrypt_token(token_data["refresh_token"], cipher),
            expires_at=token_data["expires_at"],
        )

    def get_valid_access_token(self, force_refresh: bool = False) -> str:
        """
        Get a valid access token, refreshing if it expires within the buffer.

        Args:
            force_refresh: Refresh even if the stored token looks valid
                (used after the API rejected it with 401)

        Returns:
            Access token string

        Raises:
            AuthRequiredError: Not connected, missing credentials, or refresh failed
        """
        with self._refresh_lock:
            tokens = self.store.get_tokens()
            if not tokens:
                self._auth_required("Gmail is not connected")

            cipher = self.config.cipher
            try:
                access_token = decrypt_token(tokens["access_token"], cipher)
                refresh_token = decrypt_token(tokens["refresh_token"], cipher)
            except InvalidToken as e:
                self._auth_required("Stored Gmail tokens could not be decrypted", e)

            buffer = timedelta(seconds=self.config.token_refresh_buffer_seconds)
            expires_at = _as_utc(tokens["expires_at"])
            if not force_refresh and expires_at > datetime.now(UTC) + buffer:
                return access_token

            try:
                credentials = self.get_client_credentials()
            except InvalidToken as e:
                self._auth_required("Stored OAuth client secret could not be decrypted", e)
            if not credentials:
                self._auth_required("OAuth client credentials are not configured")

            client_id, client_secret = credentials
            logger.info("Refreshing Gmail access token")
            try:
                new_tokens = refresh_access_token(refresh_token, client_id, client_secret)
            except OAuthError as e:
                self._auth_required(f"Token refresh failed: {e}", e)

            self.store.update_access_token(
                encrypt_token(new_tokens["access_token"], cipher), new_tokens["expires_at"]
            )
            return new_tokens["access_token"]

    def revoke_and_clear(self) -> None:
        """Best-effort revoke of the stored token set, then delete it."""
        tokens = self.store.get_tokens()
        if tokens:
            try:
                revoke_token(decrypt_token(tokens["refresh_token"], self.config.cipher))
            except InvalidToken:
                logger.warning("Skipping revocation: stored token could not be decrypted")
        self.store.delete_tokens()
