"""Integration tests for Gmail OAuth and the token manager.

Tests critical integration points:
- Authorization URL and PKCE parameters
- Token exchange, refresh and revocation against the Google endpoints
- Refresh shortly before expiry (buffer), forced refresh, failure reporting
"""

import base64
import hashlib
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlparse

import pytest
import requests
import responses
from freezegun import freeze_time

from ingest.error_tracking import AuthRequiredError, OAuthError
from ingest.gmail_auth import (
    AUTH_REQUIRED_EVENT,
    GMAIL_SCOPE,
    GOOGLE_AUTH_URL,
    GOOGLE_REVOKE_URL,
    GOOGLE_TOKEN_URL,
    TokenManager,
    decrypt_token,
    encrypt_token,
    exchange_code_for_token,
    generate_pkce_challenge,
    get_authorization_url,
    refresh_access_token,
    revoke_token,
)

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def form_body(call) -> dict:
    return {k: v[0] for k, v in parse_qs(call.request.body).items()}


@pytest.fixture
def token_manager(store, config, notifier):
    store.save_credentials("client-id", encrypt_token("client-secret", config.cipher))
    return TokenManager(store, config, notifier)


def connect(token_manager, expires_at):
    token_manager.save_token_set(
        {"access_token": "access-old", "refresh_token": "refresh-1", "expires_at": expires_at},
        "me@example.com",
    )


# ============================================================================
# AUTHORIZATION URL
# ============================================================================


def test_pkce_challenge_matches_verifier():
    verifier, challenge = generate_pkce_challenge()

    expected = (
        base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
        .decode()
        .rstrip("=")
    )
    assert challenge == expected
    assert 43 <= len(verifier) <= 128


def test_authorization_url_parameters():
    url = get_authorization_url(
        "client-id", "http://localhost:8249/callback", state="abc", code_challenge="xyz"
    )

    assert url.startswith(GOOGLE_AUTH_URL)
    params = {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}
    assert params["client_id"] == "client-id"
    assert params["redirect_uri"] == "http://localhost:8249/callback"
    assert params["scope"] == GMAIL_SCOPE
    assert params["access_type"] == "offline"
    assert params["prompt"] == "consent"
    assert params["state"] == "abc"
    assert params["code_challenge"] == "xyz"
    assert params["code_challenge_method"] == "S256"


def test_authorization_url_without_pkce():
    url = get_authorization_url("client-id", "http://localhost:8249/callback", state="abc")

    assert "code_challenge" not in url


def test_authorization_url_requires_client_id():
    with pytest.raises(OAuthError):
        get_authorization_url("", "http://localhost:8249/callback")


# ============================================================================
# TOKEN ENDPOINTS
# ============================================================================


@responses.activate
@freeze_time(NOW)
def test_exchange_code_for_token():
    responses.add(
        responses.POST,
        GOOGLE_TOKEN_URL,
        json={"access_token": "a1", "refresh_token": "r1", "expires_in": 3599},
        status=200,
    )

    tokens = exchange_code_for_token(
        "code-1", "client-id", "secret", "http://localhost:8249/callback", code_verifier="v1"
    )

    assert tokens["access_token"] == "a1"
    assert tokens["refresh_token"] == "r1"
    assert tokens["expires_at"] == NOW + timedelta(seconds=3599)
    body = form_body(responses.calls[0])
    assert body["grant_type"] == "authorization_code"
    assert body["code"] == "code-1"
    assert body["code_verifier"] == "v1"


@responses.activate
def test_exchange_without_refresh_token_fails():
    responses.add(responses.POST, GOOGLE_TOKEN_URL, json={"access_token": "a1"}, status=200)

    with pytest.raises(OAuthError, match="No refresh token received"):
        exchange_code_for_token("code-1", "client-id", "secret", "http://localhost/callback")


@responses.activate
def test_exchange_http_error():
    responses.add(responses.POST, GOOGLE_TOKEN_URL, json={"error": "invalid_grant"}, status=400)

    with pytest.raises(OAuthError, match="400"):
        exchange_code_for_token("code-1", "client-id", "secret", "http://localhost/callback")


@responses.activate
@freeze_time(NOW)
def test_refresh_access_token():
    responses.add(
        responses.POST, GOOGLE_TOKEN_URL, json={"access_token": "a2", "expires_in": 60}, status=200
    )

    tokens = refresh_access_token("r1", "client-id", "secret")

    assert tokens == {"access_token": "a2", "expires_at": NOW + timedelta(seconds=60)}
    body = form_body(responses.calls[0])
    assert body["grant_type"] == "refresh_token"
    assert body["refresh_token"] == "r1"


@responses.activate
def test_revoke_token():
    responses.add(responses.POST, GOOGLE_REVOKE_URL, status=200)

    assert revoke_token("r1") is True
    assert parse_qs(urlparse(responses.calls[0].request.url).query)["token"] == ["r1"]


@responses.activate
def test_revoke_token_failures_are_not_raised():
    responses.add(responses.POST, GOOGLE_REVOKE_URL, status=400)
    responses.add(responses.POST, GOOGLE_REVOKE_URL, body=requests.ConnectionError("offline"))

    assert revoke_token("r1") is False
    assert revoke_token("r1") is False


def test_token_encryption(config):
    encrypted = encrypt_token("secret-token", config.cipher)

    assert encrypted != "secret-token"
    assert decrypt_token(encrypted, config.cipher) == "secret-token"
    assert encrypt_token("plain", None) == "plain"


# ============================================================================
# TOKEN MANAGER
# ============================================================================


@freeze_time(NOW)
def test_valid_token_returned_without_refresh(token_manager, store):
    connect(token_manager, NOW + timedelta(minutes=30))

    assert token_manager.get_valid_access_token() == "access-old"
    # Stored encrypted
    assert store.get_tokens()["access_token"] != "access-old"


@responses.activate
@freeze_time(NOW)
def test_refresh_within_buffer(token_manager, store, config):
    connect(token_manager, NOW + timedelta(seconds=30))
    responses.add(
        responses.POST, GOOGLE_TOKEN_URL, json={"access_token": "access-new", "expires_in": 3600}
    )

    assert token_manager.get_valid_access_token() == "access-new"

    tokens = store.get_tokens()
    assert decrypt_token(tokens["access_token"], config.cipher) == "access-new"
    assert decrypt_token(tokens["refresh_token"], config.cipher) == "refresh-1"
    body = form_body(responses.calls[0])
    assert body["client_secret"] == "client-secret"


@responses.activate
@freeze_time(NOW)
def test_force_refresh(token_manager):
    connect(token_manager, NOW + timedelta(hours=1))
    responses.add(
        responses.POST, GOOGLE_TOKEN_URL, json={"access_token": "access-new", "expires_in": 3600}
    )

    assert token_manager.get_valid_access_token(force_refresh=True) == "access-new"
    assert len(responses.calls) == 1


def test_not_connected_requires_auth(token_manager, notifier):
    with pytest.raises(AuthRequiredError):
        token_manager.get_valid_access_token()

    assert notifier.names() == [AUTH_REQUIRED_EVENT]


@responses.activate
@freeze_time(NOW)
def test_refresh_failure_requires_auth(token_manager, notifier):
    connect(token_manager, NOW - timedelta(minutes=5))
    responses.add(responses.POST, GOOGLE_TOKEN_URL, json={"error": "invalid_grant"}, status=400)

    with pytest.raises(AuthRequiredError, match="Token refresh failed"):
        token_manager.get_valid_access_token()

    assert notifier.names() == [AUTH_REQUIRED_EVENT]


@freeze_time(NOW)
def test_missing_client_credentials_requires_auth(token_manager, store):
    connect(token_manager, NOW - timedelta(minutes=5))
    store.delete_credentials()

    with pytest.raises(AuthRequiredError, match="not configured"):
        token_manager.get_valid_access_token()


def test_undecryptable_tokens_require_auth(token_manager, store):
    store.save_tokens("me@example.com", "not-ciphertext", "not-ciphertext", NOW)

    with pytest.raises(AuthRequiredError, match="could not be decrypted"):
        token_manager.get_valid_access_token()


def test_client_credentials_decrypted(token_manager):
    assert token_manager.get_client_credentials() == ("client-id", "client-secret")


@responses.activate
def test_revoke_and_clear(token_manager, store):
    connect(token_manager, NOW)
    responses.add(responses.POST, GOOGLE_REVOKE_URL, status=500)

    token_manager.revoke_and_clear()

    # Revocation failure does not keep the tokens around
    assert store.get_tokens() is None
    assert parse_qs(urlparse(responses.calls[0].request.url).query)["token"] == ["refresh-1"]
