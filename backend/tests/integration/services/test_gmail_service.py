"""Tests for the Gmail service commands."""

from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlparse

import pytest
import responses

from ingest.error_tracking import OAuthError
from ingest.gmail_auth import GOOGLE_REVOKE_URL, GOOGLE_TOKEN_URL, decrypt_token
from ingest.gmail_client import GMAIL_API_BASE
from ingest.gmail_poller import SYNC_RESULT_EVENT
from ingest.gmail_sync import SyncCycleResult
from ingest.oauth_callback import AuthBroker
from services.gmail_service import GmailService


class StubBroker(AuthBroker):
    """Returns a fixed code (or raises) and records the consent URL."""

    def __init__(self, code="code-1", error=None):
        self.code = code
        self.error = error
        self.requests = []

    def authorize(self, auth_url, state):
        self.requests.append((auth_url, state))
        if self.error:
            raise self.error
        return self.code


@pytest.fixture
def broker():
    return StubBroker()


@pytest.fixture
def service(store, config, notifier, broker):
    service = GmailService(store, config, notifier, broker=broker)
    yield service
    service.shutdown()


def save_connection(service):
    service.save_credentials("client-id", "client-secret")
    service.token_manager.save_token_set(
        {
            "access_token": "access-1",
            "refresh_token": "refresh-1",
            "expires_at": datetime.now(UTC) + timedelta(hours=1),
        },
        "me@example.com",
    )


# ============================================================================
# CLIENT CREDENTIALS
# ============================================================================


def test_save_credentials_encrypts_secret(service, store, config):
    service.save_credentials(" client-id ", "client-secret")

    stored = store.get_credentials()
    assert service.has_credentials()
    assert stored["client_id"] == "client-id"
    assert stored["client_secret"] != "client-secret"
    assert decrypt_token(stored["client_secret"], config.cipher) == "client-secret"


@pytest.mark.parametrize("client_id,client_secret", [("", "secret"), ("id", "  ")])
def test_save_credentials_requires_both(service, client_id, client_secret):
    with pytest.raises(ValueError, match="required"):
        service.save_credentials(client_id, client_secret)


def test_delete_credentials_clears_connection(service, store):
    save_connection(service)
    store.save_sync_state("100")
    store.mark_message_processed("m1", "imported")

    service.delete_credentials()

    assert not service.has_credentials()
    assert store.get_tokens() is None
    assert store.get_sync_state()["history_id"] is None
    assert store.count_processed_messages() == 0


# ============================================================================
# CONNECTION
# ============================================================================


def test_connect_requires_credentials(service):
    with pytest.raises(ValueError, match="credentials"):
        service.connect()


@responses.activate
def test_connect_flow(service, store, config, broker, mocker):
    start = mocker.patch.object(service.poller, "start")
    service.save_credentials("client-id", "client-secret")
    responses.add(
        responses.POST,
        GOOGLE_TOKEN_URL,
        json={"access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 3600},
    )
    responses.add(
        responses.GET,
        f"{GMAIL_API_BASE}/profile",
        json={"emailAddress": "me@example.com", "historyId": "42"},
    )

    status = service.connect()

    assert status["is_connected"] is True
    assert status["email"] == "me@example.com"
    start.assert_called_once()

    auth_url, state = broker.requests[0]
    auth_params = {k: v[0] for k, v in parse_qs(urlparse(auth_url).query).items()}
    assert auth_params["state"] == state
    assert auth_params["redirect_uri"] == config.redirect_uri
    assert auth_params["code_challenge_method"] == "S256"

    token_body = {k: v[0] for k, v in parse_qs(responses.calls[0].request.body).items()}
    assert token_body["code"] == "code-1"
    assert token_body["client_secret"] == "client-secret"
    assert "code_verifier" in token_body

    tokens = store.get_tokens()
    assert decrypt_token(tokens["refresh_token"], config.cipher) == "refresh-1"


@responses.activate
def test_connect_without_pkce(service, config, broker, mocker):
    mocker.patch.object(service.poller, "start")
    config.oauth_use_pkce = False
    service.save_credentials("client-id", "client-secret")
    responses.add(
        responses.POST,
        GOOGLE_TOKEN_URL,
        json={"access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 3600},
    )
    responses.add(responses.GET, f"{GMAIL_API_BASE}/profile", json={"emailAddress": "me@x.com"})

    service.connect()

    assert "code_challenge" not in broker.requests[0][0]
    assert "code_verifier" not in responses.calls[0].request.body


def test_connect_denied(store, config, notifier):
    broker = StubBroker(error=OAuthError("OAuth authorization was denied or failed"))
    service = GmailService(store, config, notifier, broker=broker)
    service.save_credentials("client-id", "client-secret")

    with pytest.raises(OAuthError):
        service.connect()

    assert store.get_tokens() is None
    assert not service.get_status()["is_polling"]


@responses.activate
def test_disconnect_revokes_and_forgets(service, store):
    save_connection(service)
    store.save_sync_state("100")
    responses.add(responses.POST, GOOGLE_REVOKE_URL, status=200)

    service.disconnect()

    assert store.get_tokens() is None
    assert store.get_sync_state()["history_id"] is None
    assert len(responses.calls) == 1
    # Client credentials survive a disconnect
    assert service.has_credentials()


def test_status_when_disconnected(service):
    status = service.get_status()

    assert status["is_connected"] is False
    assert status["email"] is None
    assert status["is_polling"] is False
    assert status["sync_status"] == {"state": "idle", "detail": None}


# ============================================================================
# POLLING
# ============================================================================


def test_start_polling_requires_connection(service):
    with pytest.raises(ValueError, match="not connected"):
        service.start_polling()

    assert service.resume_polling() is False


def test_resume_polling_when_connected(service, mocker):
    start = mocker.patch.object(service.poller, "start")
    save_connection(service)

    assert service.resume_polling() is True
    start.assert_called_once()


def test_sync_now_returns_result(service, notifier, mocker):
    mocker.patch.object(
        service.engine,
        "run_cycle",
        return_value=SyncCycleResult(new_transactions=3, emails_processed=4, mode="incremental"),
    )

    result = service.sync_now()

    assert result["new_transactions"] == 3
    assert result["mode"] == "incremental"
    assert notifier.payloads(SYNC_RESULT_EVENT) == [result]


# ============================================================================
# SENDER FILTERS
# ============================================================================


def test_add_sender_filter(service):
    sender = service.add_sender_filter(" Receipts@Lime.com ", "")

    assert sender["email"] == "receipts@lime.com"
    assert sender["label"] == "Receipts@Lime.com"
    assert sender["id"] in {f["id"] for f in service.list_sender_filters()}


@pytest.mark.parametrize("email", ["", "   ", "two words@x.com"])
def test_add_sender_filter_rejects_invalid(service, email):
    with pytest.raises(ValueError, match="Invalid sender address"):
        service.add_sender_filter(email, "Label")


def test_toggle_and_remove_sender_filter(service):
    sender = service.add_sender_filter("receipts@lime.com", "Lime")

    assert service.toggle_sender_filter(sender["id"], False)
    assert service.remove_sender_filter(sender["id"])
    assert "receipts@lime.com" not in {f["email"] for f in service.list_sender_filters()}
