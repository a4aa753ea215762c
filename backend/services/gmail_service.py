"""
Gmail Service - Business Logic

Orchestrates the Gmail integration: OAuth client credentials, connect and
disconnect, background polling, manual sync and sender filters.
"""

from ingest.error_tracking import OAuthError
from ingest.gmail_auth import (
    TokenManager,
    encrypt_token,
    exchange_code_for_token,
    generate_pkce_challenge,
    generate_state,
    get_authorization_url,
)
from ingest.gmail_client import GmailClient
from ingest.gmail_poller import GmailPoller
from ingest.gmail_sync import SyncEngine
from ingest.logging_config import get_logger
from ingest.oauth_callback import LocalCallbackBroker

logger = get_logger(__name__)


class GmailService:
    """
    Gmail commands over one Store and configuration.

    Args:
        store: Store instance
        config: IngestConfig
        notifier: Callable(event, payload) for UI notifications
        broker: AuthBroker for the consent flow (defaults to the loopback listener)
    """

    def __init__(self, store, config, notifier=None, broker=None):
        self.store = store
        self.config = config
        self.notifier = notifier or (lambda event, payload: None)
        self.broker = broker or LocalCallbackBroker(
            config.oauth_redirect_port, timeout=config.oauth_callback_timeout
        )
        self.token_manager = TokenManager(store, config, self.notifier)
        self.engine = SyncEngine(store, self.token_manager, config)
        self.poller = GmailPoller(self.engine, config, self.notifier)

    # ============================================================================
    # CLIENT CREDENTIALS
    # ============================================================================

    def save_credentials(self, client_id: str, client_secret: str) -> None:
        client_id = (client_id or "").strip()
        client_secret = (client_secret or "").strip()
        if not client_id or not client_secret:
            raise ValueError("Client ID and client secret are required")

        self.store.save_credentials(client_id, encrypt_token(client_secret, self.config.cipher))
        logger.info("Gmail OAuth client credentials saved")

    def has_credentials(self) -> bool:
        return self.store.has_credentials()

    def delete_credentials(self) -> None:
        """Remove credentials along with every piece of connection state."""
        self.poller.stop()
        self.store.delete_tokens()
        self.store.clear_sync_state()
        self.store.clear_processed_messages()
        self.store.delete_credentials()
        logger.info("Gmail OAuth client credentials deleted")

    # ============================================================================
    # CONNECTION
    # ============================================================================

    def connect(self) -> dict:
        """
        Run the consent flow, store the token set and start polling.

        Returns:
            Status dict (see get_status())

        Raises:
            ValueError: No client credentials saved
            OAuthError: Consent denied, timed out, or token exchange failed
        """
        credentials = self.token_manager.get_client_credentials()
        if not credentials:
            raise ValueError("Save Gmail OAuth client credentials before connecting")
        client_id, client_secret = credentials

        state = generate_state()
        code_verifier, code_challenge = (None, None)
        if self.config.oauth_use_pkce:
            code_verifier, code_challenge = generate_pkce_challenge()

        auth_url = get_authorization_url(
            client_id, self.config.redirect_uri, state=state, code_challenge=code_challenge
        )
        code = self.broker.authorize(auth_url, state)

        token_data = exchange_code_for_token(
            code, client_id, client_secret, self.config.redirect_uri, code_verifier=code_verifier
        )

        access_token = token_data["access_token"]
        client = GmailClient(lambda force_refresh=False: access_token, access_token=access_token)
        profile = client.get_profile()
        email_address = profile.get("emailAddress")
        if not email_address:
            raise OAuthError("Gmail profile did not include an email address")

        self.token_manager.save_token_set(token_data, email_address)
        logger.info(f"Gmail connected: {email_address}")

        self.poller.start()
        return self.get_status()

    def disconnect(self) -> None:
        """Stop polling, revoke (best effort) and forget the connection."""
        self.poller.stop()
        self.token_manager.revoke_and_clear()
        self.store.clear_sync_state()
        self.store.clear_processed_messages()
        logger.info("Gmail disconnected")

    def get_status(self) -> dict:
        tokens = self.store.get_tokens()
        state = self.store.get_sync_state()
        return {
            "is_connected": tokens is not None,
            "email": tokens["email_address"] if tokens else None,
            "is_polling": self.poller.is_polling,
            "last_sync_at": state["last_sync_at"],
            "sync_status": self.poller.status.to_dict(),
        }

    # ============================================================================
    # SYNC
    # ============================================================================

    def start_polling(self) -> None:
        if not self.store.get_tokens():
            raise ValueError("Gmail is not connected")
        self.poller.start()

    def stop_polling(self) -> None:
        self.poller.stop()

    def resume_polling(self) -> bool:
        """Start polling at launch when a connection already exists."""
        if self.store.get_tokens():
            self.poller.start()
            return True
        return False

    def sync_now(self) -> dict:
        """Run one sync cycle immediately; returns the cycle result dict."""
        return self.poller.sync_now().to_dict()

    def shutdown(self) -> None:
        self.poller.shutdown(timeout=5)

    # ============================================================================
    # SENDER FILTERS
    # ============================================================================

    def list_sender_filters(self) -> list[dict]:
        return self.store.list_sender_filters()

    def add_sender_filter(self, email: str, label: str) -> dict:
        email = (email or "").strip()
        label = (label or "").strip()
        if not email or " " in email:
            raise ValueError(f"Invalid sender address: {email!r}")
        return self.store.add_sender_filter(email, label or email)

    def remove_sender_filter(self, filter_id: str) -> bool:
        return self.store.remove_sender_filter(filter_id)

    def toggle_sender_filter(self, filter_id: str, enabled: bool) -> bool:
        return self.store.set_sender_filter_enabled(filter_id, enabled)
