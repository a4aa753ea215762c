"""
Ingestion Configuration Management
Handles environment variables, validation, and the single configuration
object shared by the token manager, sync engine and poller.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from cryptography.fernet import Fernet
from dotenv import load_dotenv

# Load environment variables (real env vars take precedence)
load_dotenv(override=False)

DATA_DIR = os.path.join(os.path.expanduser("~"), ".receipt_ledger")
DEFAULT_DATABASE_URL = f"sqlite:///{os.path.join(DATA_DIR, 'receipts.db')}"


@dataclass
class IngestConfig:
    """Ingestion configuration object"""
    database_url: str = DEFAULT_DATABASE_URL
    encryption_key: Optional[str] = None
    poll_interval_seconds: float = 30.0
    initial_sync_days: int = 90
    page_size: int = 50
    token_refresh_buffer_seconds: int = 60
    oauth_redirect_port: int = 8249
    oauth_callback_timeout: int = 300
    oauth_use_pkce: bool = True
    insert_retry_limit: int = 0  # 0 = mark processed on first storage failure
    user_id: int = 1
    _cipher: Optional[Fernet] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        """Validate configuration after initialization"""
        self.validate()

    def validate(self):
        """Validate ingestion configuration"""
        if not self.database_url:
            raise ValueError("DATABASE_URL is required")

        if self.poll_interval_seconds <= 0:
            raise ValueError("GMAIL_POLL_INTERVAL must be greater than 0")

        if self.initial_sync_days <= 0:
            raise ValueError("GMAIL_INITIAL_SYNC_DAYS must be greater than 0")

        if not 1 <= self.page_size <= 500:
            raise ValueError("GMAIL_PAGE_SIZE must be between 1 and 500")

        if self.token_refresh_buffer_seconds < 0:
            raise ValueError("TOKEN_REFRESH_BUFFER_SECONDS must be non-negative")

        if not 1 <= self.oauth_redirect_port <= 65535:
            raise ValueError(f"Invalid OAUTH_REDIRECT_PORT: {self.oauth_redirect_port}")

        if self.insert_retry_limit < 0:
            raise ValueError("INSERT_RETRY_LIMIT must be non-negative")

        if self.encryption_key:
            # Fernet raises ValueError on malformed keys
            self._cipher = Fernet(self.encryption_key)

    @property
    def redirect_uri(self) -> str:
        """Loopback redirect target for the local OAuth callback listener."""
        return f"http://localhost:{self.oauth_redirect_port}/callback"

    @property
    def cipher(self) -> Optional[Fernet]:
        """Fernet cipher for tokens at rest, or None when no key is configured."""
        return self._cipher


def load_config() -> IngestConfig:
    """
    Load ingestion configuration from environment variables.

    Environment Variables:
    - DATABASE_URL: SQLAlchemy URL (default: SQLite file in ~/.receipt_ledger)
    - ENCRYPTION_KEY: Fernet key for OAuth tokens at rest (optional)
    - GMAIL_POLL_INTERVAL: Seconds between background sync cycles (default: 30)
    - GMAIL_INITIAL_SYNC_DAYS: Lookback window for the initial sync (default: 90)
    - GMAIL_PAGE_SIZE: Messages per list page (default: 50)
    - TOKEN_REFRESH_BUFFER_SECONDS: Refresh tokens this close to expiry (default: 60)
    - OAUTH_REDIRECT_PORT: Local callback listener port (default: 8249)
    - OAUTH_CALLBACK_TIMEOUT: Seconds to wait for the browser callback (default: 300)
    - OAUTH_USE_PKCE: Send a PKCE challenge with the authorization request (default: true)
    - INSERT_RETRY_LIMIT: Storage failures tolerated before a message is
      marked processed anyway (default: 0)

    Returns:
        IngestConfig object
    """
    return IngestConfig(
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        encryption_key=os.getenv("ENCRYPTION_KEY") or None,
        poll_interval_seconds=float(os.getenv("GMAIL_POLL_INTERVAL", "30")),
        initial_sync_days=int(os.getenv("GMAIL_INITIAL_SYNC_DAYS", "90")),
        page_size=int(os.getenv("GMAIL_PAGE_SIZE", "50")),
        token_refresh_buffer_seconds=int(os.getenv("TOKEN_REFRESH_BUFFER_SECONDS", "60")),
        oauth_redirect_port=int(os.getenv("OAUTH_REDIRECT_PORT", "8249")),
        oauth_callback_timeout=int(os.getenv("OAUTH_CALLBACK_TIMEOUT", "300")),
        oauth_use_pkce=os.getenv("OAUTH_USE_PKCE", "true").lower() == "true",
        insert_retry_limit=int(os.getenv("INSERT_RETRY_LIMIT", "0")),
    )
