"""
Gmail integration models for receipt sync.

Maps to:
- gmail_credentials table (OAuth client id/secret, single stored instance)
- gmail_tokens table (encrypted OAuth token set for the connected account)
- gmail_sync_state table (history cursor and initial-sync flag)
- gmail_sender_filters table (senders eligible for ingestion)
- gmail_processed_messages table (messages already evaluated)
- gmail_message_failures table (storage failures awaiting retry)
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    Text,
)
from sqlalchemy.sql import func

from database.base import Base, utcnow


class GmailCredential(Base):
    """OAuth client credentials (client secret encrypted)."""

    __tablename__ = "gmail_credentials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Text, nullable=False)
    client_secret = Column(Text, nullable=False)  # Encrypted
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    def __repr__(self) -> str:
        return f"<GmailCredential(id={self.id})>"


class GmailToken(Base):
    """OAuth token set for the connected Gmail account (encrypted tokens)."""

    __tablename__ = "gmail_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email_address = Column(String(255), nullable=True)
    access_token = Column(Text, nullable=False)  # Encrypted
    refresh_token = Column(Text, nullable=False)  # Encrypted
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<GmailToken(id={self.id}, email={self.email_address}, expires_at={self.expires_at})>"


class GmailSyncState(Base):
    """History cursor for incremental sync."""

    __tablename__ = "gmail_sync_state"

    id = Column(Integer, primary_key=True, autoincrement=True)
    history_id = Column(String(50), nullable=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    is_initial_sync_complete = Column(
        Boolean, nullable=False, default=False, server_default="0"
    )

    def __repr__(self) -> str:
        return f"<GmailSyncState(history_id={self.history_id}, complete={self.is_initial_sync_complete})>"


class GmailSenderFilter(Base):
    """Sender address eligible for receipt ingestion."""

    __tablename__ = "gmail_sender_filters"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    label = Column(String(100), nullable=False)
    enabled = Column(Boolean, nullable=False, default=True, server_default="1")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    def __repr__(self) -> str:
        return f"<GmailSenderFilter(email={self.email}, enabled={self.enabled})>"


class GmailProcessedMessage(Base):
    """Gmail message already evaluated, with the outcome."""

    __tablename__ = "gmail_processed_messages"

    gmail_message_id = Column(String(64), primary_key=True)
    outcome = Column(String(20), nullable=False, default="skipped")
    processed_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "outcome IN ('imported', 'duplicate', 'skipped', 'failed')",
            name="ck_gmail_processed_outcome",
        ),
    )

    def __repr__(self) -> str:
        return f"<GmailProcessedMessage(id={self.gmail_message_id}, outcome={self.outcome})>"


class GmailMessageFailure(Base):
    """Storage failures for a message that has not been marked processed yet."""

    __tablename__ = "gmail_message_failures"

    gmail_message_id = Column(String(64), primary_key=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<GmailMessageFailure(id={self.gmail_message_id}, attempts={self.attempts})>"
