"""
Gmail Integration - Database Operations

Handles OAuth client credentials, the token set, the sync cursor, the
processed-message ledger and sender filters.

Secrets are stored as Fernet ciphertext; encryption happens in the
ingest layer before values reach these functions.
"""

import uuid

from sqlalchemy.exc import IntegrityError

from .base import utcnow
from .models.gmail import (
    GmailCredential,
    GmailMessageFailure,
    GmailProcessedMessage,
    GmailSenderFilter,
    GmailSyncState,
    GmailToken,
)


def sender_filter_to_dict(sender: GmailSenderFilter) -> dict:
    return {
        "id": sender.id,
        "email": sender.email,
        "label": sender.label,
        "enabled": sender.enabled,
        "created_at": sender.created_at,
    }


class GmailStoreMixin:
    """Gmail credential, token, cursor and filter operations (requires get_session())."""

    # ============================================================================
    # CLIENT CREDENTIALS
    # ============================================================================

    def get_credentials(self) -> dict | None:
        with self.get_session() as session:
            cred = session.query(GmailCredential).order_by(GmailCredential.id.desc()).first()
            if not cred:
                return None
            return {"client_id": cred.client_id, "client_secret": cred.client_secret}

    def save_credentials(self, client_id: str, client_secret: str) -> None:
        """Replace the stored client credentials (single instance)."""
        with self.get_session() as session:
            session.query(GmailCredential).delete()
            session.add(GmailCredential(client_id=client_id, client_secret=client_secret))
            session.commit()

    def has_credentials(self) -> bool:
        with self.get_session() as session:
            return session.query(GmailCredential.id).first() is not None

    def delete_credentials(self) -> None:
        with self.get_session() as session:
            session.query(GmailCredential).delete()
            session.commit()

    # ============================================================================
    # TOKENS
    # ============================================================================

    def get_tokens(self) -> dict | None:
        with self.get_session() as session:
            token = session.query(GmailToken).order_by(GmailToken.id.desc()).first()
            if not token:
                return None
            return {
                "email_address": token.email_address,
                "access_token": token.access_token,
                "refresh_token": token.refresh_token,
                "expires_at": token.expires_at,
                "updated_at": token.updated_at,
            }

    def save_tokens(self, email_address, access_token: str, refresh_token: str, expires_at) -> None:
        """Replace the stored token set (single connected account)."""
        with self.get_session() as session:
            session.query(GmailToken).delete()
            session.add(
                GmailToken(
                    email_address=email_address,
                    access_token=access_token,
                    refresh_token=refresh_token,
                    expires_at=expires_at,
                )
            )
            session.commit()

    def update_access_token(self, access_token: str, expires_at) -> bool:
        """Update the access token after a refresh; the refresh token is kept."""
        with self.get_session() as session:
            token = session.query(GmailToken).order_by(GmailToken.id.desc()).first()
            if not token:
                return False
            token.access_token = access_token
            token.expires_at = expires_at
            token.updated_at = utcnow()
            session.commit()
            return True

    def delete_tokens(self) -> None:
        with self.get_session() as session:
            session.query(GmailToken).delete()
            session.commit()

    # ============================================================================
    # SYNC STATE
    # ============================================================================

    def get_sync_state(self) -> dict:
        with self.get_session() as session:
            state = session.query(GmailSyncState).first()
            if not state:
                return {
                    "history_id": None,
                    "last_sync_at": None,
                    "is_initial_sync_complete": False,
                }
            return {
                "history_id": state.history_id,
                "last_sync_at": state.last_sync_at,
                "is_initial_sync_complete": state.is_initial_sync_complete,
            }

    def save_sync_state(self, history_id: str | None, is_initial_sync_complete: bool = True) -> None:
        with self.get_session() as session:
            state = session.query(GmailSyncState).first()
            if not state:
                state = GmailSyncState()
                session.add(state)
            state.history_id = history_id
            state.is_initial_sync_complete = is_initial_sync_complete
            state.last_sync_at = utcnow()
            session.commit()

    def clear_sync_state(self) -> None:
        with self.get_session() as session:
            session.query(GmailSyncState).delete()
            session.commit()

    # ============================================================================
    # PROCESSED MESSAGES
    # ============================================================================

    def is_message_processed(self, message_id: str) -> bool:
        with self.get_session() as session:
            return session.get(GmailProcessedMessage, message_id) is not None

    @staticmethod
    def _apply_processed_marker(session, message_id: str, outcome: str) -> None:
        record = session.get(GmailProcessedMessage, message_id)
        if record:
            record.outcome = outcome
            record.processed_at = utcnow()
        else:
            session.add(GmailProcessedMessage(gmail_message_id=message_id, outcome=outcome))
        session.query(GmailMessageFailure).filter(
            GmailMessageFailure.gmail_message_id == message_id
        ).delete()

    def mark_message_processed(self, message_id: str, outcome: str) -> None:
        """
        Record the outcome for a message; re-marking updates the outcome.

        Safe against a concurrent cycle marking the same message between
        the lookup and the insert: the insert is retried as an update.
        """
        with self.get_session() as session:
            self._apply_processed_marker(session, message_id, outcome)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                self._apply_processed_marker(session, message_id, outcome)
                session.commit()

    def count_processed_messages(self, outcome: str | None = None) -> int:
        with self.get_session() as session:
            query = session.query(GmailProcessedMessage)
            if outcome:
                query = query.filter(GmailProcessedMessage.outcome == outcome)
            return query.count()

    def clear_processed_messages(self) -> None:
        with self.get_session() as session:
            session.query(GmailProcessedMessage).delete()
            session.query(GmailMessageFailure).delete()
            session.commit()

    @staticmethod
    def _apply_failure(session, message_id: str, error: str) -> GmailMessageFailure:
        failure = session.get(GmailMessageFailure, message_id)
        if not failure:
            failure = GmailMessageFailure(gmail_message_id=message_id, attempts=0)
            session.add(failure)
        failure.attempts = (failure.attempts or 0) + 1
        failure.last_error = error[:1000] if error else None
        failure.updated_at = utcnow()
        return failure

    def record_message_failure(self, message_id: str, error: str) -> int:
        """
        Count a failed fetch or insert for a message that is not marked yet.

        Returns:
            Total attempts recorded so far
        """
        with self.get_session() as session:
            failure = self._apply_failure(session, message_id, error)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                failure = self._apply_failure(session, message_id, error)
                session.commit()
            return failure.attempts

    def list_pending_failures(self) -> list[dict]:
        """Messages with recorded failures that still await a retry, oldest first."""
        with self.get_session() as session:
            failures = session.query(GmailMessageFailure).order_by(
                GmailMessageFailure.updated_at.asc(), GmailMessageFailure.gmail_message_id.asc()
            )
            return [
                {
                    "message_id": f.gmail_message_id,
                    "attempts": f.attempts,
                    "last_error": f.last_error,
                }
                for f in failures.all()
            ]

    # ============================================================================
    # SENDER FILTERS
    # ============================================================================

    def list_sender_filters(self, enabled_only: bool = False) -> list[dict]:
        with self.get_session() as session:
            query = session.query(GmailSenderFilter)
            if enabled_only:
                query = query.filter(GmailSenderFilter.enabled.is_(True))
            filters = query.order_by(GmailSenderFilter.label.asc(), GmailSenderFilter.email.asc())
            return [sender_filter_to_dict(f) for f in filters.all()]

    def add_sender_filter(self, email: str, label: str) -> dict:
        """
        Add an enabled sender filter.

        Raises:
            ValueError: Email already present
        """
        with self.get_session() as session:
            sender = GmailSenderFilter(
                id=str(uuid.uuid4()), email=email.strip().lower(), label=label, enabled=True
            )
            session.add(sender)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ValueError(f"Sender filter already exists: {email}") from e
            return sender_filter_to_dict(sender)

    def remove_sender_filter(self, filter_id: str) -> bool:
        with self.get_session() as session:
            deleted = (
                session.query(GmailSenderFilter).filter(GmailSenderFilter.id == filter_id).delete()
            )
            session.commit()
            return deleted > 0

    def set_sender_filter_enabled(self, filter_id: str, enabled: bool) -> bool:
        with self.get_session() as session:
            sender = session.get(GmailSenderFilter, filter_id)
            if not sender:
                return False
            sender.enabled = enabled
            session.commit()
            return True

    def seed_default_sender_filters(self, defaults: list[tuple]) -> int:
        """Insert missing (email, label) filters; returns number inserted."""
        with self.get_session() as session:
            existing = {email for (email,) in session.query(GmailSenderFilter.email)}
            inserted = 0
            for email, label in defaults:
                if email in existing:
                    continue
                session.add(
                    GmailSenderFilter(id=str(uuid.uuid4()), email=email, label=label, enabled=True)
                )
                inserted += 1
            session.commit()
            return inserted
