"""
Gmail Sync Module

Handles synchronization of receipt emails from Gmail.
Supports initial sync (sender query over a lookback window) and
incremental sync (history.list since the stored history id), falling back
to initial sync when the history id has expired.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from ingest.categorizer import CategoryResolver
from ingest.error_tracking import (
    CursorExpiredError,
    ErrorStage,
    GmailApiError,
    IngestError,
    RateLimitedError,
)
from ingest.gmail_client import (
    GmailClient,
    build_sender_query,
    extract_html_body,
    get_header,
)
from ingest.logging_config import get_logger
from ingest.merchant_normalizer import compute_fingerprint, normalize_merchant
from ingest.receipt_parsers import Recognized, Rejected, extract_receipt

logger = get_logger(__name__)

# Seeded sender filters: (email, label)
DEFAULT_SENDER_FILTERS = [
    ("auto-confirm@amazon.com", "Amazon"),
    ("no-reply@doordash.com", "DoorDash"),
    ("uber.us@uber.com", "Uber Eats"),
    ("noreply@uber.com", "Uber"),
    ("venmo@venmo.com", "Venmo"),
]

# Fetch attempts for one message before it is marked failed
FETCH_RETRY_LIMIT = 5


class SyncMode(str, Enum):
    INITIAL = "initial"
    INCREMENTAL = "incremental"


class MessageOutcome(str, Enum):
    """Result of evaluating one message (stored as the processed outcome)."""

    IMPORTED = "imported"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SyncCycleResult:
    """Aggregate counts for one sync cycle."""

    new_transactions: int = 0
    duplicates_skipped: int = 0
    emails_processed: int = 0
    errors: list[str] = field(default_factory=list)
    mode: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class SyncEngine:
    """
    Runs Gmail sync cycles against a Store.

    Args:
        store: Store instance
        token_manager: TokenManager supplying bearer tokens
        config: IngestConfig (lookback days, page size, retry policy)
    """

    def __init__(self, store, token_manager, config):
        self.store = store
        self.token_manager = token_manager
        self.config = config
        self.resolver = CategoryResolver(store)

    def _build_client(self) -> GmailClient:
        # AuthRequiredError from the token manager propagates to the caller
        access_token = self.token_manager.get_valid_access_token()
        return GmailClient(self.token_manager.get_valid_access_token, access_token=access_token)

    def run_cycle(self) -> SyncCycleResult:
        """
        Run one sync cycle.

        Returns:
            SyncCycleResult with counts and per-message error strings

        Raises:
            AuthRequiredError: Credentials unusable (user must reconnect)
            RateLimitedError: Gmail returned 429 (retry next cycle)
            GmailApiError: Listing failed for any other reason
        """
        cycle_id = uuid.uuid4().hex[:8]
        client = self._build_client()
        result = SyncCycleResult()

        sender_emails = [f["email"] for f in self.store.list_sender_filters(enabled_only=True)]
        if not sender_emails:
            logger.debug("No enabled sender filters, skipping sync", extra={"cycle_id": cycle_id})
            return result

        # Failed messages are behind the saved cursor, so they are retried here
        retried = self._retry_pending(client, sender_emails, result, cycle_id)

        state = self.store.get_sync_state()
        if state["history_id"] and state["is_initial_sync_complete"]:
            result.mode = SyncMode.INCREMENTAL.value
            try:
                self._incremental_sync(
                    client, state["history_id"], sender_emails, result, cycle_id, retried
                )
                return result
            except CursorExpiredError:
                logger.warning(
                    "History ID expired, falling back to initial sync",
                    extra={"cycle_id": cycle_id},
                )
                self.store.clear_sync_state()

        result.mode = SyncMode.INITIAL.value
        self._initial_sync(client, sender_emails, result, cycle_id, retried)
        return result

    def _retry_pending(self, client, sender_emails, result, cycle_id) -> set[str]:
        """Re-run messages whose fetch or insert failed in an earlier cycle."""
        pending = self.store.list_pending_failures()
        if pending:
            logger.info(
                f"Retrying {len(pending)} previously failed messages",
                extra={"cycle_id": cycle_id},
            )
        retried = set()
        for failure in pending:
            message_id = failure["message_id"]
            retried.add(message_id)
            self._count(self.process_message(client, message_id, sender_emails, cycle_id), result)
        return retried

    # ============================================================================
    # SYNC MODES
    # ============================================================================

    def _initial_sync(self, client, sender_emails, result, cycle_id, retried=frozenset()) -> None:
        after = date.today() - timedelta(days=self.config.initial_sync_days)
        query = build_sender_query(sender_emails, after=after)
        logger.info(
            f"Starting initial Gmail sync (last {self.config.initial_sync_days} days)",
            extra={"cycle_id": cycle_id},
        )

        page_token = None
        while True:
            page = client.list_messages(
                query, page_token=page_token, max_results=self.config.page_size
            )
            for message_ref in page["messages"]:
                if message_ref["id"] in retried:
                    continue
                self._count(
                    self.process_message(client, message_ref["id"], sender_emails, cycle_id),
                    result,
                )
            page_token = page["nextPageToken"]
            if not page_token:
                break

        profile = client.get_profile()
        history_id = profile.get("historyId")
        if history_id:
            self.store.save_sync_state(str(history_id), is_initial_sync_complete=True)

        logger.info(
            f"Initial sync complete: {result.new_transactions} imported, "
            f"{result.duplicates_skipped} duplicates, {len(result.errors)} errors",
            extra={"cycle_id": cycle_id},
        )

    def _incremental_sync(
        self, client, history_id, sender_emails, result, cycle_id, retried=frozenset()
    ) -> None:
        logger.debug(
            f"Starting incremental Gmail sync from history_id={history_id}",
            extra={"cycle_id": cycle_id},
        )

        latest_history_id = None
        page_token = None
        while True:
            page = client.list_history(history_id, page_token=page_token)
            if page["historyId"]:
                latest_history_id = str(page["historyId"])

            for record in page["history"]:
                for added in record.get("messagesAdded", []):
                    message_id = added.get("message", {}).get("id")
                    if message_id and message_id not in retried:
                        self._count(
                            self.process_message(client, message_id, sender_emails, cycle_id),
                            result,
                        )

            page_token = page["nextPageToken"]
            if not page_token:
                break

        if latest_history_id:
            self.store.save_sync_state(latest_history_id, is_initial_sync_complete=True)

        if result.new_transactions > 0:
            logger.info(
                f"Incremental sync: {result.new_transactions} new transactions, "
                f"{result.duplicates_skipped} duplicates",
                extra={"cycle_id": cycle_id},
            )

    @staticmethod
    def _count(processed: tuple, result: SyncCycleResult) -> None:
        outcome, error = processed
        result.emails_processed += 1
        if outcome == MessageOutcome.IMPORTED:
            result.new_transactions += 1
        elif outcome == MessageOutcome.DUPLICATE:
            result.duplicates_skipped += 1
        if error:
            result.errors.append(error)

    # ============================================================================
    # PER-MESSAGE PROCESSING
    # ============================================================================

    def process_message(
        self, client, message_id: str, sender_emails: list[str], cycle_id: str | None = None
    ) -> tuple:
        """
        Fetch, extract and store one message.

        Returns:
            Tuple of (MessageOutcome or None, error string or None); outcome is
            None when the message was not evaluated (fetch failure)

        Raises:
            RateLimitedError, AuthRequiredError: abort the cycle
        """
        context = {"message_id": message_id}

        if self.store.is_message_processed(message_id):
            return MessageOutcome.SKIPPED, None

        try:
            message = client.get_message(message_id)
        except RateLimitedError:
            raise
        except GmailApiError as e:
            error = IngestError.from_exception(e, ErrorStage.FETCH, context)
            error.log(cycle_id)
            self._record_fetch_failure(message_id, str(e))
            return None, f"Failed to fetch message {message_id}: {e}"

        from_header = (get_header(message, "From") or "").lower()
        if not any(email.lower() in from_header for email in sender_emails):
            self.store.mark_message_processed(message_id, MessageOutcome.SKIPPED.value)
            return MessageOutcome.SKIPPED, None

        html = extract_html_body(message)
        if not html:
            self.store.mark_message_processed(message_id, MessageOutcome.SKIPPED.value)
            return MessageOutcome.SKIPPED, None

        outcome = extract_receipt(html)
        if not isinstance(outcome, Recognized):
            if isinstance(outcome, Rejected):
                logger.debug(
                    f"Failed to parse Gmail message: {outcome.reason}",
                    extra={"cycle_id": cycle_id, "message_id": message_id},
                )
            self.store.mark_message_processed(message_id, MessageOutcome.SKIPPED.value)
            return MessageOutcome.SKIPPED, None

        transaction = outcome.transaction
        context["provider"] = transaction.provider
        source_hash = compute_fingerprint(transaction)

        if self.store.transaction_exists(source_hash):
            self.store.mark_message_processed(message_id, MessageOutcome.DUPLICATE.value)
            return MessageOutcome.DUPLICATE, None

        merchant_key = normalize_merchant(transaction.merchant)
        category_id = self._resolve_category_id(merchant_key, transaction.provider, context, cycle_id)

        try:
            self.store.insert_transaction(
                merchant=transaction.merchant,
                merchant_normalized=merchant_key,
                amount=transaction.amount,
                transaction_date=transaction.transaction_date,
                provider=transaction.provider,
                source_hash=source_hash,
                category_id=category_id,
                confidence=transaction.confidence,
                direction=transaction.direction,
                items=[
                    {
                        "name": item.name,
                        "quantity": item.quantity,
                        "unit_price": item.unit_price,
                        "total_price": item.total_price,
                    }
                    for item in transaction.items
                ],
                user_id=self.config.user_id,
            )
        except SQLAlchemyError as e:
            if self.store.transaction_exists(source_hash):
                # Inserted concurrently by a manual import
                self.store.mark_message_processed(message_id, MessageOutcome.DUPLICATE.value)
                return MessageOutcome.DUPLICATE, None
            message_text = f"Failed to insert transaction: {e}"
            IngestError.from_exception(e, ErrorStage.STORAGE, context, message=message_text).log(
                cycle_id
            )
            self._record_storage_failure(message_id, str(e))
            return MessageOutcome.FAILED, message_text

        self.store.mark_message_processed(message_id, MessageOutcome.IMPORTED.value)
        logger.info(
            f"Imported {transaction.merchant} ({transaction.amount} cents)",
            extra={"cycle_id": cycle_id, "message_id": message_id, "provider": transaction.provider},
        )
        return MessageOutcome.IMPORTED, None

    def _resolve_category_id(self, merchant_key, provider, context, cycle_id) -> int | None:
        try:
            category = self.resolver.resolve(merchant_key, provider, user_id=self.config.user_id)
        except SQLAlchemyError as e:
            # Stored uncategorized rather than dropped
            IngestError.from_exception(e, ErrorStage.CATEGORIZE, context).log(cycle_id)
            return None
        return category["id"] if category else None

    def _record_storage_failure(self, message_id: str, error: str) -> None:
        """Apply the insert retry policy to a message whose insert failed."""
        limit = self.config.insert_retry_limit
        if limit <= 0:
            self.store.mark_message_processed(message_id, MessageOutcome.FAILED.value)
            return

        attempts = self.store.record_message_failure(message_id, error)
        if attempts >= limit:
            logger.warning(
                f"Giving up on message after {attempts} failed inserts",
                extra={"message_id": message_id},
            )
            self.store.mark_message_processed(message_id, MessageOutcome.FAILED.value)

    def _record_fetch_failure(self, message_id: str, error: str) -> None:
        """Queue a message whose fetch failed for the next cycle, up to FETCH_RETRY_LIMIT."""
        attempts = self.store.record_message_failure(message_id, error)
        if attempts >= FETCH_RETRY_LIMIT:
            logger.warning(
                f"Giving up on message after {attempts} failed fetches",
                extra={"message_id": message_id},
            )
            self.store.mark_message_processed(message_id, MessageOutcome.FAILED.value)
