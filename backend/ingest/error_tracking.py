"""Structured error tracking with automatic classification.

This module provides the closed error taxonomy for receipt ingestion:
- Remote Gmail API failures (GmailApiError and its subclasses)
- Credential failures that require re-authorization (AuthRequiredError)
- OAuth flow failures (OAuthError)
- Per-message error records with stage/type classification (IngestError)

Usage:
    from ingest.error_tracking import IngestError, ErrorStage

    try:
        store.insert_transaction(...)
    except Exception as e:
        error = IngestError.from_exception(e, ErrorStage.STORAGE,
                                           context={'message_id': msg_id})
        error.log(cycle_id=cycle_id)
"""

import traceback
from enum import Enum
from typing import Any

import requests
from sqlalchemy.exc import SQLAlchemyError

from ingest.logging_config import get_logger

logger = get_logger(__name__)


class GmailErrorKind(Enum):
    """Classification of Gmail API failures."""

    RATE_LIMITED = "rate_limited"  # HTTP 429, deferred to next cycle
    AUTH_EXPIRED = "auth_expired"  # HTTP 401, triggers token refresh
    CURSOR_EXPIRED = "cursor_expired"  # HTTP 404 on history listing
    NOT_FOUND = "not_found"  # HTTP 404 elsewhere
    API_ERROR = "api_error"  # Any other non-2xx status
    NETWORK = "network"  # Connection/timeout failures


class GmailApiError(Exception):
    """Gmail API call failed."""

    kind = GmailErrorKind.API_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(GmailApiError):
    kind = GmailErrorKind.RATE_LIMITED


class AuthExpiredError(GmailApiError):
    kind = GmailErrorKind.AUTH_EXPIRED


class CursorExpiredError(GmailApiError):
    kind = GmailErrorKind.CURSOR_EXPIRED


class MessageNotFoundError(GmailApiError):
    kind = GmailErrorKind.NOT_FOUND


class GmailNetworkError(GmailApiError):
    kind = GmailErrorKind.NETWORK


class AuthRequiredError(Exception):
    """No usable credential; the user must re-authorize Gmail access."""


class OAuthError(Exception):
    """OAuth authorization flow failed (denied, timed out, bad response)."""


class ErrorStage(Enum):
    """Error stage classification for the ingestion workflow."""

    AUTH = "auth"  # Token lookup/refresh
    FETCH = "fetch"  # Gmail API fetch errors
    EXTRACT = "extract"  # Receipt extraction errors
    CATEGORIZE = "categorize"  # Category resolution errors
    STORAGE = "storage"  # Database storage errors
    IMPORT = "import"  # Manual/OCR import errors


class ErrorType(Enum):
    """Error type classification for retry and debugging."""

    API_ERROR = "api_error"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    DB_ERROR = "db_error"
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    AUTH_ERROR = "auth_error"
    UNKNOWN = "unknown"


class IngestError:
    """Structured per-message error with logging.

    Attributes:
        stage: Error stage (where in workflow error occurred)
        error_type: Error type (for retry and debugging decisions)
        message: Human-readable error message
        exception: Original exception (if any)
        context: Additional context (message_id, provider, etc.)
        is_retryable: Whether error should be retried
        stack_trace: Full stack trace string
    """

    def __init__(
        self,
        stage: ErrorStage,
        error_type: ErrorType,
        message: str,
        exception: Exception | None = None,
        context: dict[str, Any] | None = None,
        is_retryable: bool = False,
    ):
        self.stage = stage
        self.error_type = error_type
        self.message = message
        self.exception = exception
        self.context = context or {}
        self.is_retryable = is_retryable
        self.stack_trace = None

        if exception:
            self.stack_trace = "".join(
                traceback.format_exception(
                    type(exception), exception, exception.__traceback__
                )
            )

    def log(self, cycle_id: str | None = None) -> None:
        """Log error through the structured logger.

        Args:
            cycle_id: Sync cycle identifier (optional)
        """
        logger.error(
            f"[{self.stage.value}/{self.error_type.value}] {self.message}",
            extra={
                "cycle_id": cycle_id,
                "message_id": self.context.get("message_id"),
                "provider": self.context.get("provider"),
            },
            exc_info=self.exception,
        )

    @classmethod
    def from_exception(
        cls,
        exception: Exception,
        stage: ErrorStage,
        context: dict[str, Any] | None = None,
        message: str | None = None,
    ) -> "IngestError":
        """Auto-classify error from exception.

        Known exception classes are classified directly; anything else
        falls back to inspecting the exception name and message.

        Args:
            exception: Exception object to classify
            stage: Error stage where exception occurred
            context: Additional context dict
            message: Override for the human-readable message

        Returns:
            IngestError instance with auto-classified type and retry flag
        """
        error_type = ErrorType.UNKNOWN
        is_retryable = False

        error_str = str(exception).lower()
        exception_name = type(exception).__name__

        if isinstance(exception, RateLimitedError):
            error_type = ErrorType.RATE_LIMIT
            is_retryable = True
        elif isinstance(exception, (AuthExpiredError, AuthRequiredError, OAuthError)):
            error_type = ErrorType.AUTH_ERROR
        elif isinstance(exception, GmailNetworkError):
            error_type = ErrorType.NETWORK
            is_retryable = True
        elif isinstance(exception, GmailApiError):
            error_type = ErrorType.API_ERROR
            is_retryable = True
        elif isinstance(exception, SQLAlchemyError):
            error_type = ErrorType.DB_ERROR
        elif isinstance(exception, requests.Timeout) or "timeout" in error_str:
            error_type = ErrorType.TIMEOUT
            is_retryable = True
        elif isinstance(exception, requests.ConnectionError) or exception_name in [
            "ConnectionError",
            "ConnectionResetError",
        ]:
            error_type = ErrorType.NETWORK
            is_retryable = True
        elif stage == ErrorStage.EXTRACT:
            error_type = ErrorType.PARSE_ERROR

        return cls(
            stage=stage,
            error_type=error_type,
            message=message or str(exception),
            exception=exception,
            context=context,
            is_retryable=is_retryable,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for status reporting."""
        return {
            "stage": self.stage.value,
            "error_type": self.error_type.value,
            "message": self.message,
            "is_retryable": self.is_retryable,
            "context": self.context,
        }
