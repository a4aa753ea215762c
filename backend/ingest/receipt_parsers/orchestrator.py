"""
Receipt Extraction Orchestrator

Runs registered extractors in priority order over a raw HTML body:
first Recognized wins, Rejected is logged and the next extractor is
tried, and Unrecognized is returned when nothing claims the input.
"""

from ingest.error_tracking import ErrorStage, IngestError
from ingest.logging_config import get_logger

from .base import (
    ExtractionOutcome,
    Recognized,
    Rejected,
    Unrecognized,
    get_extractors,
)

logger = get_logger(__name__)


def extract_receipt(html: str) -> ExtractionOutcome:
    """
    Extract a transaction from an email body.

    Args:
        html: Raw HTML (or plain text) email body

    Returns:
        Recognized(transaction); Rejected(reason) when the fallback extractor
        claimed the input but failed; otherwise Unrecognized()
    """
    if not html or not html.strip():
        return Unrecognized()

    html_lower = html.lower()

    for entry in get_extractors():
        if not entry.matches(html_lower):
            continue

        try:
            outcome = entry.extract(html)
        except Exception as e:
            error = IngestError.from_exception(
                e, ErrorStage.EXTRACT, context={"provider": entry.provider}
            )
            error.log()
            outcome = Rejected(f"{entry.provider} extractor error: {e}")

        if isinstance(outcome, Recognized):
            logger.debug(
                f"Extracted {outcome.transaction.merchant} "
                f"({outcome.transaction.amount} cents)",
                extra={"provider": entry.provider},
            )
            return outcome

        if isinstance(outcome, Rejected):
            logger.warning(
                f"Extractor matched but failed: {outcome.reason}",
                extra={"provider": entry.provider},
            )
            if entry.is_fallback:
                return outcome

    return Unrecognized()
