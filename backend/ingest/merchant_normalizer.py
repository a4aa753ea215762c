"""
Merchant Name Normalizer
Derives the canonical merchant key used for category rules and history
lookups, and the content fingerprint used for deduplication.
"""

import hashlib
import re

from ingest.receipt_parsers.base import ExtractedTransaction


def normalize_merchant(merchant: str) -> str:
    """
    Canonical merchant key: lower-case, alphanumerics and spaces only,
    whitespace collapsed.

    Idempotent: normalize_merchant(normalize_merchant(m)) == normalize_merchant(m).

    Args:
        merchant: Display merchant name (e.g. "Blue Bottle Coffee #12")

    Returns:
        Normalized key (e.g. "blue bottle coffee 12")
    """
    if not merchant:
        return ""

    lowered = merchant.lower()
    # Keep letters, digits and whitespace only
    cleaned = "".join(c for c in lowered if c.isalnum() or c.isspace())
    return re.sub(r"\s+", " ", cleaned).strip()


def compute_fingerprint(transaction: ExtractedTransaction) -> str:
    """
    Compute deduplication hash for a transaction.

    Only merchant text, amount and date participate; items, provider and
    confidence never do.

    Args:
        transaction: Extracted transaction

    Returns:
        SHA256 hash string
    """
    components = [
        (transaction.merchant or "").lower().strip(),
        str(transaction.amount),
        transaction.transaction_date.isoformat(),
    ]
    hash_input = "|".join(components)
    return hashlib.sha256(hash_input.encode()).hexdigest()
