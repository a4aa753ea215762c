"""
Receipt Parsers - Format-Specific Receipt Extractors

This package contains receipt extractors organized by domain:
- amazon.py: Amazon order confirmations
- food_delivery.py: DoorDash, Uber Eats
- rides.py: Uber trips
- financial.py: Venmo payments
- generic.py: Fallback for any receipt-like email (always last)
- orchestrator.py: Priority-ordered extraction over the registry

Usage:
    from ingest.receipt_parsers import extract_receipt, Recognized

    outcome = extract_receipt(html_body)
    if isinstance(outcome, Recognized):
        transaction = outcome.transaction
"""

# Import registry, types and utilities from base
from .base import (
    RECEIPT_EXTRACTORS,
    ExtractedItem,
    ExtractedTransaction,
    ExtractionOutcome,
    Recognized,
    Rejected,
    Unrecognized,
    get_extractors,
    html_to_lines,
    html_to_text,
    parse_amount,
    parse_date_text,
)

# Import all domain modules to trigger @register_extractor decorators
from . import amazon
from . import food_delivery
from . import rides
from . import financial
from . import generic

from .orchestrator import extract_receipt

__all__ = [
    'RECEIPT_EXTRACTORS',
    'ExtractedItem',
    'ExtractedTransaction',
    'ExtractionOutcome',
    'Recognized',
    'Rejected',
    'Unrecognized',
    'extract_receipt',
    'get_extractors',
    'html_to_lines',
    'html_to_text',
    'parse_amount',
    'parse_date_text',
]
