"""
Financial / Peer Payment Parsers

Venmo
"""

import re
from typing import Optional

from .base import (
    ExtractedTransaction,
    ExtractionOutcome,
    Recognized,
    Rejected,
    find_amount,
    find_date,
    html_to_lines,
    html_to_text,
    register_extractor,
)

VENMO_TOTAL_CEILING = 1_000_000

_PERSON = r"([A-Z][A-Za-z'-]*(?:\s+[A-Z][A-Za-z'-]*){0,3})"

SENT_PATTERNS = [
    rf'(?i:you paid)\s+{_PERSON}',
    rf'(?i:you sent)\s+{_PERSON}',
    rf'(?i:payment to)\s+{_PERSON}',
]

RECEIVED_PATTERNS = [
    rf'{_PERSON}\s+(?i:paid you)',
    rf'{_PERSON}\s+(?i:sent you)',
    rf'(?i:payment from)\s+{_PERSON}',
]

TOTAL_PATTERNS = [
    r'\$\s*(\d[\d,]*\.?\d*)',
    r'(?i)amount[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
]

DATE_PATTERNS = [
    r'([A-Za-z]+\.? \d{1,2}, \d{4})',
    r'(\d{1,2}/\d{1,2}/\d{2,4})',
]

NOTE_PATTERN = re.compile(r'''(?i)\b(?:for|note)\b[:\s]*["']?([^"'\n$]{1,100})''')


def matches_venmo(html_lower: str) -> bool:
    return 'venmo' in html_lower


def extract_payment_direction(lines: list[str]) -> tuple[str, Optional[str]]:
    """
    Determine whether money was sent or received, and to/from whom.

    Returns:
        Tuple of (direction, counterparty); direction defaults to 'outgoing'
    """
    for direction, patterns in (('outgoing', SENT_PATTERNS), ('incoming', RECEIVED_PATTERNS)):
        for pattern in patterns:
            for line in lines:
                match = re.search(pattern, line)
                if match:
                    person = match.group(1).strip()
                    if person and len(person) < 50:
                        return direction, person
    return 'outgoing', None


def extract_note(lines: list[str]) -> Optional[str]:
    for line in lines:
        match = NOTE_PATTERN.search(line)
        if match:
            note = match.group(1).strip(' .:"\'')
            if note:
                return note
    return None


@register_extractor('venmo', priority=50, matches=matches_venmo)
def extract_venmo(html: str) -> ExtractionOutcome:
    """
    Extract a Venmo payment notification.

    Received payments keep a positive amount and are marked with
    direction='incoming' and a lower confidence.
    """
    text = html_to_text(html)
    lines = html_to_lines(html)

    direction, counterparty = extract_payment_direction(lines)

    amount = find_amount(TOTAL_PATTERNS, [text, html], VENMO_TOTAL_CEILING)
    if amount is None:
        return Rejected('Could not extract payment amount')

    note = extract_note(lines)
    if counterparty and note:
        merchant = f'Venmo - {counterparty} ({note})'
    elif counterparty:
        merchant = f'Venmo - {counterparty}'
    else:
        merchant = 'Venmo'

    transaction = ExtractedTransaction(
        merchant=merchant,
        amount=amount,
        transaction_date=find_date(DATE_PATTERNS, [text, html]),
        provider='venmo',
        direction=direction,
    )
    if direction == 'incoming':
        transaction.confidence = 0.8

    return Recognized(transaction)
