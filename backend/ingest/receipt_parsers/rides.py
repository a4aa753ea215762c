"""
Ride-sharing Parsers

Uber (rides only; Uber Eats lives in food_delivery.py)
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

# A single ride above $500 is treated as a misread
UBER_TOTAL_CEILING = 50_000

TOTAL_PATTERNS = [
    r'(?i)(?<!sub)total[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
    r'(?i)trip\s+total[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
    r'(?i)you\s+paid[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
    r'(?i)fare[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
]

DATE_PATTERNS = [
    r'([A-Za-z]+\.? \d{1,2}, \d{4})',
    r'(\d{1,2}/\d{1,2}/\d{2,4})',
]

TRIP_PATTERN = re.compile(r'(?i)\bfrom\s+([A-Za-z0-9\s,]+?)\s+to\s+([A-Za-z0-9\s,]+)')


def matches_uber(html_lower: str) -> bool:
    return (
        'uber.com' in html_lower
        and 'uber eats' not in html_lower
        and 'ubereats' not in html_lower
    )


def extract_trip_details(lines: list[str]) -> Optional[str]:
    """Route as 'origin to destination' when the receipt names one."""
    for line in lines:
        match = TRIP_PATTERN.search(line)
        if match:
            origin = match.group(1).strip(' ,')
            destination = match.group(2).strip(' ,')
            if origin and destination and len(origin) < 50 and len(destination) < 50:
                return f'{origin} to {destination}'
    return None


@register_extractor('uber', priority=40, matches=matches_uber)
def extract_uber(html: str) -> ExtractionOutcome:
    """Extract an Uber trip receipt."""
    text = html_to_text(html)

    amount = find_amount(TOTAL_PATTERNS, [text, html], UBER_TOTAL_CEILING)
    if amount is None:
        return Rejected('Could not extract trip total')

    trip = extract_trip_details(html_to_lines(html))
    merchant = f'Uber - {trip}' if trip else 'Uber'

    return Recognized(ExtractedTransaction(
        merchant=merchant,
        amount=amount,
        transaction_date=find_date(DATE_PATTERNS, [text, html]),
        provider='uber',
    ))
