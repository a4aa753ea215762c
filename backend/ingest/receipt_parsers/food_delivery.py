"""
Food Delivery Parsers

DoorDash, Uber Eats
"""

import re
from typing import Optional

from .base import (
    ExtractedItem,
    ExtractedTransaction,
    ExtractionOutcome,
    Recognized,
    Rejected,
    find_amount,
    find_date,
    html_to_lines,
    html_to_text,
    is_item_line,
    parse_amount,
    register_extractor,
)

# Upper bound for a plausible delivery order, in cents
DELIVERY_TOTAL_CEILING = 100_000

TOTAL_PATTERNS = [
    r'(?i)(?<!sub)total[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
    r'(?i)charged[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
    r'(?i)order\s+total[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
]

DATE_PATTERNS = [
    r'([A-Za-z]+\.? \d{1,2}, \d{4})',
    r'(\d{1,2}/\d{1,2}/\d{2,4})',
]

# Capitalized word run, e.g. "Joe's Pizza & Grill"
_NAME = r"([A-Z0-9][A-Za-z0-9&'.-]*(?:\s+(?:&|[A-Z0-9][A-Za-z0-9&'.-]*))*)"

RESTAURANT_PATTERNS = [
    rf"(?i:your order from)\s+{_NAME}",
    rf"(?i:order from)\s+{_NAME}",
    rf"(?i:delivered from)\s+{_NAME}",
]

ITEM_PATTERN = re.compile(
    r"(\d+)\s*[x×]?\s+([A-Za-z][A-Za-z0-9\s&'-]*?)\s+\$?(\d[\d,]*\.\d{2})"
)


def matches_doordash(html_lower: str) -> bool:
    return 'doordash' in html_lower


def matches_uber_eats(html_lower: str) -> bool:
    return 'uber eats' in html_lower or 'ubereats' in html_lower


def extract_restaurant(lines: list[str], text: str) -> Optional[str]:
    """Restaurant named in 'order from ...' style phrases."""
    for pattern in RESTAURANT_PATTERNS:
        for source in [*lines, text]:
            match = re.search(pattern, source)
            if match:
                name = match.group(1).strip(" .-'")
                if 1 < len(name) < 50:
                    return name
    return None


def extract_delivery_items(lines: list[str]) -> list[ExtractedItem]:
    """Items written as '2 x Pad Thai $12.50', one per line."""
    items = []
    seen = set()
    for line in lines:
        match = ITEM_PATTERN.fullmatch(line)
        if not match:
            continue
        quantity = int(match.group(1))
        name = match.group(2).strip()
        line_total = parse_amount(match.group(3))
        if quantity <= 0 or not name or not line_total or not is_item_line(name):
            continue
        if (name, quantity, line_total) in seen:
            continue
        seen.add((name, quantity, line_total))
        items.append(ExtractedItem(
            name=name,
            quantity=quantity,
            unit_price=line_total // quantity,
        ))
    return items


def _extract_delivery_order(html: str, provider: str, brand: str) -> ExtractionOutcome:
    text = html_to_text(html)
    lines = html_to_lines(html)

    amount = find_amount(TOTAL_PATTERNS, [text, html], DELIVERY_TOTAL_CEILING)
    if amount is None:
        return Rejected('Could not extract order total')

    restaurant = extract_restaurant(lines, text)
    if provider == 'doordash':
        merchant = restaurant or brand
    else:
        merchant = f'{brand} - {restaurant}' if restaurant else brand

    return Recognized(ExtractedTransaction(
        merchant=merchant,
        amount=amount,
        transaction_date=find_date(DATE_PATTERNS, [text, html]),
        provider=provider,
        items=extract_delivery_items(lines),
    ))


@register_extractor('doordash', priority=20, matches=matches_doordash)
def extract_doordash(html: str) -> ExtractionOutcome:
    """Extract a DoorDash order receipt; merchant is the restaurant when named."""
    return _extract_delivery_order(html, 'doordash', 'DoorDash')


@register_extractor('uber_eats', priority=30, matches=matches_uber_eats)
def extract_uber_eats(html: str) -> ExtractionOutcome:
    """Extract an Uber Eats order receipt."""
    return _extract_delivery_order(html, 'uber_eats', 'Uber Eats')
