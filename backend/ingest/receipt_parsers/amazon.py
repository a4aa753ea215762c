"""
Amazon Receipt Parser

Handles Amazon order confirmation emails (amazon.com):
- Order total from total-styled elements, then labelled totals
- Order date from "Order Placed" / "Ordered on" text
- Line items from item/product rows
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
    html_to_text,
    is_item_line,
    make_soup,
    parse_amount,
    register_extractor,
)

# Upper bound for a plausible order total, in cents
AMAZON_TOTAL_CEILING = 5_000_000

TOTAL_PATTERNS = [
    r'(?i)order\s+total[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
    r'(?i)grand\s+total[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
    r'(?i)(?<!sub)total[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
]

DATE_PATTERNS = [
    r'(?i)order\s+placed[:\s]*([A-Za-z]+\.? \d{1,2},? \d{4})',
    r'(?i)ordered\s+on[:\s]*([A-Za-z]+\.? \d{1,2},? \d{4})',
    r'([A-Z][a-z]+ \d{1,2}, \d{4})',
]

PRICE_PATTERN = re.compile(r'\$\s*(\d[\d,]*\.\d{2})')
QUANTITY_PATTERN = re.compile(r'(?i)\b(?:qty|quantity)[:\s]*(\d+)')


def matches_amazon(html_lower: str) -> bool:
    return 'amazon.com' in html_lower or 'amazon order' in html_lower


def _extract_total_from_elements(soup) -> Optional[int]:
    for element in soup.select('[class*="total"]'):
        classes = ' '.join(element.get('class', [])).lower()
        text = element.get_text(' ', strip=True)
        if 'subtotal' in classes or 'subtotal' in text.lower():
            continue
        match = re.search(r'\$?\s*(\d[\d,]*\.?\d*)', text)
        if match:
            amount = parse_amount(match.group(1))
            if amount is not None and 0 < amount < AMAZON_TOTAL_CEILING:
                return amount
    return None


def _extract_items(soup) -> list[ExtractedItem]:
    items = []
    for element in soup.select('[class*="item"], tr[class*="product"]'):
        # Skip containers; their nested rows are visited on their own
        if element.select_one('[class*="item"], tr[class*="product"]'):
            continue

        text = element.get_text(' ', strip=True)
        price_match = PRICE_PATTERN.search(text)
        if not price_match or not is_item_line(text):
            continue

        name = text[:price_match.start()].strip(' -:')
        quantity_match = QUANTITY_PATTERN.search(name)
        quantity = 1
        if quantity_match:
            quantity = max(1, int(quantity_match.group(1)))
            name = QUANTITY_PATTERN.sub('', name).strip(' -:,')

        unit_price = parse_amount(price_match.group(1))
        if not name or len(name) > 200 or not unit_price:
            continue

        items.append(ExtractedItem(name=name, quantity=quantity, unit_price=unit_price))
    return items


@register_extractor('amazon', priority=10, matches=matches_amazon)
def extract_amazon(html: str) -> ExtractionOutcome:
    """Extract an Amazon order confirmation."""
    soup = make_soup(html)
    text = html_to_text(html)

    amount = _extract_total_from_elements(soup)
    if amount is None:
        amount = find_amount(TOTAL_PATTERNS, [html, text], AMAZON_TOTAL_CEILING)
    if amount is None:
        return Rejected('Could not extract order total')

    transaction_date = find_date(DATE_PATTERNS, [text, html])
    items = _extract_items(soup)

    transaction = ExtractedTransaction(
        merchant='Amazon',
        amount=amount,
        transaction_date=transaction_date,
        provider='amazon',
        items=items,
    )

    # Large order with no recoverable items is suspicious
    if not items and amount > 10_000:
        transaction.confidence = 0.7

    return Recognized(transaction)
