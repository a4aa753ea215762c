"""
Generic Receipt Parser

Fallback for any email carrying common receipt vocabulary. Always runs
after the vendor-specific parsers and reports lower confidence.
"""

import re
from typing import Optional

from .base import (
    ExtractedTransaction,
    ExtractionOutcome,
    Recognized,
    Rejected,
    find_date,
    html_to_lines,
    html_to_text,
    make_soup,
    parse_amount,
    register_extractor,
)

GENERIC_TOTAL_CEILING = 1_000_000

RECEIPT_VOCABULARY = ('total', 'receipt', 'order', 'payment', 'invoice')

_NAME = r"([A-Z0-9][A-Za-z0-9&'.-]*(?:\s+(?:&|[A-Z0-9][A-Za-z0-9&'.-]*)){0,5})"

MERCHANT_PATTERNS = [
    rf'(?i:receipt from|order from|payment to|from)\s+{_NAME}',
    rf'{_NAME}\s+(?i:receipt|order|invoice)\b',
]

TOTAL_PATTERNS = [
    r'(?i)(?:grand\s+|order\s+)?total[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
    r'(?i)amount[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
    r'(?i)you\s+(?:paid|charged)[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
    r'(?i)payment[:\s]*\$?\s*(\d[\d,]*\.?\d*)',
]

DATE_PATTERNS = [
    r'([A-Za-z]+\.? \d{1,2}, \d{4})',
    r'(\d{1,2}/\d{1,2}/\d{2,4})',
    r'(\d{4}-\d{2}-\d{2})',
]

# Leading words that make a capture a phrase rather than a name
NON_NAME_WORDS = {'your', 'the', 'my', 'this', 'a', 'an', 'new', 'thank', 'thanks'}

TITLE_BOILERPLATE = re.compile(r'\b(?:Receipt|Order|Confirmation|Invoice)\b', re.IGNORECASE)


def matches_generic(html_lower: str) -> bool:
    return any(word in html_lower for word in RECEIPT_VOCABULARY)


def is_valid_merchant_name(name: str) -> bool:
    trimmed = (name or '').strip()
    lowered = trimmed.lower()
    return (
        2 <= len(trimmed) <= 50
        and any(c.isalpha() for c in trimmed)
        and 'receipt' not in lowered
        and 'order confirmation' not in lowered
        and lowered.split()[0] not in NON_NAME_WORDS
    )


def extract_merchant(soup, lines: list[str]) -> Optional[str]:
    """Merchant from receipt phrasing, then <title>, then og:site_name."""
    for pattern in MERCHANT_PATTERNS:
        for line in lines:
            match = re.search(pattern, line)
            if match:
                merchant = match.group(1).strip(" .-'")
                if is_valid_merchant_name(merchant):
                    return merchant

    title = soup.find('title')
    if title:
        cleaned = TITLE_BOILERPLATE.sub('', title.get_text())
        cleaned = re.sub(r'\s+', ' ', cleaned).strip(' -|:#')
        if is_valid_merchant_name(cleaned):
            return cleaned

    meta = soup.find('meta', attrs={'property': 'og:site_name'})
    if meta and is_valid_merchant_name(meta.get('content', '')):
        return meta['content'].strip()

    return None


def extract_largest_total(text: str, html: str) -> Optional[int]:
    """Largest plausible amount among all total-like matches."""
    amounts = []
    for pattern in TOTAL_PATTERNS:
        for source in (text, html):
            for match in re.finditer(pattern, source):
                amount = parse_amount(match.group(1))
                if amount is not None and 0 < amount < GENERIC_TOTAL_CEILING:
                    amounts.append(amount)
    return max(amounts) if amounts else None


@register_extractor('generic', priority=1000, matches=matches_generic, fallback=True)
def extract_generic(html: str) -> ExtractionOutcome:
    """Best-effort extraction for unknown senders."""
    soup = make_soup(html)
    text = html_to_text(html)

    amount = extract_largest_total(text, html)
    if amount is None:
        return Rejected('Could not extract amount')

    merchant = extract_merchant(soup, html_to_lines(html))
    if merchant is None:
        return Rejected('Could not identify merchant')

    return Recognized(ExtractedTransaction(
        merchant=merchant,
        amount=amount,
        transaction_date=find_date(DATE_PATTERNS, [text, html]),
        provider='generic',
        confidence=0.5,
    ))
