"""
Receipt Parser Base - Shared Types, Utilities and Registry

Contains:
- Extraction result types (ExtractedTransaction, ExtractedItem, outcomes)
- Extractor registry and decorator with explicit priority ordering
- Common utility functions for amount, date and text parsing
"""

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Callable, NamedTuple, Optional, Union

from bs4 import BeautifulSoup


# ============================================================================
# RESULT TYPES
# ============================================================================


@dataclass
class ExtractedItem:
    """A single line item; prices are integer cents."""
    name: str
    quantity: int
    unit_price: int

    @property
    def total_price(self) -> int:
        return self.quantity * self.unit_price


@dataclass
class ExtractedTransaction:
    """Structured transaction recovered from a receipt.

    amount is integer cents and never negative; direction records whether
    money left ("outgoing") or arrived ("incoming").
    """
    merchant: str
    amount: int
    transaction_date: date
    provider: str
    items: list[ExtractedItem] = field(default_factory=list)
    raw_text: Optional[str] = None
    confidence: float = 1.0
    direction: str = "outgoing"

    def __post_init__(self):
        if self.amount < 0:
            raise ValueError(f"Transaction amount must be non-negative: {self.amount}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be within [0, 1]: {self.confidence}")

    def to_dict(self) -> dict:
        return {
            "merchant": self.merchant,
            "amount": self.amount,
            "transaction_date": self.transaction_date.isoformat(),
            "provider": self.provider,
            "items": [
                {
                    "name": item.name,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "total_price": item.total_price,
                }
                for item in self.items
            ],
            "raw_text": self.raw_text,
            "confidence": self.confidence,
            "direction": self.direction,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExtractedTransaction":
        transaction_date = data["transaction_date"]
        if isinstance(transaction_date, str):
            transaction_date = date.fromisoformat(transaction_date)
        return cls(
            merchant=data["merchant"],
            amount=int(data["amount"]),
            transaction_date=transaction_date,
            provider=data["provider"],
            items=[
                ExtractedItem(item["name"], int(item["quantity"]), int(item["unit_price"]))
                for item in data.get("items", [])
            ],
            raw_text=data.get("raw_text"),
            confidence=float(data.get("confidence", 1.0)),
            direction=data.get("direction", "outgoing"),
        )


@dataclass
class Recognized:
    transaction: ExtractedTransaction


@dataclass
class Rejected:
    """Input matched an extractor but required fields were missing."""
    reason: str


@dataclass
class Unrecognized:
    """No extractor claimed the input."""


ExtractionOutcome = Union[Recognized, Rejected, Unrecognized]


# ============================================================================
# EXTRACTOR REGISTRY
# ============================================================================

# Matchers receive the lower-cased HTML; extractors receive the original HTML
ReceiptMatcher = Callable[[str], bool]
ReceiptExtractor = Callable[[str], ExtractionOutcome]


class ExtractorEntry(NamedTuple):
    provider: str
    priority: int
    matches: ReceiptMatcher
    extract: ReceiptExtractor
    is_fallback: bool


# Registry of provider id -> extractor entry
RECEIPT_EXTRACTORS: dict[str, ExtractorEntry] = {}


def register_extractor(
    provider: str,
    priority: int,
    matches: ReceiptMatcher,
    fallback: bool = False,
):
    """Decorator to register an extractor with an explicit priority.

    Lower priority values run first. The single fallback extractor always
    runs after every format-specific extractor regardless of its priority.
    """
    def decorator(func: ReceiptExtractor):
        if fallback:
            existing = [e.provider for e in RECEIPT_EXTRACTORS.values()
                        if e.is_fallback and e.provider != provider]
            if existing:
                raise ValueError(
                    f"Fallback extractor already registered: {existing[0]}"
                )
        RECEIPT_EXTRACTORS[provider] = ExtractorEntry(
            provider=provider,
            priority=priority,
            matches=matches,
            extract=func,
            is_fallback=fallback,
        )
        return func
    return decorator


def get_extractors() -> list[ExtractorEntry]:
    """Registered extractors in iteration order (fallback last)."""
    return sorted(
        RECEIPT_EXTRACTORS.values(),
        key=lambda e: (e.is_fallback, e.priority, e.provider),
    )


# ============================================================================
# PARSING UTILITIES
# ============================================================================

MONTH_PATTERN = (
    r'(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|'
    r'Jul(?:y)?|Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|'
    r'Dec(?:ember)?)'
)

MONTHS = {
    'jan': 1, 'january': 1,
    'feb': 2, 'february': 2,
    'mar': 3, 'march': 3,
    'apr': 4, 'april': 4,
    'may': 5,
    'jun': 6, 'june': 6,
    'jul': 7, 'july': 7,
    'aug': 8, 'august': 8,
    'sep': 9, 'sept': 9, 'september': 9,
    'oct': 10, 'october': 10,
    'nov': 11, 'november': 11,
    'dec': 12, 'december': 12,
}

# Ordered cascade: month-name forms, MM/DD/YYYY, MM/DD/YY, ISO
DATE_PATTERNS = [
    (rf'\b({MONTH_PATTERN})\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})\b', 'MDY_NAME'),
    (rf'\b(\d{{1,2}})\s+({MONTH_PATTERN})\.?,?\s+(\d{{4}})\b', 'DMY_NAME'),
    (r'\b(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})\b', 'MDY'),
    (r'\b(\d{1,2})[/\-](\d{1,2})[/\-](\d{2})\b', 'MDY_SHORT'),
    (r'\b(\d{4})-(\d{1,2})-(\d{1,2})\b', 'YMD'),
]

# Lines mentioning any of these are never item lines
ITEM_EXCLUSION_KEYWORDS = (
    'total', 'subtotal', 'tax', 'tip', 'change', 'balance', 'payment',
)


def parse_amount(text: str) -> Optional[int]:
    """Extract a money amount in integer cents from text like '$1,234.56', '12.34 USD' or '€ 63,75'."""
    if not text:
        return None

    # Remove currency symbols and whitespace
    cleaned = re.sub(r'[£$€¥\s]', '', text)

    # European format: comma as decimal separator (e.g. "63,75" or "1.234,56")
    if re.match(r'^-?\d{1,3}(?:\.\d{3})*,\d{2}$', cleaned):
        cleaned = cleaned.replace('.', '').replace(',', '.')
    else:
        # Otherwise commas are thousands separators
        cleaned = cleaned.replace(',', '')

    match = re.search(r'(-?\d+(?:\.\d+)?)', cleaned)
    if not match:
        return None

    try:
        cents = (Decimal(match.group(1)) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    return int(cents)


def _build_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date_text(text: str) -> Optional[date]:
    """Parse the first recognizable date in text.

    Two-digit years are read as 20YY. Returns None when nothing parses.
    """
    if not text:
        return None

    for pattern, fmt in DATE_PATTERNS:
        for match in re.finditer(pattern, text, re.IGNORECASE):
            if fmt == 'MDY_NAME':
                month = MONTHS[match.group(1).lower()]
                parsed = _build_date(int(match.group(3)), month, int(match.group(2)))
            elif fmt == 'DMY_NAME':
                month = MONTHS[match.group(2).lower()]
                parsed = _build_date(int(match.group(3)), month, int(match.group(1)))
            elif fmt == 'MDY':
                parsed = _build_date(int(match.group(3)), int(match.group(1)), int(match.group(2)))
            elif fmt == 'MDY_SHORT':
                parsed = _build_date(2000 + int(match.group(3)), int(match.group(1)), int(match.group(2)))
            else:
                parsed = _build_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

            if parsed:
                return parsed

    return None


def parse_date_or_today(*candidates: str) -> date:
    """First date found across candidate texts, falling back to today."""
    for candidate in candidates:
        parsed = parse_date_text(candidate)
        if parsed:
            return parsed
    return date.today()


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or '', 'html.parser')


def html_to_text(html: str) -> str:
    """
    Convert HTML to plain visible text.

    Args:
        html: HTML content

    Returns:
        Plain text content with whitespace collapsed
    """
    if not html:
        return ''

    soup = make_soup(html)

    # Remove non-visible elements
    for element in soup(['script', 'style', 'head', 'meta', 'noscript']):
        element.decompose()

    text = soup.get_text(separator=' ')
    text = re.sub(r'\s+', ' ', text)

    return text.strip()


def html_to_lines(html: str) -> list[str]:
    """Visible text split into candidate lines.

    Table rows are rendered as one line each (cells joined by spaces),
    followed by the remaining text lines of the document.
    """
    if not html:
        return []

    soup = make_soup(html)
    for element in soup(['script', 'style', 'head', 'meta', 'noscript']):
        element.decompose()

    lines = []
    for row in soup.find_all('tr'):
        if row.find('tr'):
            continue
        row_text = row.get_text(' ', strip=True)
        if row_text:
            lines.append(re.sub(r'\s+', ' ', row_text))

    for line in soup.get_text('\n').splitlines():
        line = re.sub(r'\s+', ' ', line).strip()
        if line and line not in lines:
            lines.append(line)
    return lines


def find_amount(patterns: list[str], sources: list[str], ceiling: int) -> Optional[int]:
    """First plausible amount across patterns (outer) and sources (inner).

    An amount is plausible when 0 < amount < ceiling (cents).
    """
    for pattern in patterns:
        for source in sources:
            for match in re.finditer(pattern, source):
                amount = parse_amount(match.group(1))
                if amount is not None and 0 < amount < ceiling:
                    return amount
    return None


def is_item_line(text: str) -> bool:
    """False for lines that describe totals, taxes, tips or payments."""
    lowered = text.lower()
    return not any(keyword in lowered for keyword in ITEM_EXCLUSION_KEYWORDS)


def find_date(patterns: list[str], sources: list[str]) -> date:
    """First parseable date captured by patterns (outer) in sources (inner).

    Falls back to any date in the sources, then to today.
    """
    for pattern in patterns:
        for source in sources:
            for match in re.finditer(pattern, source):
                parsed = parse_date_text(match.group(1))
                if parsed:
                    return parsed
    return parse_date_or_today(*sources)
