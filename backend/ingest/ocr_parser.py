"""
Receipt Photo Text Parser

Extracts a transaction from OCR text produced by an external recognizer.
Works line-by-line:
- Merchant from the first few non-trivial lines
- Total from the bottom-most "total" line, else the largest dollar amount
- Date from numeric MM/DD/YYYY or MM/DD/YY
- Items from "name  price" lines
"""

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from ingest.logging_config import get_logger
from ingest.receipt_parsers.base import (
    ExtractedItem,
    ExtractedTransaction,
    ExtractionOutcome,
    Recognized,
    Rejected,
    is_item_line,
)

logger = get_logger(__name__)

OCR_PROVIDER = "receipt_photo"
UNKNOWN_MERCHANT = "Unknown Merchant"

# OCR confidence is scaled down and clamped to this range
OCR_CONFIDENCE_FACTOR = 0.8
OCR_CONFIDENCE_MIN = 0.4
OCR_CONFIDENCE_MAX = 0.8

MERCHANT_SCAN_LINES = 5

# Lines that look like dates, phones, street addresses or boilerplate
MERCHANT_SKIP_PATTERN = re.compile(
    r"(?i)^(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}|tel|phone|fax|\d{3}[.\-\s]\d{3}[.\-\s]\d{4}"
    r"|\d+ [a-z]+ (st|ave|blvd|rd|dr|ln)|receipt|order|invoice|#\d)"
)
TOTAL_LINE_PATTERN = re.compile(r"(?i)(?:grand\s*)?total[:\s]*\$?\s*(\d+[,.]?\d*\.?\d{0,2})")
DOLLAR_PATTERN = re.compile(r"\$\s*(\d+[,.]?\d*\.?\d{0,2})")
FULL_YEAR_DATE = re.compile(r"(\d{1,2})[/\-](\d{1,2})[/\-](20\d{2})")
SHORT_YEAR_DATE = re.compile(r"(\d{1,2})[/\-](\d{1,2})[/\-](\d{2})\b")
ITEM_LINE_PATTERN = re.compile(r"(?i)^(.{3,40}?)\s+\$?\s*(\d+\.?\d{0,2})\s*$")


@dataclass
class OcrResult:
    """Text recognized from a receipt photo."""
    full_text: str
    confidence: float
    lines: list[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.lines:
            self.lines = [
                line.strip() for line in self.full_text.splitlines() if line.strip()
            ]


def parse_dollar_amount(value: str) -> Optional[int]:
    """Dollar string to cents; only 0 < dollars < 100000 is accepted."""
    try:
        dollars = Decimal(value.replace(",", ""))
    except InvalidOperation:
        return None
    if not Decimal("0") < dollars < Decimal("100000"):
        return None
    return int((dollars * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def extract_merchant(lines: list[str]) -> str:
    for line in lines[:MERCHANT_SCAN_LINES]:
        trimmed = line.strip()
        if 2 <= len(trimmed) <= 50 and not MERCHANT_SKIP_PATTERN.match(trimmed):
            return trimmed
    return UNKNOWN_MERCHANT


def extract_total_amount(text: str, lines: list[str]) -> Optional[int]:
    # Totals sit near the bottom of a receipt
    for line in reversed(lines):
        if "subtotal" in line.lower():
            continue
        match = TOTAL_LINE_PATTERN.search(line)
        if match:
            amount = parse_dollar_amount(match.group(1))
            if amount is not None:
                return amount

    amounts = [
        amount
        for amount in (parse_dollar_amount(m.group(1)) for m in DOLLAR_PATTERN.finditer(text))
        if amount is not None
    ]
    return max(amounts) if amounts else None


def extract_date(text: str) -> date:
    for pattern, century in ((FULL_YEAR_DATE, 0), (SHORT_YEAR_DATE, 2000)):
        for match in pattern.finditer(text):
            try:
                return date(
                    century + int(match.group(3)),
                    int(match.group(1)),
                    int(match.group(2)),
                )
            except ValueError:
                continue
    return date.today()


def extract_items(lines: list[str]) -> list[ExtractedItem]:
    items = []
    for line in lines:
        if not is_item_line(line):
            continue
        match = ITEM_LINE_PATTERN.match(line)
        if not match:
            continue
        price = parse_dollar_amount(match.group(2))
        if price is not None:
            items.append(ExtractedItem(name=match.group(1).strip(), quantity=1, unit_price=price))
    return items


def scaled_confidence(ocr_confidence: float) -> float:
    return min(max(ocr_confidence * OCR_CONFIDENCE_FACTOR, OCR_CONFIDENCE_MIN), OCR_CONFIDENCE_MAX)


def parse_receipt_text(ocr: OcrResult) -> ExtractionOutcome:
    """
    Extract a transaction from recognized receipt text.

    Args:
        ocr: OCR output (full text, lines, recognizer confidence)

    Returns:
        Recognized(transaction) or Rejected(reason)
    """
    if not ocr.lines:
        return Rejected("No text detected in image")

    amount = extract_total_amount(ocr.full_text, ocr.lines)
    if amount is None:
        return Rejected("Could not find a total amount on the receipt")

    items = extract_items(ocr.lines)
    merchant = extract_merchant(ocr.lines)
    if merchant == UNKNOWN_MERCHANT and items:
        merchant = f"Receipt ({items[0].name})"

    transaction = ExtractedTransaction(
        merchant=merchant,
        amount=amount,
        transaction_date=extract_date(ocr.full_text),
        provider=OCR_PROVIDER,
        items=items,
        raw_text=ocr.full_text,
        confidence=scaled_confidence(ocr.confidence),
    )

    logger.debug(
        f"OCR receipt parsed: {merchant} ({amount} cents, {len(items)} items)",
        extra={"provider": OCR_PROVIDER},
    )
    return Recognized(transaction)
