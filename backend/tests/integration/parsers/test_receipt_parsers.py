"""Integration tests for the receipt extraction engine.

Validates, per vendor:
- Merchant identification
- Totals in integer cents (with plausibility ceilings)
- Receipt dates
- Line items
And the engine contract: priority order, fallback, outcomes.
"""

from datetime import date

import pytest

from conftest import (
    AMAZON_HTML,
    DOORDASH_HTML,
    GENERIC_HTML,
    UBER_EATS_HTML,
    UBER_RIDE_HTML,
    VENMO_RECEIVED_HTML,
    VENMO_SENT_HTML,
)
from ingest.receipt_parsers import (
    ExtractedItem,
    ExtractedTransaction,
    Recognized,
    Rejected,
    Unrecognized,
    extract_receipt,
    get_extractors,
    parse_amount,
    parse_date_text,
)
from ingest.receipt_parsers.amazon import extract_amazon
from ingest.receipt_parsers.base import register_extractor
from ingest.receipt_parsers.food_delivery import extract_doordash

# ============================================================================
# SHARED UTILITIES
# ============================================================================


@pytest.mark.parametrize(
    "text,expected",
    [
        ("$1,234.56", 123456),
        ("12.34 USD", 1234),
        ("€ 63,75", 6375),
        ("$0.005", 1),
        ("no digits", None),
        ("", None),
    ],
)
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


@pytest.mark.parametrize(
    "text,expected",
    [
        ("January 15, 2024", date(2024, 1, 15)),
        ("Jan 15 2024", date(2024, 1, 15)),
        ("15 January 2024", date(2024, 1, 15)),
        ("01/15/2024", date(2024, 1, 15)),
        ("01/15/24", date(2024, 1, 15)),
        ("2024-01-15", date(2024, 1, 15)),
        ("Feb 30, 2024", None),
        ("no date here", None),
    ],
)
def test_parse_date_text(text, expected):
    assert parse_date_text(text) == expected


def test_transaction_rejects_negative_amount():
    with pytest.raises(ValueError):
        ExtractedTransaction(
            merchant="Shop", amount=-1, transaction_date=date(2024, 1, 1), provider="generic"
        )


def test_item_total_price():
    assert ExtractedItem(name="Latte", quantity=3, unit_price=450).total_price == 1350


def test_transaction_dict_preserves_fields():
    txn = ExtractedTransaction(
        merchant="Venmo - Jane",
        amount=2500,
        transaction_date=date(2024, 3, 5),
        provider="venmo",
        items=[ExtractedItem("Dinner", 1, 2500)],
        confidence=0.8,
        direction="incoming",
    )

    restored = ExtractedTransaction.from_dict(txn.to_dict())

    assert restored == txn


# ============================================================================
# ENGINE CONTRACT
# ============================================================================


def test_extractor_order():
    providers = [entry.provider for entry in get_extractors()]
    assert providers == ["amazon", "doordash", "uber_eats", "uber", "venmo", "generic"]
    assert get_extractors()[-1].is_fallback


def test_second_fallback_rejected():
    with pytest.raises(ValueError, match="Fallback extractor already registered"):

        @register_extractor("other_fallback", priority=1, matches=lambda h: True, fallback=True)
        def extract_other(html):
            return Unrecognized()


def test_empty_input_unrecognized():
    assert isinstance(extract_receipt(""), Unrecognized)
    assert isinstance(extract_receipt("   "), Unrecognized)


def test_unmatched_input_unrecognized():
    assert isinstance(extract_receipt("<p>Hello world</p>"), Unrecognized)


def test_priority_amazon_before_doordash():
    html = AMAZON_HTML + "<p>Also mentions doordash</p>"

    outcome = extract_receipt(html)

    assert isinstance(outcome, Recognized)
    assert outcome.transaction.provider == "amazon"


def test_vendor_rejection_falls_through_to_generic():
    """Uber claims the email but finds no fare; the generic extractor recovers it."""
    html = "<p>Your receipt from Lime</p><p>uber.com</p><p>Amount: $3.20</p>"

    outcome = extract_receipt(html)

    assert isinstance(outcome, Recognized)
    assert outcome.transaction.provider == "generic"
    assert outcome.transaction.merchant == "Lime"
    assert outcome.transaction.amount == 320


def test_fallback_rejection_returned():
    outcome = extract_receipt("<p>Your receipt</p><p>Thanks for visiting!</p>")

    assert isinstance(outcome, Rejected)
    assert outcome.reason == "Could not extract amount"


# ============================================================================
# AMAZON
# ============================================================================


def test_amazon_order():
    outcome = extract_receipt(AMAZON_HTML)

    assert isinstance(outcome, Recognized)
    txn = outcome.transaction
    assert txn.merchant == "Amazon"
    assert txn.provider == "amazon"
    assert txn.amount == 12045  # Order total, not the subtotal
    assert txn.transaction_date == date(2024, 1, 15)
    assert txn.confidence == 1.0
    assert [(i.name, i.quantity, i.unit_price) for i in txn.items] == [
        ("Echo Dot", 2, 4999),
        ("USB-C Cable", 1, 1299),
    ]


def test_amazon_large_order_without_items_lowers_confidence():
    html = "<p>Amazon.com order</p><p>Order Total: $150.00</p>"

    outcome = extract_amazon(html)

    assert isinstance(outcome, Recognized)
    assert outcome.transaction.amount == 15000
    assert outcome.transaction.items == []
    assert outcome.transaction.confidence == 0.7


def test_amazon_without_total_rejected():
    outcome = extract_amazon("<p>Your Amazon.com account settings changed</p>")

    assert outcome == Rejected("Could not extract order total")


# ============================================================================
# FOOD DELIVERY
# ============================================================================


def test_doordash_order():
    outcome = extract_receipt(DOORDASH_HTML)

    assert isinstance(outcome, Recognized)
    txn = outcome.transaction
    assert txn.provider == "doordash"
    assert txn.merchant == "Joe's Pizza"
    assert txn.amount == 4217
    assert txn.transaction_date == date(2024, 3, 3)
    assert [(i.name, i.quantity, i.unit_price, i.total_price) for i in txn.items] == [
        ("Pepperoni Pizza", 2, 1500, 3000),
        ("Garlic Knots", 1, 650, 650),
    ]


def test_doordash_total_over_ceiling_rejected():
    html = "<p>DoorDash</p><p>Total: $2,000.00</p>"

    assert extract_doordash(html) == Rejected("Could not extract order total")


def test_uber_eats_order():
    outcome = extract_receipt(UBER_EATS_HTML)

    assert isinstance(outcome, Recognized)
    txn = outcome.transaction
    assert txn.provider == "uber_eats"
    assert txn.merchant == "Uber Eats - Thai Palace"
    assert txn.amount == 2840
    assert txn.transaction_date == date(2024, 2, 10)


def test_uber_eats_not_claimed_by_rides():
    html = UBER_EATS_HTML + '<a href="https://www.uber.com">uber.com</a>'

    outcome = extract_receipt(html)

    assert outcome.transaction.provider == "uber_eats"


# ============================================================================
# RIDES
# ============================================================================


def test_uber_trip():
    outcome = extract_receipt(UBER_RIDE_HTML)

    assert isinstance(outcome, Recognized)
    txn = outcome.transaction
    assert txn.provider == "uber"
    assert txn.merchant == "Uber - Mission District to Union Square"
    assert txn.amount == 1875
    assert txn.transaction_date == date(2024, 1, 20)


# ============================================================================
# VENMO
# ============================================================================


def test_venmo_payment_sent():
    outcome = extract_receipt(VENMO_SENT_HTML)

    assert isinstance(outcome, Recognized)
    txn = outcome.transaction
    assert txn.provider == "venmo"
    assert txn.merchant == "Venmo - Jane Doe (Dinner)"
    assert txn.amount == 2500
    assert txn.direction == "outgoing"
    assert txn.confidence == 1.0
    assert txn.transaction_date == date(2024, 3, 5)


def test_venmo_payment_received():
    outcome = extract_receipt(VENMO_RECEIVED_HTML)

    txn = outcome.transaction
    assert txn.merchant == "Venmo - John Smith"
    assert txn.amount == 4000  # Positive; direction carries the sign
    assert txn.direction == "incoming"
    assert txn.confidence == 0.8


# ============================================================================
# GENERIC FALLBACK
# ============================================================================


def test_generic_receipt():
    outcome = extract_receipt(GENERIC_HTML)

    assert isinstance(outcome, Recognized)
    txn = outcome.transaction
    assert txn.provider == "generic"
    assert txn.merchant == "Blue Bottle Coffee"
    assert txn.amount == 850
    assert txn.confidence == 0.5
    assert txn.transaction_date == date(2024, 4, 2)


def test_generic_merchant_from_site_name():
    html = (
        '<html><head><meta property="og:site_name" content="Bookshop"></head>'
        "<body><p>Thanks for your purchase</p><p>Total: $19.99</p></body></html>"
    )

    outcome = extract_receipt(html)

    assert outcome.transaction.merchant == "Bookshop"
    assert outcome.transaction.amount == 1999


def test_generic_without_merchant_rejected():
    html = "<p>your receipt</p><p>Total: $5.00</p>"

    assert extract_receipt(html) == Rejected("Could not identify merchant")
