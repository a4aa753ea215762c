"""Core test fixtures.

Provides an isolated in-memory Store per test, an ingestion config with a
Fernet key, Gmail message builders and a notifier that records events.

CRITICAL: LOG_DIR is redirected BEFORE any ingest module is imported so
test runs never write into the user's data directory.
"""

import base64
import os
import tempfile
import time

os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="receipt-ledger-logs-")

import pytest
from cryptography.fernet import Fernet

from config.ingest_config import IngestConfig
from services.store_service import open_store

# ============================================================================
# CONFIG & STORE
# ============================================================================


@pytest.fixture
def config():
    """Ingestion config backed by an in-memory SQLite database."""
    return IngestConfig(
        database_url="sqlite://",
        encryption_key=Fernet.generate_key().decode(),
        poll_interval_seconds=0.05,
        oauth_redirect_port=8249,
    )


@pytest.fixture
def store(config):
    """Fresh Store with tables created and defaults seeded."""
    store = open_store(config)
    yield store
    store.dispose()


@pytest.fixture
def category_ids(store):
    """Map of seeded category name -> id."""
    return {c["name"]: c["id"] for c in store.list_categories()}


# ============================================================================
# EVENTS
# ============================================================================


class RecordingNotifier:
    """Callable notifier that keeps every (event, payload) pair."""

    def __init__(self):
        self.events = []

    def __call__(self, event, payload):
        self.events.append((event, payload))

    def names(self):
        return [event for event, _ in self.events]

    def payloads(self, event):
        return [payload for name, payload in self.events if name == event]


@pytest.fixture
def notifier():
    return RecordingNotifier()


def wait_until(predicate, timeout=3.0, interval=0.01):
    """Poll predicate until true or timeout; returns the final result."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


# ============================================================================
# GMAIL MESSAGE BUILDERS
# ============================================================================


def encode_body(html: str) -> str:
    """URL-safe base64 without padding, as Gmail returns it."""
    return base64.urlsafe_b64encode(html.encode("utf-8")).decode("ascii").rstrip("=")


def make_gmail_message(message_id: str, sender: str, html: str | None) -> dict:
    """Full-format Gmail message with a multipart/alternative payload."""
    parts = [{"mimeType": "text/plain", "body": {"data": encode_body("plain text")}}]
    if html is not None:
        parts.append({"mimeType": "text/html", "body": {"data": encode_body(html)}})
    return {
        "id": message_id,
        "threadId": f"thread-{message_id}",
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "From", "value": sender},
                {"name": "Subject", "value": "Your receipt"},
            ],
            "body": {"size": 0},
            "parts": parts,
        },
    }


# ============================================================================
# SAMPLE RECEIPTS
# ============================================================================

AMAZON_HTML = """
<html><body>
<p>Thank you for shopping with Amazon.com</p>
<p>Order Placed: January 15, 2024</p>
<table>
  <tr class="item"><td>Echo Dot Qty: 2</td><td>$49.99</td></tr>
  <tr class="item"><td>USB-C Cable</td><td>$12.99</td></tr>
  <tr><td class="subtotal">Subtotal: $112.97</td></tr>
  <tr><td class="order-total">Order Total: $120.45</td></tr>
</table>
</body></html>
"""

DOORDASH_HTML = """
<html><body>
<h1>Your order from Joe's Pizza</h1>
<p>DoorDash</p>
<table>
  <tr><td>2x Pepperoni Pizza</td><td>$30.00</td></tr>
  <tr><td>1x Garlic Knots</td><td>$6.50</td></tr>
  <tr><td>Subtotal</td><td>$36.50</td></tr>
  <tr><td>Total</td><td>$42.17</td></tr>
</table>
<p>March 3, 2024</p>
</body></html>
"""

UBER_EATS_HTML = """
<html><body>
<p>Uber Eats</p>
<p>Your order from Thai Palace</p>
<p>Total: $28.40</p>
<p>February 10, 2024</p>
</body></html>
"""

UBER_RIDE_HTML = """
<html><body>
<p>Thanks for riding with Uber</p>
<p>Trip from Mission District to Union Square</p>
<p>Total: $18.75</p>
<p>January 20, 2024</p>
<a href="https://www.uber.com">uber.com</a>
</body></html>
"""

VENMO_SENT_HTML = """
<html><body>
<p>Venmo</p>
<p>You paid Jane Doe</p>
<p>$25.00</p>
<p>Note: Dinner</p>
<p>Mar 5, 2024</p>
</body></html>
"""

VENMO_RECEIVED_HTML = """
<html><body>
<p>Venmo</p>
<p>John Smith paid you</p>
<p>$40.00</p>
<p>Apr 1, 2024</p>
</body></html>
"""

GENERIC_HTML = """
<html><head><title>Receipt from Blue Bottle Coffee</title></head><body>
<p>Receipt from Blue Bottle Coffee</p>
<p>Total: $8.50</p>
<p>April 2, 2024</p>
</body></html>
"""


@pytest.fixture
def amazon_html():
    return AMAZON_HTML


@pytest.fixture
def doordash_html():
    return DOORDASH_HTML
