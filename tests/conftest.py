"""
Pytest configuration and fixtures for founder ledger webhook tests.
"""

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from pipeline.dispatcher import EventDispatcher
from schemas.ledger_models import LineItem
from services.stripe_checkout import ICheckoutClient
from settings import Settings
from storage.sheets_ledger import InMemoryLedger


WEBHOOK_SECRET = "whsec_test_secret"
FIXED_NOW = datetime(2026, 1, 15, 18, 30, 5, 123456, tzinfo=timezone.utc)


# =============================================================================
# HELPERS
# =============================================================================

def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a stripe-signature header the way Stripe does (HMAC-SHA256, scheme v1)."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def checkout_event(
    amount_total: Optional[int] = 25000,
    session_id: str = "cs_test_a1",
    event_id: str = "evt_test_1",
    metadata: Optional[Dict[str, Any]] = None,
    **session_fields: Any,
) -> Dict[str, Any]:
    session = {
        "id": session_id,
        "object": "checkout.session",
        "amount_total": amount_total,
        "currency": "usd",
        "customer": "cus_test_9",
        "customer_email": None,
        "customer_details": {"email": "founder@example.com", "name": "Ada Founder"},
        "metadata": metadata or {},
    }
    session.update(session_fields)
    return {
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {"object": session},
    }


def encode(event: Dict[str, Any]) -> bytes:
    return json.dumps(event, indent=2).encode("utf-8")


class FakeCheckoutClient(ICheckoutClient):
    """Returns canned line items and records every lookup."""

    def __init__(self, items: Optional[List[LineItem]] = None):
        self.items = items if items is not None else [
            LineItem(id="li_1", price_id="price_bronze", quantity=1, amount_total=25000)
        ]
        self.calls: List[str] = []

    async def list_line_items(self, session_id: str) -> List[LineItem]:
        self.calls.append(session_id)
        return list(self.items)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def settings():
    """Complete settings with the in-memory ledger backend."""
    return Settings(
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        ledger_backend="memory",
    )


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def checkout_client():
    return FakeCheckoutClient()


@pytest.fixture
def dispatcher(settings, ledger, checkout_client):
    return EventDispatcher(
        settings,
        checkout=checkout_client,
        ledger=ledger,
        clock=lambda: FIXED_NOW,
    )
