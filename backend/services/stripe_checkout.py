# services/stripe_checkout.py
# ============================================================================
# FOUNDER LEDGER WEBHOOK - STRIPE CHECKOUT CLIENT
# ============================================================================
# Fetches the purchased line items of a completed checkout session. The
# Stripe SDK is blocking, so calls run in the default executor; the
# request timeout is set on its HTTP client. No global stripe.api_key.
# ============================================================================

import asyncio
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import stripe
import structlog

from pipeline.errors import MalformedEvent
from schemas.ledger_models import LineItem


MAX_LINE_ITEMS = 100


class ICheckoutClient(ABC):
    """Source of a checkout session's line items."""

    @abstractmethod
    async def list_line_items(self, session_id: str) -> List[LineItem]:
        pass


class StripeCheckoutClient(ICheckoutClient):
    """
    Line items straight from the Stripe API.

    The timeout lives on the HTTP client, so a stalled request is aborted
    by the transport rather than abandoned in a worker thread. Network
    retries are off; Stripe's webhook redelivery is the retry.
    """

    def __init__(
        self,
        api_key: str,
        timeout_seconds: float = 10.0,
        client: Optional[stripe.StripeClient] = None,
    ):
        self._timeout = timeout_seconds
        self._client = client or stripe.StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout_seconds),
            max_network_retries=0,
        )
        self._logger = structlog.get_logger().bind(component="stripe_checkout")

    async def list_line_items(self, session_id: str) -> List[LineItem]:
        def fetch():
            return self._client.v1.checkout.sessions.line_items.list(
                session_id,
                {"limit": MAX_LINE_ITEMS},
            )

        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, fetch)
        except stripe.StripeError as e:
            self._logger.error(
                "line_items_fetch_failed",
                session_id=session_id,
                error=str(e),
                error_type=type(e).__name__,
                timeout=self._timeout,
            )
            raise MalformedEvent(f"Could not fetch line items for {session_id}") from e

        items = [to_line_item(raw) for raw in _field(result, "data") or []]
        self._logger.debug("line_items_fetched", session_id=session_id, count=len(items))
        return items


def to_line_item(raw: Any) -> LineItem:
    """Flatten a Stripe line item (StripeObject or plain dict)."""
    price = _field(raw, "price")
    price_id = price if isinstance(price, str) else _field(price, "id")
    return LineItem(
        id=_field(raw, "id") or "",
        price_id=price_id,
        quantity=_field(raw, "quantity") or 1,
        amount_total=_field(raw, "amount_total"),
        description=_field(raw, "description"),
    )


def _field(obj: Any, name: str) -> Optional[Any]:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)
