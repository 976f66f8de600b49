"""
Event Dispatcher
================
Per-request pipeline for Stripe webhooks:

    verify -> classify -> (checkout completed) fetch line items
           -> resolve tier/credits -> build ledger record -> append

Outcomes map onto HTTP in the API layer:
- SignatureInvalid                  -> 400
- ignored event type                -> 200, nothing written
- processed                         -> 200
- MalformedEvent / LedgerUnavailable -> 500 (Stripe redelivers)

There is no internal retry, queue or deduplication: a redelivered event
produces another ledger row.

pip install pydantic stripe structlog
"""

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from pydantic import ValidationError

from pipeline.errors import ConfigurationMissing, FounderLedgerError, MalformedEvent
from pipeline.signature import SignatureVerifier
from pipeline.tiers import TierResolver
from schemas.ledger_models import (
    CheckoutSession,
    DispatchOutcome,
    EventKind,
    FounderLedgerRecord,
    LineItem,
    OutcomeKind,
    TierResolution,
)
from services.stripe_checkout import ICheckoutClient, StripeCheckoutClient
from settings import Settings
from storage.sheets_ledger import ILedgerStore, build_ledger


Clock = Callable[[], datetime]
EventHandler = Callable[[Dict[str, Any], Any], Awaitable[DispatchOutcome]]


# =============================================================================
# FIELD EXTRACTION
# =============================================================================

def extract_customer_identity(session: CheckoutSession) -> Tuple[str, str]:
    """
    Pull (email, customer_id) out of a checkout session.

    Precedence:
        email:       customer_details.email -> customer_email -> ""
        customer_id: customer (id string, or id of an expanded object) -> ""
    """
    email = ""
    if session.customer_details and session.customer_details.email:
        email = session.customer_details.email
    elif session.customer_email:
        email = session.customer_email

    customer = session.customer
    if isinstance(customer, dict):
        customer_id = customer.get("id") or ""
    else:
        customer_id = customer or ""

    return email, customer_id


def format_utc(moment: datetime) -> str:
    """ISO-8601 with millisecond precision and a Z suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def format_local(moment: datetime, zone: ZoneInfo) -> str:
    """US-style local time, e.g. '1/5/2026, 7:04:09 AM'."""
    local = moment.astimezone(zone)
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return (
        f"{local.month}/{local.day}/{local.year}, "
        f"{hour}:{local.minute:02d}:{local.second:02d} {meridiem}"
    )


def build_founder_record(
    session: CheckoutSession,
    resolution: TierResolution,
    moment: datetime,
    zone: ZoneInfo,
    agreement_version: str,
) -> FounderLedgerRecord:
    email, customer_id = extract_customer_identity(session)
    return FounderLedgerRecord(
        timestamp_utc=format_utc(moment),
        timestamp_local=format_local(moment, zone),
        email=email,
        tier=resolution.tier,
        amount_paid=round(session.amount_usd, 2),
        credits=resolution.credits,
        session_id=session.id,
        customer_id=customer_id,
        notes="",
        agreement_version=agreement_version,
    )


# =============================================================================
# DISPATCHER
# =============================================================================

class EventDispatcher:
    """
    Orchestrates one webhook delivery from raw bytes to ledger row.

    Collaborators are injected; anything not given is built from `settings`.

    Example:
        dispatcher = EventDispatcher(Settings.from_env().require_complete())
        outcome = await dispatcher.dispatch(body, request.headers.get("stripe-signature"))
    """

    def __init__(
        self,
        settings: Settings,
        verifier: Optional[SignatureVerifier] = None,
        resolver: Optional[TierResolver] = None,
        checkout: Optional[ICheckoutClient] = None,
        ledger: Optional[ILedgerStore] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings
        self.verifier = verifier or SignatureVerifier(
            settings.stripe_webhook_secret, settings.webhook_tolerance_seconds
        )
        self.resolver = resolver or TierResolver(
            settings.tier_table, settings.fallback_credit_multiplier
        )
        self.checkout = checkout or StripeCheckoutClient(
            settings.stripe_secret_key, settings.stripe_timeout_seconds
        )
        self.ledger = ledger or build_ledger(settings)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        try:
            self.zone = ZoneInfo(settings.ledger_timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationMissing(
                "LEDGER_TIMEZONE", f"unknown time zone {settings.ledger_timezone!r}"
            ) from e

        self._allowed_prices = frozenset(settings.allowed_price_ids)
        self._handlers: Dict[EventKind, EventHandler] = {}
        self._register_handlers()
        self._base_logger = structlog.get_logger().bind(component="event_dispatcher")

    def _register_handlers(self):
        """Every EventKind except IGNORED must have a handler."""
        self._handlers[EventKind.CHECKOUT_SESSION_COMPLETED] = self._on_checkout_completed

        unhandled = [k for k in EventKind if k is not EventKind.IGNORED and k not in self._handlers]
        if unhandled:
            raise RuntimeError(f"No handler for event kinds: {unhandled}")

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    async def dispatch(self, payload: bytes, signature: Optional[str]) -> DispatchOutcome:
        """
        Verify and process one webhook delivery.

        Raises:
            ConfigurationMissing, SignatureInvalid, MalformedEvent, LedgerUnavailable
        """
        event = self.verifier.verify(payload, signature)

        event_id = str(event.get("id") or "unknown")
        event_type = str(event.get("type") or "unknown")
        log = self._base_logger.bind(event_id=event_id, event_type=event_type)
        log.info("webhook_verified")

        kind = EventKind.classify(event_type)
        if kind is EventKind.IGNORED:
            log.info("event_ignored")
            return DispatchOutcome(kind=OutcomeKind.IGNORED, event_id=event_id, event_type=event_type)

        try:
            return await self._handlers[kind](event, log)
        except FounderLedgerError as e:
            log.error("event_failed", error=str(e), error_type=type(e).__name__)
            raise

    # =========================================================================
    # HANDLERS
    # =========================================================================

    async def _on_checkout_completed(self, event: Dict[str, Any], log) -> DispatchOutcome:
        session = self._parse_session(event)
        log = log.bind(session_id=session.id)
        log.info("checkout_completed_received", amount_total=session.amount_total)

        items = await self.checkout.list_line_items(session.id)
        if not items:
            raise MalformedEvent(f"Checkout session {session.id} has no line items")
        price_id = self._resolve_price(items)

        resolution = self.resolver.resolve(session)
        record = build_founder_record(
            session,
            resolution,
            self.clock(),
            self.zone,
            self.settings.agreement_version,
        )
        log = log.bind(tier=record.tier, amount_paid=record.amount_paid, credits=record.credits)
        log.info(
            "founder_record_built",
            price_id=price_id,
            line_items=len(items),
            tier_from_metadata=resolution.from_metadata,
        )

        await self.ledger.append(record)

        log.info("checkout_processed")
        return DispatchOutcome(
            kind=OutcomeKind.PROCESSED,
            event_id=str(event.get("id") or "unknown"),
            event_type=EventKind.CHECKOUT_SESSION_COMPLETED.value,
            record=record,
        )

    def _parse_session(self, event: Dict[str, Any]) -> CheckoutSession:
        data = event.get("data")
        raw = data.get("object") if isinstance(data, dict) else None
        if not isinstance(raw, dict):
            raise MalformedEvent("Event carries no checkout session object")
        try:
            return CheckoutSession.model_validate(raw)
        except ValidationError as e:
            raise MalformedEvent(
                f"Checkout session failed validation ({e.error_count()} errors)"
            ) from e

    def _resolve_price(self, items: List[LineItem]) -> str:
        price_id = items[0].price_id
        if not price_id:
            raise MalformedEvent("First line item carries no price identifier")
        if self._allowed_prices and price_id not in self._allowed_prices:
            raise MalformedEvent(f"Unrecognized price identifier: {price_id}")
        return price_id
