# schemas/ledger_models.py
# ============================================================================
# FOUNDER LEDGER WEBHOOK - DOMAIN SCHEMAS
# ============================================================================
# Stripe-side shapes we read (checkout session, line items), the tier table
# entry, and the ledger record we write. Stripe objects ignore unknown
# fields so new API versions never break parsing.
# ============================================================================

from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# SECTION 1: EVENT KINDS
# ============================================================================

class EventKind(str, Enum):
    """Closed set of Stripe event types this service acts on."""
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    IGNORED = "ignored"

    @classmethod
    def classify(cls, event_type: Optional[str]) -> "EventKind":
        """Map a raw Stripe event type onto a known kind; anything else is IGNORED."""
        for kind in cls:
            if kind is not cls.IGNORED and kind.value == event_type:
                return kind
        return cls.IGNORED


class OutcomeKind(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"


# ============================================================================
# SECTION 2: STRIPE OBJECTS
# ============================================================================

class CustomerDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None
    name: Optional[str] = None


class CheckoutSession(BaseModel):
    """The `data.object` of a checkout.session.completed event."""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    amount_total: Optional[int] = None  # cents
    currency: Optional[str] = None
    customer: Optional[Union[str, Dict[str, Any]]] = None
    customer_email: Optional[str] = None
    customer_details: Optional[CustomerDetails] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def amount_usd(self) -> float:
        """Total in major currency units; a missing total counts as zero."""
        return (self.amount_total or 0) / 100


class LineItem(BaseModel):
    """A purchased line item, flattened to what the ledger needs."""
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    price_id: Optional[str] = None
    quantity: int = 1
    amount_total: Optional[int] = None
    description: Optional[str] = None


# ============================================================================
# SECTION 3: TIERS
# ============================================================================

class TierDefinition(BaseModel):
    """One row of the tier table. Amounts are whole USD."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    min_amount: int
    credits: int


class TierResolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    tier: str
    credits: int
    from_metadata: bool = False


# ============================================================================
# SECTION 4: LEDGER RECORD
# ============================================================================

class FounderLedgerRecord(BaseModel):
    """
    One ledger row, built per processed checkout and discarded after the
    append. The sheet is the system of record.
    """
    model_config = ConfigDict(frozen=True)

    timestamp_utc: str
    timestamp_local: str
    email: str = ""
    tier: str = ""
    amount_paid: float = 0.0
    credits: int = 0
    session_id: str = ""
    customer_id: str = ""
    notes: str = ""
    status: str = ""  # reserved for manual edits in the sheet
    agreement_version: str = ""


class DispatchOutcome(BaseModel):
    """What the dispatcher did with one verified event."""
    kind: OutcomeKind
    event_id: str
    event_type: str
    record: Optional[FounderLedgerRecord] = None

    @property
    def processed(self) -> bool:
        return self.kind == OutcomeKind.PROCESSED
