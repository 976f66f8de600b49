# schemas/__init__.py
from schemas.ledger_models import (
    EventKind,
    OutcomeKind,
    CustomerDetails,
    CheckoutSession,
    LineItem,
    TierDefinition,
    TierResolution,
    FounderLedgerRecord,
    DispatchOutcome,
)

__all__ = [
    "EventKind",
    "OutcomeKind",
    "CustomerDetails",
    "CheckoutSession",
    "LineItem",
    "TierDefinition",
    "TierResolution",
    "FounderLedgerRecord",
    "DispatchOutcome",
]
