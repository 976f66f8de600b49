# pipeline/__init__.py
# ============================================================================
# FOUNDER LEDGER WEBHOOK - PIPELINE MODULE
# ============================================================================
# Signature verification, tier resolution and the error taxonomy.
# The dispatcher is imported from pipeline.dispatcher directly.
# ============================================================================

from pipeline.errors import (
    FounderLedgerError,
    ConfigurationMissing,
    SignatureInvalid,
    MalformedEvent,
    LedgerUnavailable,
)

from pipeline.signature import SignatureVerifier

from pipeline.tiers import (
    TierResolver,
    UNKNOWN_TIER,
    round_half_up,
    validate_tier_table,
)

__all__ = [
    # Errors
    "FounderLedgerError",
    "ConfigurationMissing",
    "SignatureInvalid",
    "MalformedEvent",
    "LedgerUnavailable",
    # Verification
    "SignatureVerifier",
    # Tiers
    "TierResolver",
    "UNKNOWN_TIER",
    "round_half_up",
    "validate_tier_table",
]
