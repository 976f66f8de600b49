# services/__init__.py
# ============================================================================
# FOUNDER LEDGER WEBHOOK - SERVICES MODULE
# ============================================================================
# Outbound clients for the payment processor
# ============================================================================

from services.stripe_checkout import (
    ICheckoutClient,
    StripeCheckoutClient,
    to_line_item,
)

__all__ = [
    "ICheckoutClient",
    "StripeCheckoutClient",
    "to_line_item",
]
