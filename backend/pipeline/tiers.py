"""
Tier Resolver
=============
Pure functions from a completed checkout to a membership tier and a credit
allotment.

- Tier: explicit `metadata.tier` wins; otherwise the first (highest)
  threshold the amount reaches, or "Unknown".
- Credits: exact match of the rounded USD amount against the table's price
  points; otherwise amount x fallback multiplier, rounded.

Zero and negative amounts are not guarded: they land on "Unknown" with
fallback credits (which may be zero or negative).
"""

import math
from typing import Iterable, Tuple

from schemas.ledger_models import CheckoutSession, TierDefinition, TierResolution


UNKNOWN_TIER = "Unknown"
TIER_METADATA_KEY = "tier"


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward +infinity (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def validate_tier_table(table: Iterable[TierDefinition]) -> Tuple[TierDefinition, ...]:
    """Return the table as a tuple; thresholds must be strictly decreasing."""
    table = tuple(table)
    if not table:
        raise ValueError("tier table must not be empty")
    for higher, lower in zip(table, table[1:]):
        if lower.min_amount >= higher.min_amount:
            raise ValueError(
                f"tier thresholds must be strictly decreasing: "
                f"{higher.name}={higher.min_amount} is followed by {lower.name}={lower.min_amount}"
            )
    return table


class TierResolver:
    """
    Stateless tier and credit lookup over a fixed tier table.

    Example:
        resolver = TierResolver(DEFAULT_TIER_TABLE, fallback_multiplier=1.3)
        resolver.resolve(session)  # TierResolution(tier="Silver", credits=1050)
    """

    def __init__(self, table: Iterable[TierDefinition], fallback_multiplier: float = 1.3):
        self._table = validate_tier_table(table)
        self._credits_by_amount = {t.min_amount: t.credits for t in self._table}
        self._fallback_multiplier = fallback_multiplier

    def tier_for_amount(self, amount: float) -> str:
        for definition in self._table:
            if amount >= definition.min_amount:
                return definition.name
        return UNKNOWN_TIER

    def resolve_tier(self, session: CheckoutSession) -> str:
        override = session.metadata.get(TIER_METADATA_KEY)
        if override:
            return str(override)
        return self.tier_for_amount(session.amount_usd)

    def resolve_credits(self, tier: str, amount: float) -> int:
        # credits depend on the amount alone, even for a metadata tier
        exact = self._credits_by_amount.get(round_half_up(amount))
        if exact is not None:
            return exact
        return round_half_up(amount * self._fallback_multiplier)

    def resolve(self, session: CheckoutSession) -> TierResolution:
        tier = self.resolve_tier(session)
        return TierResolution(
            tier=tier,
            credits=self.resolve_credits(tier, session.amount_usd),
            from_metadata=bool(session.metadata.get(TIER_METADATA_KEY)),
        )
