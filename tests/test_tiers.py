"""
Unit tests for tier and credit resolution.
"""

import pytest

from pipeline.tiers import UNKNOWN_TIER, TierResolver, round_half_up, validate_tier_table
from schemas.ledger_models import CheckoutSession, TierDefinition
from settings import DEFAULT_TIER_TABLE


@pytest.fixture
def resolver():
    return TierResolver(DEFAULT_TIER_TABLE, fallback_multiplier=1.3)


def session(amount_cents, **metadata):
    return CheckoutSession(id="cs_test", amount_total=amount_cents, metadata=metadata)


@pytest.mark.unit
@pytest.mark.parametrize(
    "amount_cents, tier, credits",
    [
        (25000, "Bronze", 325),
        (75000, "Silver", 1050),
        (200000, "Gold", 3000),
        (500000, "Titan", 8000),
    ],
)
def test_known_price_points(resolver, amount_cents, tier, credits):
    result = resolver.resolve(session(amount_cents))

    assert result.tier == tier
    assert result.credits == credits
    assert result.from_metadata is False


@pytest.mark.unit
def test_unlisted_amount_uses_threshold_and_fallback_multiplier(resolver):
    result = resolver.resolve(session(100000))

    assert result.tier == "Silver"
    assert result.credits == 1300


@pytest.mark.unit
def test_metadata_tier_overrides_amount(resolver):
    result = resolver.resolve(session(1000, tier="Gold"))

    assert result.tier == "Gold"
    # credits still follow the amount: round(10 x 1.3)
    assert result.credits == 13
    assert result.from_metadata is True


@pytest.mark.unit
def test_empty_metadata_tier_is_ignored(resolver):
    assert resolver.resolve_tier(session(200000, tier="")) == "Gold"


@pytest.mark.unit
def test_amount_above_top_threshold_is_titan(resolver):
    result = resolver.resolve(session(1_000_000))

    assert result.tier == "Titan"
    assert result.credits == 13000


@pytest.mark.unit
def test_below_lowest_threshold_is_unknown(resolver):
    result = resolver.resolve(session(10000))

    assert result.tier == UNKNOWN_TIER
    assert result.credits == 130


@pytest.mark.unit
def test_just_below_bronze_rounds_onto_bronze_credits(resolver):
    # tier compares the exact amount, credits the rounded amount
    result = resolver.resolve(session(24999))

    assert result.tier == UNKNOWN_TIER
    assert result.credits == 325


@pytest.mark.unit
@pytest.mark.parametrize("amount_cents, credits", [(0, 0), (None, 0), (-10000, -130)])
def test_zero_and_negative_amounts_are_not_guarded(resolver, amount_cents, credits):
    result = resolver.resolve(session(amount_cents))

    assert result.tier == UNKNOWN_TIER
    assert result.credits == credits


@pytest.mark.unit
def test_fallback_multiplier_is_configurable():
    resolver = TierResolver(DEFAULT_TIER_TABLE, fallback_multiplier=2.0)

    assert resolver.resolve_credits("Silver", 1000.0) == 2000
    assert resolver.resolve_credits("Silver", 750.0) == 1050


@pytest.mark.unit
@pytest.mark.parametrize("value, expected", [(2.5, 3), (2.4999, 2), (-2.5, -2), (1300.0000000000002, 1300)])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


@pytest.mark.unit
def test_tier_table_must_be_strictly_decreasing():
    table = (
        TierDefinition(name="Low", min_amount=100, credits=1),
        TierDefinition(name="High", min_amount=500, credits=5),
    )

    with pytest.raises(ValueError, match="strictly decreasing"):
        validate_tier_table(table)


@pytest.mark.unit
def test_tier_table_must_not_be_empty():
    with pytest.raises(ValueError, match="must not be empty"):
        TierResolver(())
