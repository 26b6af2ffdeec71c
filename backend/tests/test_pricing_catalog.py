"""
Tests for the pricing catalog.
"""
import pytest

from backend.features.pricing.catalog import (
    Finite,
    Tier,
    UNLIMITED,
    Unlimited,
    UsageKind,
    all_tiers,
    limit_for,
    next_tiers,
    parse_tier,
    simplified_limit,
    tier_config,
    tier_for_price_ref,
)


def _rank(limit):
    return float("inf") if isinstance(limit, Unlimited) else limit.value


def test_tier_config_is_total_over_tiers():
    for tier in Tier:
        config = tier_config(tier)
        assert config.id == tier
        assert config.features


def test_exactly_one_tier_is_free():
    free = [c for c in all_tiers() if c.monthly_price == 0]
    assert [c.id for c in free] == [Tier.FREE]
    assert tier_config(Tier.FREE).external_price_ref is None


def test_catalog_values():
    assert tier_config(Tier.PRO).monthly_price == 19
    assert tier_config(Tier.PRO_PLUS).monthly_price == 39
    assert limit_for(Tier.PRO, UsageKind.AUDIO_ANALYSIS) == Finite(10)
    assert limit_for(Tier.PRO, UsageKind.MIDI_GENERATION) == Finite(50)
    assert limit_for(Tier.PRO, UsageKind.STEM_SEPARATION) == Finite(5)
    assert limit_for(Tier.PRO_PLUS, UsageKind.AUDIO_ANALYSIS) == Finite(30)
    assert limit_for(Tier.PRO_PLUS, UsageKind.MIDI_GENERATION) is UNLIMITED
    assert limit_for(Tier.PRO_PLUS, UsageKind.STEM_SEPARATION) == Finite(30)


@pytest.mark.parametrize("kind", list(UsageKind))
def test_limits_non_decreasing_across_tiers(kind):
    ranks = [_rank(limit_for(t, kind)) for t in (Tier.FREE, Tier.PRO, Tier.PRO_PLUS)]
    assert ranks == sorted(ranks)


def test_limit_for_defaults_to_zero_for_ungranted_kinds():
    assert limit_for(Tier.FREE, UsageKind.MIDI_GENERATION) == Finite(0)
    assert limit_for(Tier.FREE, UsageKind.STEM_SEPARATION) == Finite(0)


def test_simplified_limit_free_uses_lifetime_cap():
    # Free monthly cap is 0; the figure shown is the lifetime allowance
    assert limit_for(Tier.FREE, UsageKind.AUDIO_ANALYSIS) == Finite(0)
    assert simplified_limit(Tier.FREE) == 1


def test_simplified_limit_paid_uses_monthly_cap():
    assert simplified_limit(Tier.PRO) == 10
    assert simplified_limit(Tier.PRO_PLUS) == 30


def test_finite_rejects_negative():
    with pytest.raises(ValueError):
        Finite(-1)


def test_tier_for_price_ref():
    assert tier_for_price_ref(tier_config(Tier.PRO).external_price_ref) == Tier.PRO
    assert tier_for_price_ref(tier_config(Tier.PRO_PLUS).external_price_ref) == Tier.PRO_PLUS
    assert tier_for_price_ref("price_unknown") is None
    assert tier_for_price_ref(None) is None


def test_next_tiers_upgrade_path():
    assert next_tiers(Tier.FREE) == [Tier.PRO, Tier.PRO_PLUS]
    assert next_tiers(Tier.PRO) == [Tier.PRO_PLUS]
    assert next_tiers(Tier.PRO_PLUS) == []


def test_parse_tier_falls_back():
    assert parse_tier("pro") == Tier.PRO
    assert parse_tier("enterprise") == Tier.FREE
    assert parse_tier(None) == Tier.FREE
