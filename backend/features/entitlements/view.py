"""
backend/features/entitlements/view.py

View-models for the pricing page and usage meters.

Display paths fail open: when the ledger is unreachable the meters show zero
usage instead of failing the page. The enforcement gate does not use these.
"""

from datetime import datetime
import logging
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict

from backend.core.errors import StoreUnavailableError
from backend.core.logging import LOGGER_NAME
from backend.features.entitlements.service import (
    effective_tier,
    remaining_usage,
    upgrade_message,
    uses_lifetime_cap,
)
from backend.features.pricing.catalog import (
    Finite,
    Limit,
    Tier,
    TierConfig,
    UsageKind,
    all_tiers,
    limit_for,
    lifetime_limit_for,
    next_tiers,
    simplified_limit,
    tier_config,
)
from backend.features.usage.service import UsageLedger
from backend.models.user import User


logger = logging.getLogger(LOGGER_NAME)

LimitValue = Union[int, str]  # int or "unlimited"


def _limit_value(limit: Limit) -> LimitValue:
    return limit.value if isinstance(limit, Finite) else "unlimited"


class TierCard(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    monthly_price: int
    features: List[str]
    limits: Dict[str, LimitValue]
    audio_analyses: int
    audio_analyses_period: str  # "lifetime" or "month"
    is_current: bool = False
    is_upgrade: bool = False


class UsageMeter(BaseModel):
    model_config = ConfigDict(frozen=True)

    usage_kind: str
    used: int
    limit: LimitValue
    remaining: LimitValue
    period: str  # "lifetime" or "month"
    reached: bool


class UsageSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    tier: str
    subscription_status: str
    meters: List[UsageMeter]
    total_cost_cents: int
    upgrade_message: Optional[str] = None
    upgrade_options: List[TierCard]
    degraded: bool = False


def tier_card(config: TierConfig, current: Optional[Tier] = None) -> TierCard:
    upgrades = next_tiers(current) if current is not None else []
    return TierCard(
        id=config.id.value,
        display_name=config.display_name,
        monthly_price=config.monthly_price,
        features=list(config.features),
        limits={kind.value: _limit_value(limit_for(config.id, kind)) for kind in UsageKind},
        audio_analyses=simplified_limit(config.id),
        audio_analyses_period="lifetime" if config.id == Tier.FREE else "month",
        is_current=current == config.id,
        is_upgrade=config.id in upgrades,
    )


def tier_cards(current: Optional[Tier] = None) -> List[TierCard]:
    """All tiers in display order, flagged against the viewer's current tier."""
    return [tier_card(config, current) for config in all_tiers()]


def upgrade_options(tier: Tier) -> List[TierCard]:
    return [tier_card(tier_config(t), tier) for t in next_tiers(tier)]


def _meter(tier: Tier, kind: UsageKind, used: int) -> UsageMeter:
    if uses_lifetime_cap(tier, kind):
        cap = lifetime_limit_for(tier, kind) or 0
        return UsageMeter(
            usage_kind=kind.value,
            used=used,
            limit=cap,
            remaining=max(0, cap - used),
            period="lifetime",
            reached=used >= cap,
        )

    limit = limit_for(tier, kind)
    remaining = remaining_usage(tier, kind, used)
    return UsageMeter(
        usage_kind=kind.value,
        used=used,
        limit=_limit_value(limit),
        remaining=remaining if isinstance(remaining, int) else "unlimited",
        period="month",
        reached=isinstance(limit, Finite) and used >= limit.value,
    )


def usage_summary(ledger: UsageLedger, user: User, now: Optional[datetime] = None) -> UsageSummary:
    """Usage meters for every kind plus the upgrade path for the user's tier."""
    tier = effective_tier(user)
    degraded = False
    counts: Dict[UsageKind, int] = {kind: 0 for kind in UsageKind}
    total_cost = 0

    try:
        breakdown = ledger.breakdown(user.id, now=now)
        counts[UsageKind.AUDIO_ANALYSIS] = breakdown.audio_analysis
        counts[UsageKind.MIDI_GENERATION] = breakdown.midi_generation
        counts[UsageKind.STEM_SEPARATION] = breakdown.stem_separation
        total_cost = breakdown.total_cost
        if uses_lifetime_cap(tier, UsageKind.AUDIO_ANALYSIS):
            counts[UsageKind.AUDIO_ANALYSIS] = ledger.count_usage(
                user.id, UsageKind.AUDIO_ANALYSIS, lifetime=True, now=now
            )
    except StoreUnavailableError:
        logger.warning("usage.summary_degraded", extra={"user_id": user.id})
        counts = {kind: 0 for kind in UsageKind}
        total_cost = 0
        degraded = True

    meters = [_meter(tier, kind, counts[kind]) for kind in UsageKind]
    audio_meter = meters[0]
    return UsageSummary(
        tier=tier.value,
        subscription_status=user.subscription_status,
        meters=meters,
        total_cost_cents=total_cost,
        upgrade_message=upgrade_message(tier, UsageKind.AUDIO_ANALYSIS) if audio_meter.reached else None,
        upgrade_options=upgrade_options(tier),
        degraded=degraded,
    )
