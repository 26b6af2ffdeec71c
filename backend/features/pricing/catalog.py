"""
backend/features/pricing/catalog.py

Pricing catalog: static tier definitions and pure lookups.

Change tiers, limits and prices here; usage tracking, checkout and the
tier cards all read from this table.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from backend.core.config import settings


class Tier(str, Enum):
    FREE = "free"
    PRO = "pro"
    PRO_PLUS = "pro_plus"


class UsageKind(str, Enum):
    AUDIO_ANALYSIS = "audioAnalysis"
    MIDI_GENERATION = "midiGeneration"
    STEM_SEPARATION = "stemSeparation"


@dataclass(frozen=True)
class Finite:
    value: int

    def __post_init__(self):
        if self.value < 0:
            raise ValueError("limit must be non-negative")

    @property
    def is_unlimited(self) -> bool:
        return False


@dataclass(frozen=True)
class Unlimited:
    @property
    def is_unlimited(self) -> bool:
        return True

    def __str__(self) -> str:
        return "unlimited"


UNLIMITED = Unlimited()

Limit = Union[Finite, Unlimited]


@dataclass(frozen=True)
class TierConfig:
    id: Tier
    display_name: str
    monthly_price: int  # dollars
    external_price_ref: Optional[str]  # None for the free tier
    limits: Dict[UsageKind, Limit] = field(default_factory=dict)
    lifetime_limits: Dict[UsageKind, int] = field(default_factory=dict)
    features: Tuple[str, ...] = ()

    @property
    def is_paid(self) -> bool:
        return self.monthly_price > 0


def _build_catalog() -> Dict[Tier, TierConfig]:
    return {
        Tier.FREE: TierConfig(
            id=Tier.FREE,
            display_name="Free",
            monthly_price=0,
            external_price_ref=None,
            limits={UsageKind.AUDIO_ANALYSIS: Finite(0)},
            lifetime_limits={UsageKind.AUDIO_ANALYSIS: 1},
            features=(
                "1 audio analysis (lifetime)",
                "Unlimited chat (no audio)",
                "30-day history",
                "1 project",
            ),
        ),
        Tier.PRO: TierConfig(
            id=Tier.PRO,
            display_name="Pro",
            monthly_price=19,
            external_price_ref=settings.STRIPE_PRO_PRICE_ID,
            limits={
                UsageKind.AUDIO_ANALYSIS: Finite(10),
                UsageKind.MIDI_GENERATION: Finite(50),
                UsageKind.STEM_SEPARATION: Finite(5),
            },
            features=(
                "10 audio analyses per month",
                "50 MIDI generations per month",
                "5 stem separations per month",
                "Unlimited chat & history",
                "10 projects",
                "PDF export",
                "Priority support",
            ),
        ),
        Tier.PRO_PLUS: TierConfig(
            id=Tier.PRO_PLUS,
            display_name="Pro Plus",
            monthly_price=39,
            external_price_ref=settings.STRIPE_PRO_PLUS_PRICE_ID,
            limits={
                UsageKind.AUDIO_ANALYSIS: Finite(30),
                UsageKind.MIDI_GENERATION: UNLIMITED,
                UsageKind.STEM_SEPARATION: Finite(30),
            },
            features=(
                "30 audio analyses per month",
                "Unlimited MIDI generations",
                "30 stem separations per month",
                "Unlimited projects",
                "5 collaborators per project",
                "100GB storage",
                "API access",
                "Priority chat support",
            ),
        ),
    }


PRICING_CATALOG: Dict[Tier, TierConfig] = _build_catalog()

# Display and upgrade order
TIER_ORDER: Tuple[Tier, ...] = (Tier.FREE, Tier.PRO, Tier.PRO_PLUS)


def tier_config(tier: Tier) -> TierConfig:
    return PRICING_CATALOG[Tier(tier)]


def limit_for(tier: Tier, kind: UsageKind) -> Limit:
    """Monthly limit for a usage kind; Finite(0) for kinds the tier does not grant."""
    return tier_config(tier).limits.get(UsageKind(kind), Finite(0))


def lifetime_limit_for(tier: Tier, kind: UsageKind) -> Optional[int]:
    return tier_config(tier).lifetime_limits.get(UsageKind(kind))


def simplified_limit(tier: Tier) -> int:
    """
    Audio-analysis figure shown on the upgrade prompt.

    The free tier is measured against its lifetime cap, paid tiers against
    their monthly cap.
    """
    if Tier(tier) == Tier.FREE:
        return lifetime_limit_for(tier, UsageKind.AUDIO_ANALYSIS) or 1
    limit = limit_for(tier, UsageKind.AUDIO_ANALYSIS)
    # No paid tier has unlimited analyses; guard anyway so the function stays total
    return limit.value if isinstance(limit, Finite) else -1


def all_tiers() -> List[TierConfig]:
    return [PRICING_CATALOG[t] for t in TIER_ORDER]


def tier_for_price_ref(price_ref: Optional[str]) -> Optional[Tier]:
    if not price_ref:
        return None
    for config in PRICING_CATALOG.values():
        if config.external_price_ref == price_ref:
            return config.id
    return None


def next_tiers(tier: Tier) -> List[Tier]:
    """Tiers above `tier`, in upgrade order."""
    idx = TIER_ORDER.index(Tier(tier))
    return list(TIER_ORDER[idx + 1:])


def parse_tier(value: Optional[str], default: Tier = Tier.FREE) -> Tier:
    """Map a stored tier string to Tier; unknown values fall back to `default`."""
    try:
        return Tier(value)
    except ValueError:
        return default
