"""
backend/features/entitlements/service.py

Entitlement check + enforcement service.

Handles:
- Pure limit math over the pricing catalog (never raises)
- Effective tier from subscription status
- Server-side enforcement against the usage ledger
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union
import logging

from sqlalchemy.orm import Session

from backend.core.errors import LimitReachedError
from backend.core.logging import LOGGER_NAME
from backend.features.pricing.catalog import (
    Finite,
    Limit,
    Tier,
    Unlimited,
    UNLIMITED,
    UsageKind,
    limit_for,
    lifetime_limit_for,
    parse_tier,
    tier_config,
)
from backend.features.usage.service import UsageLedger
from backend.models.user import User


logger = logging.getLogger(LOGGER_NAME)

# Subscription statuses that no longer grant the paid tier
INACTIVE_SUBSCRIPTION_STATUSES = frozenset({"canceled", "unpaid", "past_due", "incomplete_expired"})


def has_reached_limit(tier: Tier, kind: UsageKind, current_usage: int, lifetime: bool = False) -> bool:
    """
    True when `current_usage` has used up the tier's allowance.

    The free tier's audio analysis is measured against its lifetime cap when
    `lifetime` is set; a missing cap counts as 0 so misconfiguration fails closed.
    """
    tier = Tier(tier)
    kind = UsageKind(kind)
    if tier == Tier.FREE and kind == UsageKind.AUDIO_ANALYSIS and lifetime:
        return current_usage >= (lifetime_limit_for(tier, kind) or 0)

    limit = limit_for(tier, kind)
    if isinstance(limit, Unlimited):
        return False
    return current_usage >= limit.value


def remaining_usage(tier: Tier, kind: UsageKind, current_usage: int) -> Union[int, Unlimited]:
    """Monthly allowance left, clamped at zero, or UNLIMITED."""
    limit = limit_for(tier, kind)
    if isinstance(limit, Unlimited):
        return UNLIMITED
    return max(0, limit.value - max(0, current_usage))


def upgrade_message(tier: Tier, kind: UsageKind) -> str:
    """Upgrade prompt copy; the top tier has no upgrade path and gets the reset notice."""
    tier = Tier(tier)
    pro = tier_config(Tier.PRO)
    pro_plus = tier_config(Tier.PRO_PLUS)

    if tier == Tier.FREE:
        lifetime_cap = lifetime_limit_for(Tier.FREE, UsageKind.AUDIO_ANALYSIS)
        return (
            f"Free tier limit reached. You've used your {lifetime_cap} lifetime analysis. "
            f"Upgrade to Pro for ${pro.monthly_price}/month to get "
            f"{_limit_text(pro.limits[UsageKind.AUDIO_ANALYSIS])} analyses per month."
        )

    if tier == Tier.PRO:
        return (
            f"Pro tier limit reached. You've used all "
            f"{_limit_text(pro.limits[UsageKind.AUDIO_ANALYSIS])} analyses this month. "
            f"Upgrade to Pro Plus for ${pro_plus.monthly_price}/month to get "
            f"{_limit_text(pro_plus.limits[UsageKind.AUDIO_ANALYSIS])} analyses per month."
        )

    return "You've reached your monthly limit. Your limit will reset at the start of your next billing cycle."


def _limit_text(limit: Limit) -> str:
    return str(limit.value) if isinstance(limit, Finite) else "unlimited"


def effective_tier(user: User) -> Tier:
    """Stored tier, downgraded to free once the subscription stops being in good standing."""
    tier = parse_tier(user.subscription_tier)
    if tier != Tier.FREE and (user.subscription_status or "").lower() in INACTIVE_SUBSCRIPTION_STATUSES:
        return Tier.FREE
    return tier


def uses_lifetime_cap(tier: Tier, kind: UsageKind) -> bool:
    return Tier(tier) == Tier.FREE and UsageKind(kind) == UsageKind.AUDIO_ANALYSIS


@dataclass(frozen=True)
class EntitlementDecision:
    tier: Tier
    kind: UsageKind
    lifetime: bool
    current_usage: int
    limit: Limit
    remaining: Union[int, Unlimited]
    allowed: bool


class EntitlementService:
    """Combines the catalog with the usage ledger for a concrete user."""

    def __init__(self, ledger: UsageLedger):
        self.ledger = ledger

    def check_usage(
        self,
        user: User,
        kind: UsageKind,
        *,
        now: Optional[datetime] = None,
        session: Optional[Session] = None,
    ) -> EntitlementDecision:
        """
        Decide whether `user` may perform one more `kind` action now.

        Ledger errors propagate; the gate never fails open.
        """
        tier = effective_tier(user)
        kind = UsageKind(kind)
        lifetime = uses_lifetime_cap(tier, kind)
        current = self.ledger.count_usage(user.id, kind, lifetime=lifetime, now=now, session=session)

        if lifetime:
            limit: Limit = Finite(lifetime_limit_for(tier, kind) or 0)
            remaining: Union[int, Unlimited] = max(0, limit.value - current)
        else:
            limit = limit_for(tier, kind)
            remaining = remaining_usage(tier, kind, current)

        return EntitlementDecision(
            tier=tier,
            kind=kind,
            lifetime=lifetime,
            current_usage=current,
            limit=limit,
            remaining=remaining,
            allowed=not has_reached_limit(tier, kind, current, lifetime),
        )

    def enforce_usage(
        self,
        user: User,
        kind: UsageKind,
        *,
        now: Optional[datetime] = None,
        session: Optional[Session] = None,
    ) -> EntitlementDecision:
        """Raise LimitReachedError when the allowance is used up."""
        decision = self.check_usage(user, kind, now=now, session=session)
        if decision.allowed:
            return decision

        message = upgrade_message(decision.tier, decision.kind)
        logger.warning(
            "entitlements.limit_reached",
            extra={
                "user_id": user.id,
                "tier": decision.tier.value,
                "usage_type": decision.kind.value,
                "current_usage": decision.current_usage,
                "lifetime": decision.lifetime,
            },
        )
        raise LimitReachedError(
            message,
            tier=decision.tier.value,
            usage_kind=decision.kind.value,
            upgrade_message=message,
        )
