"""
Billing API routes.

Minimal surface:
- POST /api/billing/checkout: Create checkout session for a paid tier
- GET  /api/billing/tiers: Tier cards (public)
- GET  /api/billing/usage: Usage meters for the current user
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from backend.api.deps import AppServices, get_current_user, get_optional_user, get_services
from backend.features.billing.provider import BillingProviderError
from backend.features.entitlements.service import effective_tier
from backend.features.entitlements.view import TierCard, UsageSummary, tier_cards, usage_summary
from backend.models.user import User


router = APIRouter(prefix="/billing", tags=["billing"])


class CheckoutRequest(BaseModel):
    """Request to create checkout session."""
    tier: str


class CheckoutResponse(BaseModel):
    """Response with checkout URL."""
    session_url: str


@router.post("/checkout", response_model=CheckoutResponse)
def create_checkout(
    body: CheckoutRequest,
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    """
    Create Stripe checkout session.

    Returns:
        {"session_url": "https://checkout.stripe.com/..."}

    Errors:
        503: Billing disabled (STRIPE_SECRET_KEY not set)
        400: Invalid or unpaid tier
        502: Stripe API error
    """
    try:
        return services.billing.create_checkout_session(user, body.tier)
    except BillingProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/tiers", response_model=List[TierCard])
def get_tiers(user: Optional[User] = Depends(get_optional_user)):
    """Tier cards in display order; flagged against the caller's tier when signed in."""
    return tier_cards(effective_tier(user) if user else None)


@router.get("/usage", response_model=UsageSummary)
def get_usage(
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    """Usage meters; degrades to zeros when the store is unavailable."""
    return usage_summary(services.ledger, user)
