"""
Billing service orchestrator.

Coordinates:
- Checkout session creation for paid tiers
- Webhook processing (idempotent via billing_events)
- Subscription state writes onto users

All Stripe-specific code is in stripe_provider.py.
"""
import hashlib
import logging
from typing import Optional, Dict
from datetime import datetime, timezone
from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core.config import settings
from backend.core.database import Database, billing_events, users
from backend.core.errors import BillingDisabledError, ValidationError
from backend.core.logging import LOGGER_NAME
from backend.features.billing.provider import (
    BillingProvider,
    BillingProviderError,
    BillingWebhookError,
    BillingWebhookResult,
    CHECKOUT_COMPLETED,
    SUBSCRIPTION_DELETED,
    SUBSCRIPTION_UPDATED,
)
from backend.features.billing.stripe_provider import StripeProvider
from backend.features.pricing.catalog import Tier, tier_config, tier_for_price_ref
from backend.models.user import User


logger = logging.getLogger(LOGGER_NAME)

PAID_TIERS = (Tier.PRO, Tier.PRO_PLUS)


def billing_enabled(settings_obj=None) -> bool:
    """Check if billing is enabled (Stripe configured)."""
    cfg = settings_obj or settings
    return bool(getattr(cfg, "STRIPE_SECRET_KEY", None))


def get_provider(settings_obj=None) -> Optional[BillingProvider]:
    """Get billing provider if billing is enabled."""
    cfg = settings_obj or settings
    if not billing_enabled(cfg):
        return None
    try:
        return StripeProvider(
            secret_key=cfg.STRIPE_SECRET_KEY,
            webhook_secret=cfg.STRIPE_WEBHOOK_SECRET,
        )
    except BillingProviderError:
        return None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BillingService:
    def __init__(self, db: Database, provider: Optional[BillingProvider], base_url: Optional[str] = None):
        self.db = db
        self.provider = provider
        self.base_url = (base_url or settings.BASE_URL).rstrip("/")

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    def _require_provider(self) -> BillingProvider:
        if self.provider is None:
            raise BillingDisabledError("Billing is not configured")
        return self.provider

    def create_checkout_session(self, user: User, tier: str) -> Dict[str, str]:
        """
        Start a subscription checkout for a paid tier.

        Returns:
            {"session_url": ...}

        Raises:
            BillingDisabledError: If billing is not configured
            ValidationError: If tier is not a paid tier
            BillingProviderError: If checkout creation fails
        """
        provider = self._require_provider()
        try:
            target = Tier(tier)
        except ValueError:
            raise ValidationError(f"Unknown tier: {tier}")
        if target not in PAID_TIERS:
            raise ValidationError("Only paid tiers can be purchased")

        config = tier_config(target)
        if not config.external_price_ref:
            raise ValidationError(f"No Stripe price configured for tier: {target.value}")

        session_url = provider.create_checkout_session(
            price_id=config.external_price_ref,
            success_url=f"{self.base_url}/?checkout=success",
            cancel_url=f"{self.base_url}/?checkout=canceled",
            metadata={"userId": str(user.id), "tier": target.value},
            customer_id=user.stripe_customer_id,
            customer_email=user.email,
        )
        logger.info("billing.checkout_created", extra={"user_id": user.id, "tier": target.value})
        return {"session_url": session_url}

    def process_webhook_event(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        """
        Process billing webhook event (idempotent).

        1. Verify signature (nothing is written when this fails)
        2. Check idempotency (skip if already processed)
        3. Apply state changes
        4. Mark as processed, or record the error and re-raise

        Raises:
            BillingDisabledError: If billing is not configured
            BillingWebhookError: If signature invalid or parsing fails
        """
        provider = self._require_provider()
        result = provider.handle_webhook(headers, body)
        payload_hash = hashlib.sha256(body).hexdigest()

        with self.db.session() as session:
            existing = session.execute(
                select(billing_events.c.id, billing_events.c.processed).where(
                    billing_events.c.stripe_event_id == result.event_id
                )
            ).first()

        if existing and existing.processed:
            logger.info("billing.webhook_replayed", extra={"event_id": result.event_id, "event_type": result.event_type})
            return result

        if not existing:
            try:
                with self.db.session() as session:
                    session.execute(
                        insert(billing_events).values(
                            stripe_event_id=result.event_id,
                            event_type=result.event_type,
                            payload_hash=payload_hash,
                            processed=False,
                            received_at=_utc_now(),
                        )
                    )
            except IntegrityError:
                # Race condition: another worker already recorded this event
                logger.info("billing.webhook_race", extra={"event_id": result.event_id})
                return result

        try:
            with self.db.session() as session:
                updated = self._apply_event(session, result)
                session.execute(
                    update(billing_events)
                    .where(billing_events.c.stripe_event_id == result.event_id)
                    .values(processed=True, processed_at=_utc_now(), error=None)
                )
        except Exception as e:
            with self.db.session() as session:
                session.execute(
                    update(billing_events)
                    .where(billing_events.c.stripe_event_id == result.event_id)
                    .values(error=str(e)[:1000])
                )
            logger.error(
                "billing.webhook_failed",
                extra={"event_id": result.event_id, "event_type": result.event_type, "error": str(e)},
            )
            raise

        logger.info(
            "billing.webhook_processed",
            extra={"event_id": result.event_id, "event_type": result.event_type, "users_updated": updated},
        )
        return result

    def _apply_event(self, session: Session, result: BillingWebhookResult) -> int:
        """Apply a verified event. Returns the number of user rows written."""
        if result.event_type == CHECKOUT_COMPLETED:
            return self._apply_checkout_completed(session, result)
        if result.event_type in (SUBSCRIPTION_UPDATED, SUBSCRIPTION_DELETED):
            return self._apply_subscription_change(session, result)
        logger.info("billing.webhook_ignored", extra={"event_type": result.event_type})
        return 0

    def _apply_checkout_completed(self, session: Session, result: BillingWebhookResult) -> int:
        if result.user_id is None:
            raise BillingWebhookError("checkout.session.completed without metadata.userId")
        try:
            tier = Tier(result.tier)
        except ValueError:
            raise BillingWebhookError(f"checkout.session.completed with invalid tier: {result.tier}")
        if tier not in PAID_TIERS:
            raise BillingWebhookError(f"checkout.session.completed with unpaid tier: {tier.value}")

        return session.execute(
            update(users)
            .where(users.c.id == result.user_id)
            .values(
                subscription_tier=tier.value,
                subscription_status="active",
                stripe_customer_id=result.customer_id,
                stripe_subscription_id=result.subscription_id,
                updated_at=_utc_now(),
            )
        ).rowcount

    def _apply_subscription_change(self, session: Session, result: BillingWebhookResult) -> int:
        if not result.customer_id:
            raise BillingWebhookError(f"{result.event_type} without customer")
        status = result.status or ("canceled" if result.event_type == SUBSCRIPTION_DELETED else "active")
        values = {
            "subscription_status": status,
            "subscription_ends_at": result.current_period_end,
            "updated_at": _utc_now(),
        }
        # A plan switch in the billing portal arrives as an update with a new price
        if result.event_type == SUBSCRIPTION_UPDATED:
            new_tier = tier_for_price_ref(result.price_ref)
            if new_tier is not None:
                values["subscription_tier"] = new_tier.value
        return session.execute(
            update(users).where(users.c.stripe_customer_id == result.customer_id).values(**values)
        ).rowcount
