"""
Stripe billing provider implementation.

Implements BillingProvider protocol using Stripe API.
Handles webhook signature verification and event parsing.
"""
import json
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import stripe

from backend.core.config import settings
from backend.features.billing.provider import (
    BillingProviderError,
    BillingWebhookError,
    BillingWebhookResult,
    CHECKOUT_COMPLETED,
)


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
    ):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key (defaults to settings.STRIPE_SECRET_KEY)
            webhook_secret: Stripe webhook secret (defaults to settings.STRIPE_WEBHOOK_SECRET)
            tolerance: Max age in seconds of a signed webhook timestamp
        """
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET
        self.tolerance = tolerance

        if not self.secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")

        stripe.api_key = self.secret_key

    def create_checkout_session(
        self,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> str:
        """Create Stripe subscription checkout session."""
        params: Dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "mode": "subscription",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata or {},
        }
        if customer_id:
            params["customer"] = customer_id
        elif customer_email:
            params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(**params)
            return session.url
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session creation failed: {e}")

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        """Verify Stripe webhook signature and parse event."""
        if not self.webhook_secret:
            raise BillingWebhookError("STRIPE_WEBHOOK_SECRET not configured")

        sig_header = headers.get("stripe-signature") or headers.get("Stripe-Signature")
        if not sig_header:
            raise BillingWebhookError("Missing stripe-signature header")

        try:
            payload = body.decode("utf-8") if isinstance(body, bytes) else body
            stripe.WebhookSignature.verify_header(payload, sig_header, self.webhook_secret, self.tolerance)
            event = json.loads(payload)
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}")
        except stripe.SignatureVerificationError as e:
            raise BillingWebhookError(f"Invalid signature: {e}")

        if not isinstance(event, dict) or "id" not in event or "type" not in event:
            raise BillingWebhookError("Invalid payload: missing event id or type")

        return parse_event(event)


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _first_item(data: Dict[str, Any]) -> Dict[str, Any]:
    items = (data.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _period_end(data: Dict[str, Any]) -> Optional[datetime]:
    ts = data.get("current_period_end")
    if ts is None:
        # Newer API versions carry the period on the subscription items
        ts = _first_item(data).get("current_period_end")
    if ts is None:
        return None
    return datetime.fromtimestamp(int(ts), timezone.utc)


def parse_event(event: Dict[str, Any]) -> BillingWebhookResult:
    """Parse a Stripe event dict into a normalized BillingWebhookResult."""
    event_type = event["type"]
    data = (event.get("data") or {}).get("object") or {}
    result = BillingWebhookResult(
        event_id=event["id"],
        event_type=event_type,
        customer_id=data.get("customer"),
    )

    if event_type == CHECKOUT_COMPLETED:
        metadata = data.get("metadata") or {}
        result.user_id = _to_int(metadata.get("userId"))
        result.tier = metadata.get("tier")
        result.subscription_id = data.get("subscription")
    elif event_type.startswith("customer.subscription."):
        result.subscription_id = data.get("id")
        result.status = data.get("status")
        result.current_period_end = _period_end(data)
        result.price_ref = (_first_item(data).get("price") or {}).get("id")

    return result
