import hashlib
import hmac
import json
import time

from backend.core.errors import LLMUnavailableError
from backend.features.billing.provider import BillingProviderError


class FakeMessage:
    def __init__(self, content):
        self.content = content

class FakeChoice:
    def __init__(self, content):
        self.message = FakeMessage(content)

class FakeCompletion:
    def __init__(self, content):
        self.choices = [FakeChoice(content)] if content is not None else []

class FakeCompletions:
    def __init__(self, content="Cut 200Hz on the pad.", error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, *args, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return FakeCompletion(self.content)

class FakeChat:
    def __init__(self, completions):
        self.completions = completions

class FakeGroq:
    def __init__(self, content="Cut 200Hz on the pad.", error=None):
        self.chat = FakeChat(FakeCompletions(content, error))


class FakeLLM:
    """LLMClient double: records every request and returns a canned reply."""

    def __init__(self, reply="Try a high-pass at 30Hz on the bass bus."):
        self.reply = reply
        self.fail = False
        self.calls = []

    def complete(self, messages):
        self.calls.append(messages)
        if self.fail:
            raise LLMUnavailableError("The assistant is unavailable. Please try again.")
        return self.reply

    @property
    def last_messages(self):
        return self.calls[-1] if self.calls else None


class FakeBillingProvider:
    """BillingProvider double for checkout; webhooks go through the real StripeProvider."""

    def __init__(self, url="https://checkout.stripe.test/session/cs_test_123"):
        self.url = url
        self.fail = False
        self.checkout_calls = []

    def create_checkout_session(self, price_id, success_url, cancel_url, metadata=None, customer_id=None, customer_email=None):
        if self.fail:
            raise BillingProviderError("Stripe checkout session creation failed: boom")
        self.checkout_calls.append(
            {
                "price_id": price_id,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata or {},
                "customer_id": customer_id,
                "customer_email": customer_email,
            }
        )
        return self.url

    def handle_webhook(self, headers, body):
        raise NotImplementedError


WEBHOOK_SECRET = "whsec_test_secret"


def sign_stripe_payload(payload, secret=WEBHOOK_SECRET, timestamp=None):
    """Build a Stripe-Signature header: t=<ts>,v1=HMAC_SHA256(secret, "<ts>.<payload>")."""
    ts = int(timestamp if timestamp is not None else time.time())
    signature = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def stripe_event(event_id, event_type, obj):
    return json.dumps({"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}})
