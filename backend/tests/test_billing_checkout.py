"""
Tests for checkout session creation and the pricing/usage endpoints.
"""
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from backend.features.billing.stripe_provider import StripeProvider
from backend.features.pricing.catalog import Tier, tier_config
from backend.main import create_app


ALICE = {"X-User-Id": "alice"}


def test_checkout_creates_session_for_paid_tier(client, fake_billing, make_user):
    alice = make_user("alice", email="alice@example.com")

    resp = client.post("/api/billing/checkout", headers=ALICE, json={"tier": "pro"})
    assert resp.status_code == 200
    assert resp.json() == {"session_url": fake_billing.url}

    call = fake_billing.checkout_calls[-1]
    assert call["price_id"] == tier_config(Tier.PRO).external_price_ref
    assert call["metadata"] == {"userId": str(alice.id), "tier": "pro"}
    assert call["success_url"].endswith("/?checkout=success")
    assert call["cancel_url"].endswith("/?checkout=canceled")
    assert call["customer_email"] == "alice@example.com"


def test_checkout_reuses_existing_customer(client, fake_billing, make_user):
    make_user("alice", stripe_customer_id="cus_existing")
    client.post("/api/billing/checkout", headers=ALICE, json={"tier": "pro_plus"})
    assert fake_billing.checkout_calls[-1]["customer_id"] == "cus_existing"


@pytest.mark.parametrize("tier", ["free", "enterprise", ""])
def test_checkout_rejects_unpaid_or_unknown_tier(client, fake_billing, tier):
    resp = client.post("/api/billing/checkout", headers=ALICE, json={"tier": tier})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"
    assert fake_billing.checkout_calls == []


def test_checkout_provider_failure_is_bad_gateway(client, fake_billing):
    fake_billing.fail = True
    resp = client.post("/api/billing/checkout", headers=ALICE, json={"tier": "pro"})
    assert resp.status_code == 502


def test_checkout_requires_auth(client):
    assert client.post("/api/billing/checkout", json={"tier": "pro"}).status_code == 401


def test_checkout_disabled_without_provider(db, fake_llm, storage):
    app = create_app(database=db, llm=fake_llm, billing_provider=None, storage=storage)
    with TestClient(app) as c:
        resp = c.post("/api/billing/checkout", headers=ALICE, json={"tier": "pro"})
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "billing_disabled"


def test_stripe_provider_builds_subscription_session():
    provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_x")
    fake_session = type("Session", (), {"url": "https://checkout.stripe.com/c/pay/cs_1"})()

    with patch("stripe.checkout.Session.create", return_value=fake_session) as create:
        url = provider.create_checkout_session(
            price_id="price_pro_monthly",
            success_url="http://app/?checkout=success",
            cancel_url="http://app/?checkout=canceled",
            metadata={"userId": "3", "tier": "pro"},
            customer_email="a@example.com",
        )

    assert url == "https://checkout.stripe.com/c/pay/cs_1"
    kwargs = create.call_args.kwargs
    assert kwargs["mode"] == "subscription"
    assert kwargs["line_items"] == [{"price": "price_pro_monthly", "quantity": 1}]
    assert kwargs["customer_email"] == "a@example.com"
    assert "customer" not in kwargs


def test_tiers_are_public_and_flag_current(client, make_user):
    anonymous = client.get("/api/billing/tiers")
    assert anonymous.status_code == 200
    cards = anonymous.json()
    assert [c["id"] for c in cards] == ["free", "pro", "pro_plus"]
    assert not any(c["is_current"] for c in cards)
    assert cards[0]["audio_analyses"] == 1
    assert cards[0]["audio_analyses_period"] == "lifetime"
    assert cards[2]["limits"]["midiGeneration"] == "unlimited"

    make_user("alice", subscription_tier="pro")
    cards = client.get("/api/billing/tiers", headers=ALICE).json()
    flags = {c["id"]: (c["is_current"], c["is_upgrade"]) for c in cards}
    assert flags == {"free": (False, False), "pro": (True, False), "pro_plus": (False, True)}


def test_usage_endpoint_reports_meters(client, make_user):
    make_user("alice")
    resp = client.get("/api/billing/usage", headers=ALICE)
    assert resp.status_code == 200
    body = resp.json()
    assert body["tier"] == "free"
    audio = body["meters"][0]
    assert audio["usage_kind"] == "audioAnalysis"
    assert audio["period"] == "lifetime"
    assert audio["limit"] == 1
    assert audio["remaining"] == 1
    assert body["upgrade_message"] is None
    assert [o["id"] for o in body["upgrade_options"]] == ["pro", "pro_plus"]
