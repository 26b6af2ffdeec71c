"""
Tests for the tier cards and usage meters.
"""
from datetime import datetime, timezone

from backend.core.errors import StoreUnavailableError
from backend.features.entitlements.view import tier_cards, upgrade_options, usage_summary
from backend.features.pricing.catalog import Tier, UsageKind
from backend.features.usage.service import UsageLedger


NOW = datetime(2024, 3, 15, tzinfo=timezone.utc)


def test_tier_cards_for_free_viewer():
    cards = {c.id: c for c in tier_cards(Tier.FREE)}
    assert cards["free"].is_current
    assert cards["pro"].is_upgrade and cards["pro_plus"].is_upgrade
    assert cards["pro"].audio_analyses == 10
    assert cards["pro"].audio_analyses_period == "month"
    assert cards["pro"].limits == {"audioAnalysis": 10, "midiGeneration": 50, "stemSeparation": 5}


def test_top_tier_has_no_upgrade_options():
    assert upgrade_options(Tier.PRO_PLUS) == []
    assert [c.id for c in upgrade_options(Tier.PRO)] == ["pro_plus"]


def test_free_user_meter_uses_lifetime_count(db, make_user):
    user = make_user("free-user")
    ledger = UsageLedger(db)
    ledger.record_usage(user.id, UsageKind.AUDIO_ANALYSIS, cost=10, now=datetime(2023, 6, 1, tzinfo=timezone.utc))

    summary = usage_summary(ledger, user, now=NOW)
    audio = summary.meters[0]
    assert audio.period == "lifetime"
    assert audio.used == 1
    assert audio.remaining == 0
    assert audio.reached
    assert summary.upgrade_message.startswith("Free tier limit reached.")
    # Cost only counts the current month
    assert summary.total_cost_cents == 0


def test_pro_plus_meters(db, make_user):
    user = make_user("plus-user", subscription_tier="pro_plus")
    ledger = UsageLedger(db)
    for _ in range(3):
        ledger.record_usage(user.id, UsageKind.MIDI_GENERATION, now=NOW)
    ledger.record_usage(user.id, UsageKind.AUDIO_ANALYSIS, cost=10, now=NOW)

    summary = usage_summary(ledger, user, now=NOW)
    meters = {m.usage_kind: m for m in summary.meters}
    assert meters["midiGeneration"].used == 3
    assert meters["midiGeneration"].limit == "unlimited"
    assert meters["midiGeneration"].remaining == "unlimited"
    assert not meters["midiGeneration"].reached
    assert meters["audioAnalysis"].remaining == 29
    assert summary.total_cost_cents == 10
    assert summary.upgrade_message is None
    assert summary.upgrade_options == []


def test_canceled_subscription_shows_free_tier(db, make_user):
    user = make_user("lapsed", subscription_tier="pro", subscription_status="canceled")
    summary = usage_summary(UsageLedger(db), user, now=NOW)
    assert summary.tier == "free"
    assert summary.subscription_status == "canceled"


def test_summary_degrades_when_store_down(make_user):
    user = make_user("degraded")

    class DownLedger:
        def breakdown(self, *args, **kwargs):
            raise StoreUnavailableError("Database unavailable")

        def count_usage(self, *args, **kwargs):
            raise StoreUnavailableError("Database unavailable")

    summary = usage_summary(DownLedger(), user)
    assert summary.degraded
    assert all(m.used == 0 for m in summary.meters)
    assert summary.total_cost_cents == 0
