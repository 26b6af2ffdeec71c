"""
Tests for the usage ledger.
"""
import pytest
from datetime import datetime, timezone, timedelta

from sqlalchemy import select

from backend.core.database import usage_tracking
from backend.features.pricing.catalog import UsageKind
from backend.features.usage.service import UsageLedger, current_month_key


NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def test_month_key_is_zero_padded():
    assert current_month_key(datetime(2024, 3, 1, tzinfo=timezone.utc)) == "2024-03"
    assert current_month_key(datetime(2024, 11, 30, tzinfo=timezone.utc)) == "2024-11"


def test_month_key_uses_utc():
    # 23:30 on Mar 31 at UTC-5 is already April in UTC
    eastern = timezone(timedelta(hours=-5))
    assert current_month_key(datetime(2024, 3, 31, 23, 30, tzinfo=eastern)) == "2024-04"


def test_count_usage_monthly_vs_lifetime(db, make_user):
    user = make_user("ledger-user")
    ledger = UsageLedger(db)
    ledger.record_usage(user.id, UsageKind.AUDIO_ANALYSIS, cost=10, now=datetime(2024, 1, 5, tzinfo=timezone.utc))
    ledger.record_usage(user.id, UsageKind.AUDIO_ANALYSIS, cost=10, now=NOW)
    ledger.record_usage(user.id, UsageKind.AUDIO_ANALYSIS, cost=10, now=NOW)
    ledger.record_usage(user.id, UsageKind.MIDI_GENERATION, cost=0, now=NOW)

    assert ledger.count_usage(user.id, UsageKind.AUDIO_ANALYSIS, lifetime=False, now=NOW) == 2
    assert ledger.count_usage(user.id, UsageKind.AUDIO_ANALYSIS, lifetime=True, now=NOW) == 3
    assert ledger.count_usage(user.id, UsageKind.STEM_SEPARATION, lifetime=True, now=NOW) == 0


def test_counts_are_per_user(db, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    ledger = UsageLedger(db)
    ledger.record_usage(alice.id, UsageKind.AUDIO_ANALYSIS, now=NOW)

    assert ledger.count_usage(bob.id, UsageKind.AUDIO_ANALYSIS, lifetime=True, now=NOW) == 0


def test_monthly_cost_and_breakdown(db, make_user):
    user = make_user("cost-user")
    ledger = UsageLedger(db)
    ledger.record_usage(user.id, UsageKind.AUDIO_ANALYSIS, cost=10, now=NOW)
    ledger.record_usage(user.id, UsageKind.AUDIO_ANALYSIS, cost=10, now=NOW)
    ledger.record_usage(user.id, UsageKind.STEM_SEPARATION, cost=25, now=NOW)
    ledger.record_usage(user.id, UsageKind.AUDIO_ANALYSIS, cost=99, now=datetime(2024, 2, 1, tzinfo=timezone.utc))

    assert ledger.monthly_cost(user.id, now=NOW) == 45

    breakdown = ledger.breakdown(user.id, now=NOW)
    assert breakdown.audio_analysis == 2
    assert breakdown.midi_generation == 0
    assert breakdown.stem_separation == 1
    assert breakdown.total_cost == 45


def test_record_usage_appends_row(db, make_user):
    user = make_user("append-user")
    record = UsageLedger(db).record_usage(user.id, UsageKind.STEM_SEPARATION, cost=7, now=NOW)
    assert record.month == "2024-03"

    with db.session() as session:
        rows = session.execute(select(usage_tracking)).all()
    assert len(rows) == 1
    assert rows[0].usage_type == "stemSeparation"
    assert rows[0].month == "2024-03"
    assert rows[0].cost == 7


def test_record_usage_rejects_negative_cost(db, make_user):
    user = make_user("neg-user")
    with pytest.raises(ValueError):
        UsageLedger(db).record_usage(user.id, UsageKind.AUDIO_ANALYSIS, cost=-1)


def test_record_usage_inside_rolled_back_transaction_is_discarded(db, make_user):
    user = make_user("rollback-user")
    ledger = UsageLedger(db)

    with pytest.raises(RuntimeError):
        with db.session() as session:
            ledger.record_usage(user.id, UsageKind.AUDIO_ANALYSIS, session=session, now=NOW)
            raise RuntimeError("reply write failed")

    assert ledger.count_usage(user.id, UsageKind.AUDIO_ANALYSIS, lifetime=True, now=NOW) == 0
