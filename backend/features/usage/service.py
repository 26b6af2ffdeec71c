"""
backend/features/usage/service.py

Usage ledger service.

Handles:
- Appending usage records (one row per billable event)
- Monthly and lifetime usage counts
- Current-month breakdown and cost

Month keys are computed from the wall clock in UTC at call time.
"""

from datetime import datetime, timezone
import logging
from typing import Optional
from sqlalchemy import select, insert, func
from sqlalchemy.orm import Session

from backend.core.database import Database, usage_tracking
from backend.core.logging import LOGGER_NAME
from backend.features.pricing.catalog import UsageKind
from backend.models.usage_record import UsageRecord, UsageBreakdown


logger = logging.getLogger(LOGGER_NAME)


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def current_month_key(now: Optional[datetime] = None) -> str:
    """Zero-padded "YYYY-MM" key for the current UTC month."""
    normalized = _normalize_now(now)
    return f"{normalized.year:04d}-{normalized.month:02d}"


class UsageLedger:
    """Append-only usage records keyed by (user, kind, month)."""

    def __init__(self, db: Database):
        self.db = db

    def count_usage(
        self,
        user_id: int,
        kind: UsageKind,
        lifetime: bool = False,
        now: Optional[datetime] = None,
        session: Optional[Session] = None,
    ) -> int:
        """
        Count records for a usage kind.

        Args:
            user_id: User to query
            kind: Usage kind
            lifetime: Count every month when True, only the current month otherwise
            now: Fixed timestamp for deterministic queries

        Raises:
            StoreUnavailableError when the store is unreachable.
        """
        query = (
            select(func.count())
            .select_from(usage_tracking)
            .where(usage_tracking.c.user_id == user_id)
            .where(usage_tracking.c.usage_type == UsageKind(kind).value)
        )
        if not lifetime:
            query = query.where(usage_tracking.c.month == current_month_key(now))

        with self.db.session(session) as s:
            return int(s.execute(query).scalar() or 0)

    def monthly_cost(self, user_id: int, now: Optional[datetime] = None) -> int:
        """Sum of cost (cents) over the current month's records."""
        query = (
            select(func.coalesce(func.sum(usage_tracking.c.cost), 0))
            .where(usage_tracking.c.user_id == user_id)
            .where(usage_tracking.c.month == current_month_key(now))
        )
        with self.db.session() as s:
            return int(s.execute(query).scalar() or 0)

    def breakdown(self, user_id: int, now: Optional[datetime] = None) -> UsageBreakdown:
        """Per-kind counts and total cost for the current month."""
        month = current_month_key(now)
        query = (
            select(
                usage_tracking.c.usage_type,
                func.count().label("count"),
                func.coalesce(func.sum(usage_tracking.c.cost), 0).label("cost"),
            )
            .where(usage_tracking.c.user_id == user_id)
            .where(usage_tracking.c.month == month)
            .group_by(usage_tracking.c.usage_type)
        )
        with self.db.session() as s:
            rows = s.execute(query).all()

        counts = {row.usage_type: int(row.count) for row in rows}
        total_cost = sum(int(row.cost) for row in rows)
        return UsageBreakdown(
            audio_analysis=counts.get(UsageKind.AUDIO_ANALYSIS.value, 0),
            midi_generation=counts.get(UsageKind.MIDI_GENERATION.value, 0),
            stem_separation=counts.get(UsageKind.STEM_SEPARATION.value, 0),
            total_cost=total_cost,
        )

    def record_usage(
        self,
        user_id: int,
        kind: UsageKind,
        cost: int = 0,
        now: Optional[datetime] = None,
        session: Optional[Session] = None,
    ) -> UsageRecord:
        """
        Append one usage record.

        Pass `session` to write inside a caller-owned transaction. A failure
        propagates to the caller; usage is never tracked best-effort.
        """
        if cost < 0:
            raise ValueError("cost must be non-negative")

        occurred_at = _normalize_now(now)
        record = UsageRecord(
            user_id=user_id,
            usage_kind=UsageKind(kind).value,
            month=current_month_key(occurred_at),
            cost=cost,
            created_at=occurred_at,
        )
        with self.db.session(session) as s:
            s.execute(
                insert(usage_tracking).values(
                    user_id=record.user_id,
                    usage_type=record.usage_kind,
                    month=record.month,
                    cost=record.cost,
                    created_at=record.created_at,
                )
            )

        logger.info(
            "usage.recorded",
            extra={"user_id": user_id, "usage_type": record.usage_kind, "month": record.month, "cost": cost},
        )
        return record
