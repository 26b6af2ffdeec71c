"""
backend/models/usage_record.py

UsageRecord model for the usage ledger.

Usage kinds:
- audioAnalysis: one AI analysis of an uploaded track
- midiGeneration: one generated MIDI clip
- stemSeparation: one stem-separation job

Records are append-only and keyed by calendar month ("YYYY-MM", UTC).
Cost is stored in integer cents.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class UsageRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    usage_kind: str
    month: str
    cost: int = 0
    created_at: Optional[datetime] = None


class UsageBreakdown(BaseModel):
    """Current-month counts per usage kind plus total cost in cents."""
    model_config = ConfigDict(frozen=True)

    audio_analysis: int = 0
    midi_generation: int = 0
    stem_separation: int = 0
    total_cost: int = 0
