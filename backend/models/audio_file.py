"""
backend/models/audio_file.py

AudioFile model: metadata for an uploaded audio blob.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class AudioFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    conversation_id: Optional[int] = None
    file_name: str
    file_key: str
    url: str
    mime_type: str
    size: int
    is_reference: bool = False
    created_at: datetime

    @staticmethod
    def from_row(row) -> "AudioFile":
        return AudioFile(
            id=row.id,
            user_id=row.user_id,
            conversation_id=row.conversation_id,
            file_name=row.file_name,
            file_key=row.file_key,
            url=row.url,
            mime_type=row.mime_type,
            size=row.size,
            is_reference=bool(row.is_reference),
            created_at=row.created_at,
        )
