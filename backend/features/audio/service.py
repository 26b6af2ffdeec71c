"""
backend/features/audio/service.py

Audio library: upload validation, blob storage and ownership-scoped records.

Audio bytes are opaque; they are stored and forwarded to the model by URL,
never decoded or inspected.
"""

import base64
import binascii
from datetime import datetime, timezone
import logging
import re
from typing import List, Optional
from uuid import uuid4
from sqlalchemy import select, insert

from backend.core.database import Database, audio_files
from backend.core.errors import NotFoundError, StoreUnavailableError, ValidationError
from backend.core.logging import LOGGER_NAME
from backend.features.audio.storage import AudioStorage
from backend.features.chat.store import ConversationStore
from backend.models.audio_file import AudioFile


logger = logging.getLogger(LOGGER_NAME)

MAX_UPLOAD_BYTES = 50 * 1024 * 1024

ALLOWED_MIME_TYPES = frozenset({
    "audio/mpeg",
    "audio/wav",
    "audio/x-wav",
    "audio/wave",
    "audio/mp3",
    "audio/x-m4a",
    "audio/mp4",
})

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def validate_upload(size: int, mime_type: str) -> None:
    """Reject oversize uploads and MIME types outside the allow-list."""
    if size < 0:
        raise ValidationError("size must be non-negative")
    if size > MAX_UPLOAD_BYTES:
        raise ValidationError("File size exceeds 50MB limit")
    if (mime_type or "").lower() not in ALLOWED_MIME_TYPES:
        raise ValidationError(f"Unsupported audio type: {mime_type}")


def decode_audio(base64_data: str) -> bytes:
    """Decode base64 (optionally a data: URL) into bytes."""
    payload = base64_data or ""
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Invalid base64 audio data") from exc
    if not data:
        raise ValidationError("Audio data is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise ValidationError("File size exceeds 50MB limit")
    return data


def safe_file_name(file_name: str) -> str:
    cleaned = _UNSAFE_NAME_CHARS.sub("_", (file_name or "").strip()).strip("._")
    return cleaned[:200] or "audio"


class AudioLibrary:
    def __init__(self, db: Database, storage: AudioStorage, conversation_store: ConversationStore):
        self.db = db
        self.storage = storage
        self.conversations = conversation_store

    def upload(
        self,
        user_id: int,
        *,
        file_name: str,
        size: int,
        mime_type: str,
        base64_data: str,
        conversation_id: Optional[int] = None,
        is_reference: bool = False,
    ) -> AudioFile:
        validate_upload(size, mime_type)
        data = decode_audio(base64_data)

        if conversation_id is not None:
            self.conversations.get_owned(user_id, conversation_id)

        file_key = f"audio/{user_id}/{uuid4().hex}-{safe_file_name(file_name)}"
        url = self.storage.put(file_key, data, mime_type.lower())

        now = datetime.now(timezone.utc)
        try:
            with self.db.session() as session:
                result = session.execute(
                    insert(audio_files).values(
                        user_id=user_id,
                        conversation_id=conversation_id,
                        file_name=file_name,
                        file_key=file_key,
                        url=url,
                        mime_type=mime_type.lower(),
                        size=len(data),
                        is_reference=is_reference,
                        created_at=now,
                    )
                )
                row = session.execute(
                    select(audio_files).where(audio_files.c.id == result.inserted_primary_key[0])
                ).first()
                audio = AudioFile.from_row(row)
        except Exception:
            # No row points at the blob, so drop it before surfacing the error
            self.storage.delete(file_key)
            raise

        logger.info(
            "audio.uploaded",
            extra={"user_id": user_id, "conversation_id": conversation_id, "size": audio.size, "is_reference": is_reference},
        )
        return audio

    def list_files(self, user_id: int) -> List[AudioFile]:
        """Newest first. Degrades to [] when the store is down."""
        try:
            with self.db.session() as session:
                rows = session.execute(
                    select(audio_files)
                    .where(audio_files.c.user_id == user_id)
                    .order_by(audio_files.c.created_at.desc(), audio_files.c.id.desc())
                ).all()
        except StoreUnavailableError:
            logger.warning("audio.list_degraded", extra={"user_id": user_id})
            return []
        return [AudioFile.from_row(row) for row in rows]

    def get_owned_by_url(self, user_id: int, url: str) -> AudioFile:
        """Resolve an uploaded file by URL; files owned by others are NotFound."""
        with self.db.session() as session:
            row = session.execute(
                select(audio_files)
                .where(audio_files.c.user_id == user_id)
                .where(audio_files.c.url == url)
                .order_by(audio_files.c.id.desc())
            ).first()
        if not row:
            raise NotFoundError("Audio file not found")
        return AudioFile.from_row(row)
