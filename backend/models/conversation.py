"""
backend/models/conversation.py

Conversation and Message models.

A conversation belongs to exactly one user. Messages are ordered by
(created_at, id) and never reordered.
"""

from datetime import datetime
from typing import List, Literal
from pydantic import BaseModel, ConfigDict


MessageRole = Literal["user", "assistant"]


class Conversation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    title: str
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def from_row(row) -> "Conversation":
        return Conversation(
            id=row.id,
            user_id=row.user_id,
            title=row.title,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    conversation_id: int
    role: MessageRole
    content: str
    created_at: datetime

    @staticmethod
    def from_row(row) -> "Message":
        return Message(
            id=row.id,
            conversation_id=row.conversation_id,
            role=row.role,
            content=row.content,
            created_at=row.created_at,
        )


class ConversationDetail(BaseModel):
    """Conversation plus its transcript, as rendered by the chat view."""
    model_config = ConfigDict(frozen=True)

    conversation: Conversation
    messages: List[Message]
