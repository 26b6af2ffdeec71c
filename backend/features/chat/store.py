"""
backend/features/chat/store.py

Conversation store: ownership-scoped CRUD for conversations and messages.

A conversation owned by someone else is reported exactly like a missing one
(NotFoundError), so ids never leak across users.
"""

from datetime import datetime, timezone
import logging
from typing import List, Optional
from sqlalchemy import select, insert, update, delete
from sqlalchemy.orm import Session

from backend.core.database import Database, conversations, messages
from backend.core.errors import NotFoundError, StoreUnavailableError, ValidationError
from backend.core.logging import LOGGER_NAME
from backend.models.conversation import Conversation, ConversationDetail, Message


logger = logging.getLogger(LOGGER_NAME)

MAX_TITLE_LENGTH = 255


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_title(title: Optional[str]) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("title must not be empty")
    if len(cleaned) > MAX_TITLE_LENGTH:
        raise ValidationError(f"title must be at most {MAX_TITLE_LENGTH} characters")
    return cleaned


class ConversationStore:
    def __init__(self, db: Database):
        self.db = db

    def create_conversation(self, user_id: int, title: str) -> Conversation:
        title = normalize_title(title)
        now = _utc_now()
        with self.db.session() as session:
            result = session.execute(
                insert(conversations).values(
                    user_id=user_id,
                    title=title,
                    created_at=now,
                    updated_at=now,
                )
            )
            conversation_id = result.inserted_primary_key[0]
            row = session.execute(
                select(conversations).where(conversations.c.id == conversation_id)
            ).first()
            conversation = Conversation.from_row(row)

        logger.info("conversation.created", extra={"user_id": user_id, "conversation_id": conversation.id})
        return conversation

    def list_conversations(self, user_id: int) -> List[Conversation]:
        """Most recently updated first. Degrades to [] when the store is down."""
        try:
            with self.db.session() as session:
                rows = session.execute(
                    select(conversations)
                    .where(conversations.c.user_id == user_id)
                    .order_by(conversations.c.updated_at.desc(), conversations.c.id.desc())
                ).all()
        except StoreUnavailableError:
            logger.warning("conversation.list_degraded", extra={"user_id": user_id})
            return []
        return [Conversation.from_row(row) for row in rows]

    def get_owned(self, user_id: int, conversation_id: int, session: Optional[Session] = None) -> Conversation:
        """Return the conversation if `user_id` owns it, else raise NotFoundError."""
        with self.db.session(session) as s:
            row = s.execute(
                select(conversations)
                .where(conversations.c.id == conversation_id)
                .where(conversations.c.user_id == user_id)
            ).first()
        if not row:
            raise NotFoundError("Conversation not found")
        return Conversation.from_row(row)

    def get_conversation(self, user_id: int, conversation_id: int) -> ConversationDetail:
        with self.db.session() as session:
            conversation = self.get_owned(user_id, conversation_id, session=session)
            transcript = self.list_messages(conversation_id, session=session)
        return ConversationDetail(conversation=conversation, messages=transcript)

    def delete_conversation(self, user_id: int, conversation_id: int) -> None:
        """Delete a conversation and all of its messages in one transaction."""
        with self.db.session() as session:
            self.get_owned(user_id, conversation_id, session=session)
            removed = session.execute(
                delete(messages).where(messages.c.conversation_id == conversation_id)
            ).rowcount
            session.execute(
                delete(conversations)
                .where(conversations.c.id == conversation_id)
                .where(conversations.c.user_id == user_id)
            )

        logger.info(
            "conversation.deleted",
            extra={"user_id": user_id, "conversation_id": conversation_id, "messages_removed": removed},
        )

    def add_message(
        self,
        conversation_id: int,
        role: str,
        content: str,
        session: Optional[Session] = None,
        now: Optional[datetime] = None,
    ) -> Message:
        if role not in ("user", "assistant"):
            raise ValidationError(f"invalid message role: {role}")
        created_at = now or _utc_now()
        with self.db.session(session) as s:
            result = s.execute(
                insert(messages).values(
                    conversation_id=conversation_id,
                    role=role,
                    content=content,
                    created_at=created_at,
                )
            )
            message_id = result.inserted_primary_key[0]
            row = s.execute(select(messages).where(messages.c.id == message_id)).first()
        return Message.from_row(row)

    def list_messages(
        self,
        conversation_id: int,
        limit: Optional[int] = None,
        session: Optional[Session] = None,
    ) -> List[Message]:
        """
        Messages in creation order. With `limit`, only the most recent
        `limit` messages, still oldest first.
        """
        query = select(messages).where(messages.c.conversation_id == conversation_id)
        with self.db.session(session) as s:
            if limit is None:
                rows = s.execute(query.order_by(messages.c.created_at, messages.c.id)).all()
            else:
                rows = s.execute(
                    query.order_by(messages.c.created_at.desc(), messages.c.id.desc()).limit(limit)
                ).all()
                rows = list(reversed(rows))
        return [Message.from_row(row) for row in rows]

    def touch(self, conversation_id: int, session: Optional[Session] = None, now: Optional[datetime] = None) -> None:
        with self.db.session(session) as s:
            s.execute(
                update(conversations)
                .where(conversations.c.id == conversation_id)
                .values(updated_at=now or _utc_now())
            )
