"""
backend/features/chat/orchestrator.py

Chat orchestrator: the send-message and analyze-audio pipelines.

Both pipelines:
1. Verify conversation ownership (NotFoundError otherwise)
2. Persist the inbound user message
3. Build the LLM request (system prompt + history)
4. Call the LLM (the only long-latency step)
5. Persist the reply and bump the conversation timestamp

Audio analysis additionally runs the entitlement gate before anything is
written and charges the usage ledger in the same transaction as the reply,
so a failed LLM call never consumes quota.
"""

from dataclasses import dataclass
import logging
from typing import List, Optional

from backend.core.config import settings
from backend.core.database import Database
from backend.core.errors import ValidationError
from backend.core.locks import KeyedLock
from backend.core.logging import LOGGER_NAME, log_event
from backend.features.audio.service import AudioLibrary
from backend.features.chat.prompts import (
    AUDIO_ANALYSIS_SYSTEM_PROMPT,
    CHAT_SYSTEM_PROMPT,
    DEFAULT_ANALYSIS_PROMPT,
    FALLBACK_REPLY,
    REFERENCE_TRACK_NOTE,
)
from backend.features.chat.store import ConversationStore
from backend.features.entitlements.service import EntitlementService
from backend.features.llm.client import ChatMessage, LLMClient
from backend.features.pricing.catalog import UsageKind
from backend.features.usage.service import UsageLedger
from backend.models.conversation import Message
from backend.models.user import User


logger = logging.getLogger(LOGGER_NAME)

AUDIO_HISTORY_LIMIT = 5


@dataclass(frozen=True)
class ChatReply:
    conversation_id: int
    message: str
    user_message: Message
    assistant_message: Message


def _history_messages(history: List[Message]) -> List[ChatMessage]:
    return [{"role": msg.role, "content": msg.content} for msg in history]


class ChatOrchestrator:
    def __init__(
        self,
        db: Database,
        store: ConversationStore,
        ledger: UsageLedger,
        entitlements: EntitlementService,
        audio: AudioLibrary,
        llm: LLMClient,
        analysis_cost_cents: Optional[int] = None,
    ):
        self.db = db
        self.store = store
        self.ledger = ledger
        self.entitlements = entitlements
        self.audio = audio
        self.llm = llm
        self.analysis_cost_cents = (
            analysis_cost_cents if analysis_cost_cents is not None else settings.AUDIO_ANALYSIS_COST_CENTS
        )
        self._conversation_locks = KeyedLock()
        self._user_locks = KeyedLock()

    def send_message(self, user: User, conversation_id: int, text: str) -> ChatReply:
        content = (text or "").strip()
        if not content:
            raise ValidationError("message must not be empty")

        with self._conversation_locks.hold(conversation_id):
            self.store.get_owned(user.id, conversation_id)
            user_message = self.store.add_message(conversation_id, "user", text)

            history = self.store.list_messages(conversation_id)
            llm_messages: List[ChatMessage] = [{"role": "system", "content": CHAT_SYSTEM_PROMPT}]
            llm_messages.extend(_history_messages(history))

            reply = self.llm.complete(llm_messages) or FALLBACK_REPLY

            with self.db.session() as session:
                assistant_message = self.store.add_message(conversation_id, "assistant", reply, session=session)
                self.store.touch(conversation_id, session=session)

        log_event(
            "info",
            "chat.message_sent",
            user_id=user.id,
            conversation_id=conversation_id,
            extra={"history_len": len(history)},
        )
        return ChatReply(
            conversation_id=conversation_id,
            message=reply,
            user_message=user_message,
            assistant_message=assistant_message,
        )

    def analyze_audio(
        self,
        user: User,
        audio_url: str,
        conversation_id: int,
        user_prompt: Optional[str] = None,
        reference_url: Optional[str] = None,
    ) -> ChatReply:
        # Lock order is always user then conversation
        with self._user_locks.hold(user.id), self._conversation_locks.hold(conversation_id):
            self.store.get_owned(user.id, conversation_id)
            self.entitlements.enforce_usage(user, UsageKind.AUDIO_ANALYSIS)

            track = self.audio.get_owned_by_url(user.id, audio_url)
            reference = self.audio.get_owned_by_url(user.id, reference_url) if reference_url else None

            prompt = (user_prompt or "").strip() or DEFAULT_ANALYSIS_PROMPT
            user_message = self.store.add_message(conversation_id, "user", prompt)

            history = self.store.list_messages(conversation_id, limit=AUDIO_HISTORY_LIMIT + 1)
            # The prompt just stored is re-sent below together with the audio parts
            prior = [msg for msg in history if msg.id != user_message.id][-AUDIO_HISTORY_LIMIT:]

            parts: List[dict] = [{"type": "text", "text": prompt}]
            parts.append({"type": "file_url", "file_url": {"url": track.url, "mime_type": track.mime_type}})
            if reference is not None:
                parts.append({"type": "text", "text": REFERENCE_TRACK_NOTE})
                parts.append(
                    {"type": "file_url", "file_url": {"url": reference.url, "mime_type": reference.mime_type}}
                )

            llm_messages: List[ChatMessage] = [{"role": "system", "content": AUDIO_ANALYSIS_SYSTEM_PROMPT}]
            llm_messages.extend(_history_messages(prior))
            llm_messages.append({"role": "user", "content": parts})

            reply = self.llm.complete(llm_messages) or FALLBACK_REPLY

            with self.db.session() as session:
                assistant_message = self.store.add_message(conversation_id, "assistant", reply, session=session)
                self.store.touch(conversation_id, session=session)
                self.ledger.record_usage(
                    user.id,
                    UsageKind.AUDIO_ANALYSIS,
                    cost=self.analysis_cost_cents,
                    session=session,
                )

        log_event(
            "info",
            "chat.audio_analyzed",
            user_id=user.id,
            conversation_id=conversation_id,
            extra={"has_reference": reference is not None, "cost_cents": self.analysis_cost_cents},
        )
        return ChatReply(
            conversation_id=conversation_id,
            message=reply,
            user_message=user_message,
            assistant_message=assistant_message,
        )
