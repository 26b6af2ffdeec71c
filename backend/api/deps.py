"""
Request dependencies shared by the API routers.

Services are wired once per app in build_services() and stored on
app.state.services; routes pull them with Depends(get_services).
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from backend.core.auth import resolve_user
from backend.core.database import Database
from backend.core.errors import UnauthorizedError
from backend.features.audio.service import AudioLibrary
from backend.features.audio.storage import AudioStorage
from backend.features.billing.provider import BillingProvider
from backend.features.billing.service import BillingService
from backend.features.chat.orchestrator import ChatOrchestrator
from backend.features.chat.store import ConversationStore
from backend.features.entitlements.service import EntitlementService
from backend.features.llm.client import LLMClient
from backend.features.usage.service import UsageLedger
from backend.features.users.service import UserDirectory
from backend.models.user import User


@dataclass
class AppServices:
    db: Database
    users: UserDirectory
    conversations: ConversationStore
    ledger: UsageLedger
    entitlements: EntitlementService
    audio: AudioLibrary
    orchestrator: ChatOrchestrator
    billing: BillingService


def build_services(
    db: Database,
    llm: LLMClient,
    storage: AudioStorage,
    billing_provider: Optional[BillingProvider],
) -> AppServices:
    conversations = ConversationStore(db)
    ledger = UsageLedger(db)
    entitlements = EntitlementService(ledger)
    audio = AudioLibrary(db, storage, conversations)
    return AppServices(
        db=db,
        users=UserDirectory(db),
        conversations=conversations,
        ledger=ledger,
        entitlements=entitlements,
        audio=audio,
        orchestrator=ChatOrchestrator(db, conversations, ledger, entitlements, audio, llm),
        billing=BillingService(db, billing_provider),
    )


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_optional_user(request: Request, services: AppServices = Depends(get_services)) -> Optional[User]:
    user = resolve_user(request, services.users)
    if user is not None:
        request.state.user_id = user.id
    return user


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    """Require an authenticated session."""
    if user is None:
        raise UnauthorizedError("Authentication required")
    return user
