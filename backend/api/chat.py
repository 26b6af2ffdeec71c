"""
Chat API routes.

- POST   /api/chat/conversations: create a conversation
- GET    /api/chat/conversations: list the caller's conversations
- GET    /api/chat/conversations/{id}: conversation + transcript
- DELETE /api/chat/conversations/{id}: delete conversation and messages
- POST   /api/chat/conversations/{id}/messages: send a message, get the reply

Handlers are sync so store and LLM calls run on the threadpool.
"""
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.api.deps import AppServices, get_current_user, get_services
from backend.models.conversation import Conversation, ConversationDetail
from backend.models.user import User

router = APIRouter(prefix="/chat", tags=["chat"])


class CreateConversationRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)


class CreateConversationResponse(BaseModel):
    conversation_id: int
    conversation: Conversation


class SendMessageRequest(BaseModel):
    message: str = Field(..., min_length=1)


class SendMessageResponse(BaseModel):
    conversation_id: int
    message: str
    success: bool = True


@router.post("/conversations", response_model=CreateConversationResponse)
def create_conversation(
    body: CreateConversationRequest,
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    conversation = services.conversations.create_conversation(user.id, body.title)
    return {"conversation_id": conversation.id, "conversation": conversation}


@router.get("/conversations", response_model=List[Conversation])
def list_conversations(
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    return services.conversations.list_conversations(user.id)


@router.get("/conversations/{conversation_id}", response_model=ConversationDetail)
def get_conversation(
    conversation_id: int,
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    return services.conversations.get_conversation(user.id, conversation_id)


@router.delete("/conversations/{conversation_id}")
def delete_conversation(
    conversation_id: int,
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    services.conversations.delete_conversation(user.id, conversation_id)
    return {"success": True}


@router.post("/conversations/{conversation_id}/messages", response_model=SendMessageResponse)
def send_message(
    conversation_id: int,
    body: SendMessageRequest,
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    reply = services.orchestrator.send_message(user, conversation_id, body.message)
    return {"conversation_id": reply.conversation_id, "message": reply.message}
