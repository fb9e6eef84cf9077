"""Conversation and message endpoints."""

from datetime import datetime

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from buzzhub.api.dependencies import CurrentUserDep, MessageRouterDep
from buzzhub.models import Conversation, Message

router = APIRouter(prefix="/conversations", tags=["Conversations"])


# ==================== Pydantic Schemas ====================


class ConversationCreate(BaseModel):
    """Schema for starting a conversation."""

    participant_ids: list[str] = Field(..., min_length=1)


class MessageCreate(BaseModel):
    """Schema for sending a message."""

    body: str


# ==================== Conversation Endpoints ====================


@router.post("", response_model=Conversation, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    data: ConversationCreate,
    user: CurrentUserDep,
    message_router: MessageRouterDep,
) -> Conversation:
    """Start a conversation between the caller and other users."""
    return await message_router.create_conversation(user.id, data.participant_ids)


@router.get("", response_model=list[Conversation])
async def list_conversations(
    user: CurrentUserDep,
    message_router: MessageRouterDep,
    limit: int = Query(50, ge=1, le=200),
) -> list[Conversation]:
    """List the caller's conversations, most recently active first."""
    return await message_router.list_conversations(user.id, limit=limit)


@router.post("/{conversation_id}/read", response_model=Conversation)
async def mark_conversation_read(
    conversation_id: str,
    user: CurrentUserDep,
    message_router: MessageRouterDep,
) -> Conversation:
    """Mark the latest message as seen by the caller."""
    return await message_router.mark_conversation_read(conversation_id, user.id)


# ==================== Message Endpoints ====================


@router.post(
    "/{conversation_id}/messages",
    response_model=Message,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: str,
    data: MessageCreate,
    user: CurrentUserDep,
    message_router: MessageRouterDep,
) -> Message:
    """Send a message as the caller."""
    return await message_router.send(conversation_id, user.id, data.body)


@router.get("/{conversation_id}/messages", response_model=list[Message])
async def list_messages(
    conversation_id: str,
    user: CurrentUserDep,
    message_router: MessageRouterDep,
    after: datetime | None = None,
    limit: int | None = Query(None, ge=1, le=500),
) -> list[Message]:
    """Message history, oldest first, optionally only after a timestamp."""
    return await message_router.list_messages(conversation_id, user.id, after=after, limit=limit)
