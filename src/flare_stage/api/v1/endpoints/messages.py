"""Messaging endpoints for the Flare API."""

from __future__ import annotations

from fastapi import APIRouter, status

from flare_stage.schemas.common import StatusResponse
from flare_stage.schemas.message import (
    ConversationList,
    ConversationResponse,
    MessageCreate,
    MessageList,
    MessageSent,
    ReadResult,
)
from flare_stage.schemas.user import UserSummary
from flare_stage.services import message_service
from flare_stage.services.conversations import list_conversations

from ..dependencies import CurrentUserDep, SessionDep, ToggleEngineDep

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/conversations", response_model=ConversationList)
async def get_conversations(current_user: CurrentUserDep, db: SessionDep) -> ConversationList:
    """List the caller's conversations, most recently active first."""
    conversations = []
    for conversation in list_conversations(db, current_user.id):
        users = {current_user.id: current_user, conversation.partner.id: conversation.partner}
        last_message = message_service.to_message_response(conversation.last_message, users)
        if last_message is None:
            continue
        conversations.append(
            ConversationResponse(
                partner=UserSummary.model_validate(conversation.partner),
                last_message=last_message,
                unread_count=conversation.unread_count,
            )
        )
    return ConversationList(conversations=conversations)


@router.get("/conversation/{user_id}", response_model=MessageList)
def get_conversation(
    user_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> MessageList:
    """Return the conversation with a user, oldest first, marking it read."""
    return MessageList(messages=message_service.get_conversation(db, engine, current_user, user_id))


@router.post("/send", response_model=MessageSent, status_code=status.HTTP_201_CREATED)
def send_message(
    body: MessageCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> MessageSent:
    """Send a direct message, or a public one when no recipient is given."""
    message = message_service.send_message(db, engine, current_user, body)
    return MessageSent(message="Message sent successfully", message_data=message)


@router.put("/read/{user_id}", response_model=ReadResult)
def mark_read(
    user_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> ReadResult:
    """Mark every unread message from a user as read."""
    updated = engine.mark_read(db, current_user.id, user_id)
    return ReadResult(message="Messages marked as read", updated_count=updated)


@router.get("/public", response_model=MessageList)
async def get_public_messages(_current_user: CurrentUserDep, db: SessionDep) -> MessageList:
    """Return recent public messages, oldest first."""
    return MessageList(messages=message_service.list_public_messages(db))


@router.delete("/{message_id}", response_model=StatusResponse)
def delete_message(
    message_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> StatusResponse:
    """Delete a message (sender or admin only)."""
    message_service.delete_message(db, engine, current_user, message_id)
    return StatusResponse(message="Message deleted successfully")
