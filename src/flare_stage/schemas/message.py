"""Message-related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from .common import CamelModel
from .user import UserSummary


class MessageCreate(CamelModel):
    """Schema for sending a message.

    A missing `recipient_id` sends a public message visible to everyone.
    """

    recipient_id: int | None = None
    content: str = Field(..., min_length=1, max_length=1000)


class MessageResponse(CamelModel):
    """A message with its participants."""

    id: int
    sender: UserSummary
    recipient: UserSummary | None
    content: str
    is_read: bool
    read_at: datetime | None
    created_at: datetime
    type: Literal["direct", "public"]


class ConversationResponse(CamelModel):
    """Derived conversation summary for one partner."""

    partner: UserSummary
    last_message: MessageResponse
    unread_count: int


class ReadResult(CamelModel):
    """Outcome of marking a conversation as read."""

    message: str
    updated_count: int


class ConversationList(CamelModel):
    conversations: list[ConversationResponse]


class MessageList(CamelModel):
    messages: list[MessageResponse]


class MessageSent(CamelModel):
    message: str
    message_data: MessageResponse
