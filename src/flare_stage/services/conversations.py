"""Conversation list derived from the direct-message log."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from flare_stage.db.time import as_utc
from flare_stage.models import Message, User


@dataclass(frozen=True)
class Conversation:
    """One partner's latest message and the caller's unread count."""

    partner: User
    last_message: Message
    unread_count: int


def list_conversations(db: Session, user_id: int) -> list[Conversation]:
    """Return the user's conversations, most recently active first.

    Only direct messages count; public messages have no partner. The latest
    message per partner is chosen by timestamp, then by id. Conversations
    with partners that no longer exist are skipped. Nothing is written.
    """
    messages = db.execute(
        select(Message)
        .where(
            Message.recipient_id.is_not(None),
            or_(Message.sender_id == user_id, Message.recipient_id == user_id),
        )
        .order_by(Message.created_at.desc(), Message.id.desc())
    ).scalars()

    latest: dict[int, Message] = {}
    for message in messages:
        partner_id = message.recipient_id if message.sender_id == user_id else message.sender_id
        if partner_id is not None and partner_id not in latest:
            latest[partner_id] = message
    if not latest:
        return []

    unread = dict(
        db.execute(
            select(Message.sender_id, func.count())
            .where(Message.recipient_id == user_id, Message.is_read.is_(False))
            .group_by(Message.sender_id)
        ).all()
    )
    partners = {
        user.id: user
        for user in db.execute(select(User).where(User.id.in_(latest))).scalars()
    }

    conversations = [
        Conversation(
            partner=partners[partner_id],
            last_message=message,
            unread_count=int(unread.get(partner_id, 0)),
        )
        for partner_id, message in latest.items()
        if partner_id in partners
    ]
    conversations.sort(key=lambda conv: conv.partner.id)
    conversations.sort(key=lambda conv: as_utc(conv.last_message.created_at), reverse=True)
    return conversations
