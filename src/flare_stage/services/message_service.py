"""Direct and public messaging."""
from __future__ import annotations

import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from flare_stage.core.errors import ForbiddenError, NotFoundError, ValidationError
from flare_stage.models import Message, User
from flare_stage.repositories.store import EntityStore
from flare_stage.schemas.message import MessageCreate, MessageResponse
from flare_stage.schemas.user import UserSummary
from flare_stage.services.broadcaster import Audience, EventType
from flare_stage.services.toggle import ToggleEngine

logger = logging.getLogger(__name__)

PUBLIC_HISTORY_LIMIT = 100


def to_message_response(message: Message, users: dict[int, User]) -> MessageResponse | None:
    """Serialize a message, or return None if a participant no longer exists."""
    sender = users.get(message.sender_id)
    if sender is None:
        return None
    recipient = None
    if message.recipient_id is not None:
        recipient = users.get(message.recipient_id)
        if recipient is None:
            return None
    return MessageResponse(
        id=message.id,
        sender=UserSummary.model_validate(sender),
        recipient=UserSummary.model_validate(recipient) if recipient is not None else None,
        content=message.content,
        is_read=message.is_read,
        read_at=message.read_at,
        created_at=message.created_at,
        type="public" if message.is_public else "direct",
    )


def _participants(db: Session, messages: list[Message]) -> dict[int, User]:
    ids = {message.sender_id for message in messages}
    ids.update(message.recipient_id for message in messages if message.recipient_id is not None)
    if not ids:
        return {}
    return {user.id: user for user in db.execute(select(User).where(User.id.in_(ids))).scalars()}


def to_message_responses(db: Session, messages: list[Message]) -> list[MessageResponse]:
    users = _participants(db, messages)
    responses = (to_message_response(message, users) for message in messages)
    return [response for response in responses if response is not None]


def send_message(
    db: Session,
    engine: ToggleEngine,
    sender: User,
    data: MessageCreate,
) -> MessageResponse:
    """Persist a message and notify the participants.

    Direct messages go to the recipient's room as `newMessage` and back to
    the sender's room as `messageSent`. Public messages go to everyone.

    Raises:
        NotFoundError: If the recipient does not exist.
        ValidationError: If the sender addresses themselves.
    """
    store = EntityStore(db)
    users = {sender.id: sender}
    if data.recipient_id is not None:
        if data.recipient_id == sender.id:
            raise ValidationError("Cannot send a message to yourself")
        recipient = store.get(User, data.recipient_id)
        if recipient is None:
            raise NotFoundError("Recipient not found")
        users[recipient.id] = recipient

    message = Message(sender_id=sender.id, recipient_id=data.recipient_id, content=data.content)
    store.put(message)
    db.commit()
    db.refresh(message)

    response = to_message_response(message, users)
    if response is None:
        raise NotFoundError("Recipient not found")
    payload = response.model_dump(mode="json", by_alias=True)
    if message.is_public:
        engine.broadcaster.publish(EventType.NEW_MESSAGE, payload, Audience.everyone())
    else:
        engine.broadcaster.publish(EventType.NEW_MESSAGE, payload, Audience.user(message.recipient_id))
        engine.broadcaster.publish(EventType.MESSAGE_SENT, payload, Audience.user(sender.id))
    logger.debug("Message %s sent by %s", message.id, sender.id)
    return response


def get_conversation(
    db: Session,
    engine: ToggleEngine,
    user: User,
    partner_id: int,
) -> list[MessageResponse]:
    """Mark the conversation read for `user` and return it oldest first.

    Raises:
        NotFoundError: If the partner does not exist.
    """
    engine.mark_read(db, user.id, partner_id)
    messages = EntityStore(db).list_by(
        Message,
        or_(
            and_(Message.sender_id == user.id, Message.recipient_id == partner_id),
            and_(Message.sender_id == partner_id, Message.recipient_id == user.id),
        ),
        order_by=(Message.created_at, Message.id),
    )
    return to_message_responses(db, messages)


def list_public_messages(db: Session, limit: int = PUBLIC_HISTORY_LIMIT) -> list[MessageResponse]:
    """Return the most recent public messages, oldest first."""
    recent = EntityStore(db).list_by(
        Message,
        Message.recipient_id.is_(None),
        order_by=(Message.created_at.desc(), Message.id.desc()),
        limit=limit,
    )
    return to_message_responses(db, list(reversed(recent)))


def delete_message(db: Session, engine: ToggleEngine, actor: User, message_id: int) -> None:
    """Delete a message.

    Raises:
        NotFoundError: If the message does not exist.
        ForbiddenError: If the actor is neither the sender nor an admin.
    """
    store = EntityStore(db)
    message = store.get(Message, message_id)
    if message is None:
        raise NotFoundError("Message not found")
    if message.sender_id != actor.id and not actor.is_admin:
        raise ForbiddenError("Not authorized to delete this message")

    sender_id, recipient_id = message.sender_id, message.recipient_id
    store.delete(message)
    db.commit()

    payload = {"messageId": message_id}
    if recipient_id is None:
        engine.broadcaster.publish(EventType.MESSAGE_DELETED, payload, Audience.everyone())
    else:
        engine.broadcaster.publish(EventType.MESSAGE_DELETED, payload, Audience.user(recipient_id))
        engine.broadcaster.publish(EventType.MESSAGE_DELETED, payload, Audience.user(sender_id))
    logger.info("Message %s deleted by %s", message_id, actor.id)
