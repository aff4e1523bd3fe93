"""WebSocket channel for real-time events."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from typing import Any

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool

from flare_stage.db.time import utcnow
from flare_stage.models import User
from flare_stage.services import user_service
from flare_stage.services.broadcaster import (
    Audience,
    EventBroadcaster,
    EventType,
    QueueSubscriber,
    get_broadcaster,
    hotspot_room,
    post_room,
)

from ..dependencies import SessionFactory, SessionFactoryDep, resolve_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

# client event -> (join?, room builder, payload key)
ROOM_EVENTS = {
    "joinPostRoom": (True, post_room, "postId"),
    "leavePostRoom": (False, post_room, "postId"),
    "joinHotspotRoom": (True, hotspot_room, "hotspotId"),
    "leaveHotspotRoom": (False, hotspot_room, "hotspotId"),
}
TYPING_EVENTS = {"typing": True, "stopTyping": False}


class ClientEventError(ValueError):
    """A client frame that cannot be handled."""


def _bearer_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if token:
        return token
    scheme, _, value = websocket.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def _int_field(data: Any, key: str) -> int:
    """Accept either a bare id or an object carrying it under `key`."""
    value = data.get(key, data.get("id")) if isinstance(data, dict) else data
    if isinstance(value, bool):
        raise ClientEventError(f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as err:
        raise ClientEventError(f"{key} must be an integer") from err


def handle_client_event(
    broadcaster: EventBroadcaster,
    subscriber: QueueSubscriber,
    frame: Any,
) -> None:
    """Apply one client frame.

    Raises:
        ClientEventError: If the frame is malformed or names an unknown event.
    """
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        raise ClientEventError("Frames must be objects with an 'event' name")
    event, data = frame["event"], frame.get("data")

    if event in TYPING_EVENTS:
        recipient_id = _int_field(data, "recipientId")
        broadcaster.publish(
            EventType.USER_TYPING,
            {
                "userId": subscriber.user_id,
                "username": subscriber.username,
                "isTyping": TYPING_EVENTS[event],
            },
            Audience.user(recipient_id, exclude=subscriber),
        )
    elif event in ROOM_EVENTS:
        join, room_for, key = ROOM_EVENTS[event]
        room = room_for(_int_field(data, key))
        if join:
            broadcaster.join(subscriber, room)
        else:
            broadcaster.leave(subscriber, room)
    else:
        raise ClientEventError(f"Unknown event: {event}")


def _authenticate(session_factory: SessionFactory, token: str) -> tuple[int, str]:
    with session_factory() as db:
        user = resolve_user(db, token)
        return user.id, user.username


def _set_presence(session_factory: SessionFactory, user_id: int, *, online: bool) -> None:
    with session_factory() as db:
        user = db.get(User, user_id)
        if user is not None:
            user_service.set_presence(db, user, online=online)


def _mark_offline(
    session_factory: SessionFactory, broadcaster: EventBroadcaster, user_id: int, username: str
) -> None:
    _set_presence(session_factory, user_id, online=False)
    broadcaster.publish(
        EventType.USER_OFFLINE,
        {
            "userId": user_id,
            "username": username,
            "isOnline": False,
            "lastSeen": utcnow().isoformat(),
        },
        Audience.everyone(),
    )


@router.websocket("/ws")
async def realtime(websocket: WebSocket, session_factory: SessionFactoryDep) -> None:
    """Authenticate, subscribe and relay events until the client leaves.

    Database work runs in the threadpool with its own short-lived session,
    so the event loop never blocks on it and no session outlives a write.
    """
    broadcaster = get_broadcaster()
    token = _bearer_token(websocket)
    try:
        if token is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
        user_id, username = await run_in_threadpool(_authenticate, session_factory, token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    subscriber = QueueSubscriber(user_id, username)
    broadcaster.register(subscriber)
    await run_in_threadpool(_set_presence, session_factory, user_id, online=True)
    broadcaster.publish(
        EventType.USER_ONLINE,
        {"userId": user_id, "username": username, "isOnline": True},
        Audience.everyone(exclude=subscriber),
    )
    pump = asyncio.create_task(subscriber.pump(websocket.send_json))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                handle_client_event(broadcaster, subscriber, json.loads(raw))
            except (ClientEventError, json.JSONDecodeError) as err:
                subscriber.deliver({"event": str(EventType.ERROR), "data": {"message": str(err)}})
    except WebSocketDisconnect:
        pass
    finally:
        last = broadcaster.unregister(subscriber)
        pump.cancel()
        with suppress(asyncio.CancelledError, Exception):
            await pump
        if last:
            # the threadpool call waits for the write even if this task is cancelled
            await run_in_threadpool(_mark_offline, session_factory, broadcaster, user_id, username)
        logger.info("User %s disconnected (last connection: %s)", user_id, last)
