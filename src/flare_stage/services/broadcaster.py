"""Real-time event fan-out to connected subscribers.

The broadcaster is a best-effort publish/subscribe hub. Each subscriber owns
a FIFO outbox; `publish` only enqueues, so it never blocks on network I/O and
may be called while a per-target lock is held. Events published in sequence
reach every subscriber in that same sequence. Nothing is stored for offline
clients: a client that reconnects must re-fetch state over HTTP.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

Frame = dict[str, Any]


class EventType(StrEnum):
    """Server-to-client event names."""

    NEW_HOTSPOT = "newHotspot"
    HOTSPOT_JOIN_UPDATE = "hotspotJoinUpdate"
    HOTSPOT_DELETED = "hotspotDeleted"
    NEW_POST = "newPost"
    POST_LIKE_UPDATE = "postLikeUpdate"
    NEW_REPLY = "newReply"
    POST_DELETED = "postDeleted"
    NEW_MESSAGE = "newMessage"
    MESSAGE_SENT = "messageSent"
    MESSAGE_DELETED = "messageDeleted"
    MESSAGES_READ = "messagesRead"
    USER_ONLINE = "userOnline"
    USER_OFFLINE = "userOffline"
    USER_TYPING = "userTyping"
    USER_PROFILE_UPDATE = "userProfileUpdate"
    USER_DELETED = "userDeleted"
    ERROR = "error"


def user_room(user_id: int) -> str:
    """Return the room name addressing every connection of a user."""
    return f"user_{user_id}"


def post_room(post_id: int) -> str:
    """Return the discussion room name for a post."""
    return f"post_{post_id}"


def hotspot_room(hotspot_id: int) -> str:
    """Return the discussion room name for a hotspot."""
    return f"hotspot_{hotspot_id}"


class Subscriber(ABC):
    """A single live connection that can receive frames."""

    def __init__(self, user_id: int, username: str) -> None:
        self.id = uuid.uuid4().hex
        self.user_id = user_id
        self.username = username

    @abstractmethod
    def deliver(self, frame: Frame) -> None:
        """Hand a frame to the connection without blocking."""

    def close(self) -> None:
        """Stop accepting frames."""


class QueueSubscriber(Subscriber):
    """Subscriber backed by an asyncio queue drained by `pump`.

    `deliver` is safe to call from any thread; frames published from worker
    threads are handed to the owning event loop with `call_soon_threadsafe`,
    which runs callbacks in FIFO order.
    """

    def __init__(
        self,
        user_id: int,
        username: str,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        super().__init__(user_id, username)
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue[Frame | None] = asyncio.Queue()
        self._closed = False

    def _on_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def deliver(self, frame: Frame) -> None:
        if self._closed:
            return
        if self._on_loop_thread():
            self._queue.put_nowait(frame)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, frame)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_loop_thread():
            self._queue.put_nowait(None)
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, None)

    async def pump(self, send: Callable[[Frame], Awaitable[None]]) -> None:
        """Forward queued frames to `send` until closed."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            await send(frame)


@dataclass(frozen=True)
class Audience:
    """Who should receive an event.

    `room` is None for everyone; otherwise a user room (`user_<id>`) or a
    topic room (`post_<id>`, `hotspot_<id>`). `exclude` names a subscriber id
    that must not receive the event (typically the originating connection).
    """

    room: str | None = None
    exclude: str | None = None

    @classmethod
    def everyone(cls, exclude: Subscriber | None = None) -> Audience:
        return cls(None, exclude.id if exclude else None)

    @classmethod
    def user(cls, user_id: int, exclude: Subscriber | None = None) -> Audience:
        return cls(user_room(user_id), exclude.id if exclude else None)

    @classmethod
    def topic(cls, room: str, exclude: Subscriber | None = None) -> Audience:
        return cls(room, exclude.id if exclude else None)


class EventBroadcaster:
    """Registry of live subscribers and their rooms."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._subscribers: dict[str, Subscriber] = {}
        self._rooms: dict[str, set[str]] = {}

    def register(self, subscriber: Subscriber) -> None:
        """Add a subscriber and place it in its user room."""
        with self._lock:
            self._subscribers[subscriber.id] = subscriber
            self._join_locked(subscriber.id, user_room(subscriber.user_id))
        logger.info("Subscriber %s registered for user %s", subscriber.id, subscriber.user_id)

    def unregister(self, subscriber: Subscriber) -> bool:
        """Remove a subscriber from every room.

        Returns:
            True if this was the user's last live connection.
        """
        with self._lock:
            self._drop_locked(subscriber.id)
            remaining = self._rooms.get(user_room(subscriber.user_id), set())
            last = not remaining
        subscriber.close()
        logger.info("Subscriber %s unregistered for user %s", subscriber.id, subscriber.user_id)
        return last

    def join(self, subscriber: Subscriber, room: str) -> None:
        with self._lock:
            if subscriber.id in self._subscribers:
                self._join_locked(subscriber.id, room)

    def leave(self, subscriber: Subscriber, room: str) -> None:
        with self._lock:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(subscriber.id)
                if not members:
                    del self._rooms[room]

    def rooms_of(self, subscriber: Subscriber) -> set[str]:
        with self._lock:
            return {room for room, members in self._rooms.items() if subscriber.id in members}

    def is_connected(self, user_id: int) -> bool:
        """Return True if the user has at least one live subscriber."""
        with self._lock:
            return bool(self._rooms.get(user_room(user_id)))

    def publish(self, event_type: EventType | str, payload: Any, audience: Audience) -> int:
        """Enqueue an event for every subscriber in `audience`.

        Delivery happens under the registry lock so concurrent publishers are
        totally ordered. A subscriber whose `deliver` raises is dropped.

        Returns:
            The number of subscribers the event was handed to.
        """
        frame: Frame = {"event": str(event_type), "data": payload}
        failed: list[Subscriber] = []
        delivered = 0
        with self._lock:
            if audience.room is None:
                targets = list(self._subscribers.values())
            else:
                ids = self._rooms.get(audience.room, set())
                targets = [self._subscribers[sid] for sid in ids if sid in self._subscribers]
            for subscriber in targets:
                if subscriber.id == audience.exclude:
                    continue
                try:
                    subscriber.deliver(frame)
                except Exception:  # noqa: BLE001 - one bad connection must not fail the publisher
                    logger.warning(
                        "Dropping subscriber %s after delivery failure",
                        subscriber.id,
                        exc_info=True,
                    )
                    failed.append(subscriber)
                else:
                    delivered += 1
            for subscriber in failed:
                self._drop_locked(subscriber.id)
        logger.debug("Published %s to %d subscriber(s)", frame["event"], delivered)
        return delivered

    def reset(self) -> None:
        """Forget every subscriber."""
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()
            self._rooms.clear()
        for subscriber in subscribers:
            subscriber.close()

    def _join_locked(self, subscriber_id: str, room: str) -> None:
        self._rooms.setdefault(room, set()).add(subscriber_id)

    def _drop_locked(self, subscriber_id: str) -> None:
        self._subscribers.pop(subscriber_id, None)
        for room in list(self._rooms):
            members = self._rooms[room]
            members.discard(subscriber_id)
            if not members:
                del self._rooms[room]


_broadcaster = EventBroadcaster()


def get_broadcaster() -> EventBroadcaster:
    """Return the process-wide broadcaster."""
    return _broadcaster
