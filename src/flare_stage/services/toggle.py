"""Membership, like and read-state transitions.

Every read-modify-write on a membership set runs inside a per-target lock,
so two requests touching the same hotspot (or post) never interleave. The
corresponding real-time event is published after the commit and before the
lock is released, which keeps broadcast order identical to write order for
any single target.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import InstrumentedAttribute, Session

from flare_stage.core.errors import NotFoundError
from flare_stage.db.time import utcnow
from flare_stage.models import Hotspot, HotspotMember, Message, Post, PostLike, Reply, User
from flare_stage.repositories.store import EntityStore
from flare_stage.schemas.user import UserSummary
from flare_stage.services.broadcaster import (
    Audience,
    EventBroadcaster,
    EventType,
    get_broadcaster,
)
from flare_stage.services.locks import KeyedLock

logger = logging.getLogger(__name__)

# Lock namespaces that are not toggle kinds.
REPLY_LOCK = "postReply"
READ_LOCK = "messageRead"


class TargetKind(StrEnum):
    """Membership sets the engine can toggle."""

    HOTSPOT_JOIN = "hotspotJoin"
    POST_LIKE = "postLike"


@dataclass(frozen=True)
class _SetSpec:
    target_model: type[Any]
    member_model: type[Any]
    target_column: InstrumentedAttribute[int]
    label: str
    actions: tuple[str, str]  # (added, removed)


_SPECS: dict[TargetKind, _SetSpec] = {
    TargetKind.HOTSPOT_JOIN: _SetSpec(
        Hotspot, HotspotMember, HotspotMember.hotspot_id, "Hotspot", ("join", "leave")
    ),
    TargetKind.POST_LIKE: _SetSpec(
        Post, PostLike, PostLike.post_id, "Post", ("like", "unlike")
    ),
}


@dataclass(frozen=True)
class ToggleResult:
    """Outcome of a membership transition.

    `count` is recomputed from the persisted set after the write; `members`
    holds the existing users in the set, oldest membership first.
    """

    kind: TargetKind
    target_id: int
    actor_id: int
    new_state: bool
    changed: bool
    count: int
    members: list[User] = field(default_factory=list)

    @property
    def action(self) -> str:
        added, removed = _SPECS[self.kind].actions
        return added if self.new_state else removed

    @property
    def member_ids(self) -> list[int]:
        return [user.id for user in self.members]


def lock_key(kind: str, target_id: int) -> Hashable:
    """Return the exclusion key for a target under a given lock namespace."""
    return (str(kind), int(target_id))


def conversation_key(user_a: int, user_b: int) -> Hashable:
    """Return the exclusion key shared by both directions of a conversation."""
    low, high = sorted((int(user_a), int(user_b)))
    return (READ_LOCK, low, high)


class ToggleEngine:
    """Serialized, idempotent membership transitions with event fan-out."""

    def __init__(
        self,
        broadcaster: EventBroadcaster | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self.broadcaster = broadcaster or get_broadcaster()
        self.locks = locks or KeyedLock()

    @contextmanager
    def exclusive(self, *keys: Hashable) -> Iterator[None]:
        """Hold the exclusion for one or more targets."""
        with self.locks.hold_many(keys):
            yield

    def toggle(self, db: Session, actor_id: int, target_id: int, kind: TargetKind) -> ToggleResult:
        """Flip the actor's membership in the target's set.

        Direction is inferred from the current membership: a member is
        removed, a non-member is added.

        Raises:
            NotFoundError: If the target or the actor does not exist.
        """
        return self._apply(db, actor_id, target_id, TargetKind(kind), desired=None)

    def set_membership(
        self,
        db: Session,
        actor_id: int,
        target_id: int,
        kind: TargetKind,
        member: bool,
    ) -> ToggleResult:
        """Drive the actor's membership to an explicit state.

        Repeating the same request is a no-op that still reports the current
        state and count, which makes it safe for clients to retry.
        """
        return self._apply(db, actor_id, target_id, TargetKind(kind), desired=bool(member))

    def members(self, db: Session, target_id: int, kind: TargetKind) -> list[User]:
        """Return existing users in a target's set, oldest membership first.

        Rows pointing at users that no longer exist are skipped.
        """
        spec = _SPECS[TargetKind(kind)]
        member = spec.member_model
        return list(
            db.query(User)
            .join(member, member.user_id == User.id)
            .filter(spec.target_column == target_id)
            .order_by(member.created_at, User.id)
            .all()
        )

    def count(self, db: Session, target_id: int, kind: TargetKind) -> int:
        """Return the cardinality of a target's set.

        Counts the same rows `members` returns, so memberships of users that
        no longer exist are not included.
        """
        spec = _SPECS[TargetKind(kind)]
        member = spec.member_model
        stmt = (
            select(func.count())
            .select_from(member)
            .join(User, User.id == member.user_id)
            .where(spec.target_column == target_id)
        )
        return int(db.execute(stmt).scalar_one())

    def is_member(self, db: Session, actor_id: int, target_id: int, kind: TargetKind) -> bool:
        spec = _SPECS[TargetKind(kind)]
        return EntityStore(db).exists(
            spec.member_model,
            spec.target_column == target_id,
            spec.member_model.user_id == actor_id,
        )

    def purge_target(self, db: Session, target_id: int, kind: TargetKind) -> None:
        """Delete a target together with its membership set.

        Runs under the same exclusion as toggles on that target, so no toggle
        can re-insert a membership row for a target that is being removed.
        Posts also lose their replies. Authorization is the caller's concern.

        Raises:
            NotFoundError: If the target does not exist.
        """
        kind = TargetKind(kind)
        spec = _SPECS[kind]
        store = EntityStore(db)
        keys = [lock_key(kind, target_id)]
        if kind is TargetKind.POST_LIKE:
            keys.append(lock_key(REPLY_LOCK, target_id))

        with self.exclusive(*keys):
            target = store.get(spec.target_model, target_id, for_update=True)
            if target is None:
                raise NotFoundError(f"{spec.label} not found")
            try:
                store.remove_by(spec.member_model, spec.target_column == target_id)
                if kind is TargetKind.POST_LIKE:
                    store.remove_by(Reply, Reply.post_id == target_id)
                store.delete(target)
                db.commit()
            except Exception:
                db.rollback()
                raise

            if kind is TargetKind.HOTSPOT_JOIN:
                self.broadcaster.publish(
                    EventType.HOTSPOT_DELETED, {"hotspotId": target_id}, Audience.everyone()
                )
            else:
                self.broadcaster.publish(
                    EventType.POST_DELETED, {"postId": target_id}, Audience.everyone()
                )
        logger.info("Deleted %s %s", spec.label.lower(), target_id)

    def remove_actor(self, db: Session, actor_id: int) -> int:
        """Withdraw the actor from every set it belongs to.

        Each target is handled under its own exclusion and publishes the usual
        update event, so watchers see counts drop before the user disappears.

        Returns:
            The number of memberships removed.
        """
        store = EntityStore(db)
        removed = 0
        for kind, spec in _SPECS.items():
            target_ids = [
                getattr(row, spec.target_column.key)
                for row in store.list_by(spec.member_model, spec.member_model.user_id == actor_id)
            ]
            for target_id in target_ids:
                result = self._apply(db, actor_id, target_id, kind, desired=False)
                removed += int(result.changed)
        return removed

    def mark_read(self, db: Session, actor_id: int, partner_id: int) -> int:
        """Mark every unread message from `partner_id` to `actor_id` as read.

        Returns:
            The number of messages that transitioned; 0 when nothing was unread.

        Raises:
            NotFoundError: If the partner does not exist.
        """
        store = EntityStore(db)
        if store.get(User, partner_id) is None:
            raise NotFoundError("User not found")

        with self.exclusive(conversation_key(actor_id, partner_id)):
            try:
                result = db.execute(
                    update(Message)
                    .where(
                        Message.recipient_id == actor_id,
                        Message.sender_id == partner_id,
                        Message.is_read.is_(False),
                    )
                    .values(is_read=True, read_at=utcnow())
                    .execution_options(synchronize_session="fetch")
                )
                transitioned = int(result.rowcount or 0)
                db.commit()
            except Exception:
                db.rollback()
                raise

            if transitioned:
                self.broadcaster.publish(
                    EventType.MESSAGES_READ,
                    {"readBy": actor_id, "conversationWith": actor_id},
                    Audience.user(partner_id),
                )
        logger.debug("User %s read %d message(s) from %s", actor_id, transitioned, partner_id)
        return transitioned

    def _apply(
        self,
        db: Session,
        actor_id: int,
        target_id: int,
        kind: TargetKind,
        desired: bool | None,
    ) -> ToggleResult:
        spec = _SPECS[kind]
        store = EntityStore(db)

        with self.exclusive(lock_key(kind, target_id)):
            target = store.get(spec.target_model, target_id, for_update=True)
            if target is None:
                raise NotFoundError(f"{spec.label} not found")
            if store.get(User, actor_id) is None:
                raise NotFoundError("User not found")

            try:
                was_member = self.is_member(db, actor_id, target_id, kind)
                new_state = (not was_member) if desired is None else desired
                changed = new_state != was_member
                if changed and new_state:
                    row = spec.member_model(user_id=actor_id)
                    setattr(row, spec.target_column.key, target_id)
                    store.put(row)
                elif changed:
                    store.remove_by(
                        spec.member_model,
                        spec.target_column == target_id,
                        spec.member_model.user_id == actor_id,
                    )
                count = self.count(db, target_id, kind)
                members = self.members(db, target_id, kind)
                db.commit()
            except Exception:
                db.rollback()
                raise

            result = ToggleResult(
                kind=kind,
                target_id=target_id,
                actor_id=actor_id,
                new_state=new_state,
                changed=changed,
                count=count,
                members=members,
            )
            if changed:
                self._publish(result)

        logger.debug(
            "%s %s: actor=%s target=%s count=%d",
            kind,
            result.action if changed else "unchanged",
            actor_id,
            target_id,
            count,
        )
        return result

    def _publish(self, result: ToggleResult) -> None:
        if result.kind is TargetKind.HOTSPOT_JOIN:
            payload: dict[str, Any] = {
                "hotspotId": result.target_id,
                "joinedUsers": [
                    UserSummary.model_validate(user).model_dump(mode="json", by_alias=True)
                    for user in result.members
                ],
                "joinedCount": result.count,
                "userId": result.actor_id,
                "action": result.action,
            }
            self.broadcaster.publish(EventType.HOTSPOT_JOIN_UPDATE, payload, Audience.everyone())
        else:
            payload = {
                "postId": result.target_id,
                "likeCount": result.count,
                "isLiked": result.new_state,
                "userId": result.actor_id,
            }
            self.broadcaster.publish(EventType.POST_LIKE_UPDATE, payload, Audience.everyone())


_engine: ToggleEngine | None = None


def get_toggle_engine() -> ToggleEngine:
    """Return the process-wide toggle engine."""
    global _engine
    if _engine is None:
        _engine = ToggleEngine()
    return _engine
