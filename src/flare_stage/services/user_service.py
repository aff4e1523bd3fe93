"""Account, profile and presence operations."""
from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flare_stage.core import security
from flare_stage.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from flare_stage.core.settings import settings
from flare_stage.db.time import utcnow
from flare_stage.models import Hotspot, Message, Post, Reply, User
from flare_stage.repositories.store import EntityStore
from flare_stage.schemas.user import (
    AdminUserUpdate,
    ProfileUpdateRequest,
    RegisterRequest,
    UserResponse,
    UserStats,
)
from flare_stage.services.broadcaster import Audience, EventType
from flare_stage.services.toggle import REPLY_LOCK, TargetKind, ToggleEngine, lock_key

__all__ = [
    "get_user",
    "get_users",
    "register_user",
    "authenticate",
    "set_presence",
    "update_profile",
    "admin_update_user",
    "user_stats",
    "delete_user",
    "to_user_response",
]

logger = logging.getLogger(__name__)


def to_user_response(user: User) -> UserResponse:
    """Convert a User ORM instance to an API schema."""
    return UserResponse.model_validate(user)


def get_user(db: Session, user_id: int) -> User:
    """Return a single user by primary key.

    Raises:
        NotFoundError: If no such user exists.
    """
    user = EntityStore(db).get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def get_users(db: Session) -> list[User]:
    """Return every user, newest account first."""
    return EntityStore(db).list_by(User, order_by=(User.created_at.desc(), User.id.desc()))


def _username_taken(db: Session, username: str, exclude_id: int | None = None) -> bool:
    criteria = [User.username == username]
    if exclude_id is not None:
        criteria.append(User.id != exclude_id)
    return EntityStore(db).exists(User, *criteria)


def register_user(db: Session, data: RegisterRequest) -> User:
    """Create an account and mark it online.

    Raises:
        ConflictError: If the (case-insensitive) username is taken.
    """
    if _username_taken(db, data.username):
        raise ConflictError("Username already exists")

    user = User(
        username=data.username,
        password_hash=security.hash_password(data.password),
        profile_picture=settings.avatar_for(data.username),
        bio=data.bio,
        is_online=True,
        last_seen=utcnow(),
    )
    try:
        EntityStore(db).put(user)
        db.commit()
    except IntegrityError as err:
        db.rollback()
        raise ConflictError("Username already exists") from err
    db.refresh(user)
    logger.info("Registered user %s (%s)", user.id, user.username)
    return user


def authenticate(db: Session, username: str, password: str) -> User:
    """Return the user matching the credentials and mark it online.

    Unknown usernames and wrong passwords are indistinguishable to the caller.

    Raises:
        ValidationError: If the credentials do not match.
    """
    user = db.execute(select(User).where(User.username == username)).scalars().first()
    if user is None or not security.verify_password(password, user.password_hash):
        raise ValidationError("Invalid credentials")
    set_presence(db, user, online=True)
    return user


def set_presence(db: Session, user: User, *, online: bool) -> User:
    """Persist a user's online flag and refresh `last_seen`."""
    user.is_online = online
    user.last_seen = utcnow()
    db.add(user)
    db.commit()
    return user


def update_profile(
    db: Session,
    engine: ToggleEngine,
    user: User,
    changes: ProfileUpdateRequest,
) -> User:
    """Apply a user's own profile changes and announce them."""
    for key, value in changes.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(user, key, value)
    db.add(user)
    db.commit()
    db.refresh(user)
    _announce_profile(engine, user)
    return user


def admin_update_user(
    db: Session,
    engine: ToggleEngine,
    actor: User,
    user_id: int,
    changes: AdminUserUpdate,
) -> User:
    """Apply administrator edits to any account.

    Raises:
        ForbiddenError: If the actor is not an administrator.
        NotFoundError: If the account does not exist.
        ConflictError: If the new username is taken.
    """
    if not actor.is_admin:
        raise ForbiddenError("Admin access required")
    user = get_user(db, user_id)
    update = changes.model_dump(exclude_unset=True, exclude_none=True)
    if "username" in update and _username_taken(db, update["username"], exclude_id=user.id):
        raise ConflictError("Username already exists")
    for key, value in update.items():
        setattr(user, key, value)
    try:
        db.add(user)
        db.commit()
    except IntegrityError as err:
        db.rollback()
        raise ConflictError("Username already exists") from err
    db.refresh(user)
    logger.info("Admin %s updated user %s: %s", actor.id, user.id, sorted(update))
    _announce_profile(engine, user)
    return user


def user_stats(db: Session, actor: User) -> UserStats:
    """Return aggregate account counts.

    Raises:
        ForbiddenError: If the actor is not an administrator.
    """
    if not actor.is_admin:
        raise ForbiddenError("Admin access required")
    store = EntityStore(db)
    since = utcnow() - timedelta(hours=24)
    return UserStats(
        total_users=store.count_by(User),
        total_admins=store.count_by(User, User.is_admin.is_(True)),
        online_users=store.count_by(User, User.is_online.is_(True)),
        recent_signups=store.count_by(User, User.created_at >= since),
    )


def delete_user(db: Session, engine: ToggleEngine, actor: User, user_id: int) -> None:
    """Delete an account and everything it authored.

    Users may delete themselves; administrators may delete non-admin
    accounts. Memberships are withdrawn through the toggle engine so every
    affected hotspot and post publishes its updated count.

    Raises:
        NotFoundError: If the account does not exist.
        ForbiddenError: If the actor may not delete the account.
    """
    actor_id = actor.id
    target = get_user(db, user_id)
    if actor_id != target.id:
        if not actor.is_admin:
            raise ForbiddenError("Not authorized to delete this user")
        if target.is_admin:
            raise ForbiddenError("Cannot delete another admin")

    store = EntityStore(db)
    engine.remove_actor(db, target.id)

    for post in store.list_by(Post, Post.author_id == target.id):
        engine.purge_target(db, post.id, TargetKind.POST_LIKE)
    for hotspot in store.list_by(Hotspot, Hotspot.author_id == target.id):
        engine.purge_target(db, hotspot.id, TargetKind.HOTSPOT_JOIN)

    reply_post_ids = {
        reply.post_id for reply in store.list_by(Reply, Reply.author_id == target.id)
    }
    for post_id in sorted(reply_post_ids):
        with engine.exclusive(lock_key(REPLY_LOCK, post_id)):
            store.remove_by(Reply, Reply.post_id == post_id, Reply.author_id == target.id)
            db.commit()

    store.remove_by(Message, (Message.sender_id == target.id) | (Message.recipient_id == target.id))
    store.delete(target)
    db.commit()

    engine.broadcaster.publish(EventType.USER_DELETED, {"userId": user_id}, Audience.everyone())
    logger.info("User %s deleted by %s", user_id, actor_id)


def _announce_profile(engine: ToggleEngine, user: User) -> None:
    engine.broadcaster.publish(
        EventType.USER_PROFILE_UPDATE,
        {
            "userId": user.id,
            "username": user.username,
            "profilePicture": user.profile_picture,
            "bio": user.bio,
        },
        Audience.everyone(),
    )
