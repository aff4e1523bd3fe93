"""Demo accounts for local development."""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from flare_stage.core import security
from flare_stage.core.settings import settings
from flare_stage.models import User
from flare_stage.repositories.store import EntityStore

logger = logging.getLogger(__name__)

# (username, bio, is_admin)
DEMO_USERS: tuple[tuple[str, str, bool], ...] = (
    ("demo", "Demo user", True),
    ("testuser", "Test user for development", False),
    ("admin", "Administrator account", True),
)


def seed_demo_users(db: Session, password: str | None = None) -> list[str]:
    """Create any missing demo accounts and return the usernames created."""
    store = EntityStore(db)
    password_hash = security.hash_password(password or settings.demo_password)
    created = []
    for username, bio, is_admin in DEMO_USERS:
        if store.exists(User, User.username == username):
            continue
        store.put(
            User(
                username=username,
                password_hash=password_hash,
                profile_picture=settings.avatar_for(username),
                bio=bio,
                is_admin=is_admin,
            )
        )
        created.append(username)
    db.commit()
    if created:
        logger.info("Created demo users: %s", ", ".join(created))
    return created
