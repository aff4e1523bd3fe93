# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from contextlib import AbstractContextManager, nullcontext
from datetime import datetime, timedelta
from itertools import count
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from flare_stage.api.v1.dependencies import get_session_factory
from flare_stage.core.security import create_access_token, hash_password
from flare_stage.core.settings import Settings
from flare_stage.db.session import Base
from flare_stage.db.session import get_db as app_get_session
from flare_stage.db.time import utcnow
from flare_stage.main import app as fastapi_app
from flare_stage.models import Hotspot, Message, Post, User
from flare_stage.services.broadcaster import EventBroadcaster, Frame, Subscriber, get_broadcaster
from flare_stage.services.toggle import ToggleEngine

TEST_DB_URL = "sqlite://"
TEST_PASSWORD = "password123"

_USER_COUNTER = count(1)
_TEST_SETTINGS_INSTANCE = Settings()


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    def _session_factory_override() -> Callable[[], AbstractContextManager[Session]]:
        return lambda: nullcontext(db_session)

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[get_session_factory] = _session_factory_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)
        app.dependency_overrides.pop(get_session_factory, None)


@pytest.fixture(autouse=True)
def reset_broadcaster() -> Iterator[None]:
    """Start and finish every test with no live subscribers."""
    get_broadcaster().reset()
    yield
    get_broadcaster().reset()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Provide a Settings instance aligned with runtime configuration."""
    return _TEST_SETTINGS_INSTANCE


class RecordingSubscriber(Subscriber):
    """Subscriber that keeps every delivered frame in memory."""

    def __init__(self, user_id: int, username: str = "listener") -> None:
        super().__init__(user_id, username)
        self.frames: list[Frame] = []
        self.closed = False

    def deliver(self, frame: Frame) -> None:
        self.frames.append(frame)

    def close(self) -> None:
        self.closed = True

    def events(self, name: str | None = None) -> list[Frame]:
        return [frame for frame in self.frames if name is None or frame["event"] == name]


@pytest.fixture()
def listen() -> Callable[..., RecordingSubscriber]:
    """Register recording subscribers on the shared broadcaster."""

    def _listen(user: User, broadcaster: EventBroadcaster | None = None) -> RecordingSubscriber:
        subscriber = RecordingSubscriber(user.id, user.username)
        (broadcaster or get_broadcaster()).register(subscriber)
        return subscriber

    return _listen


@pytest.fixture()
def toggle_engine() -> ToggleEngine:
    """Engine wired to the shared broadcaster, with its own lock registry."""
    return ToggleEngine(broadcaster=get_broadcaster())


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    """Return a factory that persists users with the shared test password."""
    password_hash = hash_password(TEST_PASSWORD)

    def _make_user(username: str | None = None, *, is_admin: bool = False, **fields: Any) -> User:
        name = username or f"user{next(_USER_COUNTER)}"
        user = User(
            username=name,
            password_hash=password_hash,
            profile_picture=_TEST_SETTINGS_INSTANCE.avatar_for(name),
            bio=fields.pop("bio", ""),
            is_admin=is_admin,
            **fields,
        )
        db_session.add(user)
        db_session.flush()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def test_user(make_user: Callable[..., User]) -> User:
    """Create and return the primary test user."""
    return make_user("alice")


@pytest.fixture()
def other_user(make_user: Callable[..., User]) -> User:
    """Create and return a second test user."""
    return make_user("bob")


@pytest.fixture()
def admin_user(make_user: Callable[..., User]) -> User:
    """Create and return an administrator."""
    return make_user("root", is_admin=True)


def bearer(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def headers_for() -> Callable[[User], dict[str, str]]:
    """Return a helper building authorization headers for any user."""
    return bearer


@pytest.fixture()
def auth_token(test_user: User) -> dict[str, str]:
    """Return authorization headers for the primary test user."""
    return bearer(test_user)


@pytest.fixture()
def other_auth_token(other_user: User) -> dict[str, str]:
    """Return authorization headers for the secondary test user."""
    return bearer(other_user)


@pytest.fixture()
def admin_auth_token(admin_user: User) -> dict[str, str]:
    """Return authorization headers for the administrator."""
    return bearer(admin_user)


@pytest.fixture()
def hotspot(db_session: Session, test_user: User) -> Hotspot:
    """Create a hotspot authored by the primary test user."""
    hotspot = Hotspot(
        author_id=test_user.id,
        title="Rooftop meetup",
        description="Sunset on the roof",
        latitude=40.7128,
        longitude=-74.006,
    )
    db_session.add(hotspot)
    db_session.flush()
    db_session.refresh(hotspot)
    return hotspot


@pytest.fixture()
def test_post(db_session: Session, test_user: User) -> Post:
    """Create a baseline post authored by the primary test user."""
    post = Post(author_id=test_user.id, content="Test post content", images=[])
    db_session.add(post)
    db_session.flush()
    db_session.refresh(post)
    return post


@pytest.fixture()
def make_message(db_session: Session) -> Callable[..., Message]:
    """Return a factory for messages with controllable timestamps."""
    base = utcnow() - timedelta(hours=1)
    offsets = count()

    def _make_message(
        sender: User,
        recipient: User | None,
        content: str = "hello",
        *,
        created_at: datetime | None = None,
        is_read: bool = False,
    ) -> Message:
        message = Message(
            sender_id=sender.id,
            recipient_id=recipient.id if recipient is not None else None,
            content=content,
            is_read=is_read,
            created_at=created_at or base + timedelta(seconds=next(offsets)),
        )
        db_session.add(message)
        db_session.flush()
        db_session.refresh(message)
        return message

    return _make_message
