# mypy: ignore-errors
"""Concurrent toggles against a file-backed database."""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from flare_stage.db.session import Base
from flare_stage.models import Hotspot, HotspotMember, Post, PostLike, User
from flare_stage.services.broadcaster import EventBroadcaster, Subscriber
from flare_stage.services.toggle import TargetKind, ToggleEngine

WORKERS = 8


class Collector(Subscriber):
    def __init__(self) -> None:
        super().__init__(0, "collector")
        self.frames = []

    def deliver(self, frame) -> None:
        self.frames.append(frame)


@pytest.fixture()
def file_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def seeded(file_engine):
    """Persist WORKERS users, one hotspot and one post."""
    with Session(file_engine) as db:
        users = [
            User(username=f"racer{n}", password_hash="x", profile_picture="")
            for n in range(WORKERS)
        ]
        db.add_all(users)
        db.flush()
        hotspot = Hotspot(
            author_id=users[0].id,
            title="Race",
            description="",
            latitude=0.0,
            longitude=0.0,
        )
        post = Post(author_id=users[0].id, content="race", images=[])
        db.add_all([hotspot, post])
        db.commit()
        return [user.id for user in users], hotspot.id, post.id


@pytest.fixture()
def engine_and_events():
    broadcaster = EventBroadcaster()
    collector = Collector()
    broadcaster.register(collector)
    return ToggleEngine(broadcaster=broadcaster), collector


def _run(file_engine, calls):
    barrier = Barrier(len(calls))

    def call(fn):
        barrier.wait()
        with Session(file_engine) as db:
            return fn(db)

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(call, calls))


def _count(file_engine, model, column, target_id):
    with Session(file_engine) as db:
        return db.scalar(select(func.count()).select_from(model).where(column == target_id))


def test_parallel_explicit_joins_insert_once(file_engine, seeded, engine_and_events) -> None:
    user_ids, hotspot_id, _ = seeded
    toggle_engine, collector = engine_and_events
    actor = user_ids[1]

    results = _run(
        file_engine,
        [
            lambda db: toggle_engine.set_membership(
                db, actor, hotspot_id, TargetKind.HOTSPOT_JOIN, True
            )
            for _ in range(WORKERS)
        ],
    )

    assert sum(result.changed for result in results) == 1
    assert all(result.count == 1 for result in results)
    assert _count(file_engine, HotspotMember, HotspotMember.hotspot_id, hotspot_id) == 1
    assert len(collector.frames) == 1


def test_parallel_bare_toggles_by_one_actor(file_engine, seeded, engine_and_events) -> None:
    """N flips by the same actor leave the membership at N mod 2."""
    user_ids, _, post_id = seeded
    toggle_engine, collector = engine_and_events
    actor = user_ids[2]
    flips = WORKERS + 1

    results = _run(
        file_engine,
        [
            lambda db: toggle_engine.toggle(db, actor, post_id, TargetKind.POST_LIKE)
            for _ in range(flips)
        ],
    )

    assert all(result.changed for result in results)
    assert _count(file_engine, PostLike, PostLike.post_id, post_id) == flips % 2
    counts = [frame["data"]["likeCount"] for frame in collector.frames]
    assert counts == [1, 0] * (flips // 2) + [1] * (flips % 2)


def test_parallel_likes_by_distinct_actors(file_engine, seeded, engine_and_events) -> None:
    user_ids, _, post_id = seeded
    toggle_engine, collector = engine_and_events

    results = _run(
        file_engine,
        [
            (lambda db, actor=actor: toggle_engine.toggle(db, actor, post_id, TargetKind.POST_LIKE))
            for actor in user_ids
        ],
    )

    assert sorted(result.count for result in results) == list(range(1, WORKERS + 1))
    assert _count(file_engine, PostLike, PostLike.post_id, post_id) == WORKERS
    counts = [frame["data"]["likeCount"] for frame in collector.frames]
    assert counts == list(range(1, WORKERS + 1))


def test_purge_races_with_joins(file_engine, seeded, engine_and_events) -> None:
    """No membership row survives a concurrent delete of its hotspot."""
    user_ids, hotspot_id, _ = seeded
    toggle_engine, _ = engine_and_events

    def join(actor):
        def call(db):
            try:
                return toggle_engine.set_membership(
                    db, actor, hotspot_id, TargetKind.HOTSPOT_JOIN, True
                )
            except Exception as err:  # noqa: BLE001
                return err

        return call

    calls = [join(actor) for actor in user_ids[1:]]
    calls.append(lambda db: toggle_engine.purge_target(db, hotspot_id, TargetKind.HOTSPOT_JOIN))
    _run(file_engine, calls)

    assert _count(file_engine, HotspotMember, HotspotMember.hotspot_id, hotspot_id) == 0
    with Session(file_engine) as db:
        assert db.get(Hotspot, hotspot_id) is None


