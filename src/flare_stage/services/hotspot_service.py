"""Service-level helpers for hotspots."""
from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.orm import Session

from flare_stage.core.errors import ForbiddenError, NotFoundError
from flare_stage.models import Hotspot, HotspotMember, User
from flare_stage.repositories.store import EntityStore
from flare_stage.schemas.hotspot import Coordinates, HotspotCreate, HotspotResponse, JoinResult
from flare_stage.schemas.user import UserSummary
from flare_stage.services.broadcaster import Audience, EventType
from flare_stage.services.toggle import TargetKind, ToggleEngine, ToggleResult

logger = logging.getLogger(__name__)


def get_hotspot(db: Session, hotspot_id: int) -> Hotspot:
    """Return a hotspot by id.

    Raises:
        NotFoundError: If the hotspot does not exist.
    """
    hotspot = EntityStore(db).get(Hotspot, hotspot_id)
    if hotspot is None:
        raise NotFoundError("Hotspot not found")
    return hotspot


def to_hotspot_responses(
    db: Session,
    hotspots: list[Hotspot],
    viewer_id: int,
) -> list[HotspotResponse]:
    """Serialize hotspots with their joined users.

    Memberships of deleted users and hotspots of deleted authors are skipped.
    """
    if not hotspots:
        return []
    hotspot_ids = [hotspot.id for hotspot in hotspots]

    joined: dict[int, list[UserSummary]] = defaultdict(list)
    rows = db.execute(
        select(HotspotMember.hotspot_id, User)
        .join(User, User.id == HotspotMember.user_id)
        .where(HotspotMember.hotspot_id.in_(hotspot_ids))
        .order_by(HotspotMember.created_at, HotspotMember.user_id)
    )
    for hotspot_id, user in rows:
        joined[hotspot_id].append(UserSummary.model_validate(user))

    author_ids = {hotspot.author_id for hotspot in hotspots}
    authors = {
        user.id: user
        for user in db.execute(select(User).where(User.id.in_(author_ids))).scalars()
    }

    result = []
    for hotspot in hotspots:
        author = authors.get(hotspot.author_id)
        if author is None:
            continue
        members = joined.get(hotspot.id, [])
        result.append(
            HotspotResponse(
                id=hotspot.id,
                title=hotspot.title,
                description=hotspot.description,
                author=UserSummary.model_validate(author),
                coordinates=Coordinates(latitude=hotspot.latitude, longitude=hotspot.longitude),
                joined_users=members,
                joined_count=len(members),
                is_joined_by_user=any(member.id == viewer_id for member in members),
                created_at=hotspot.created_at,
            )
        )
    return result


def list_hotspots(db: Session, viewer_id: int) -> list[HotspotResponse]:
    """Return every hotspot, newest first."""
    hotspots = EntityStore(db).list_by(
        Hotspot,
        order_by=(Hotspot.created_at.desc(), Hotspot.id.desc()),
    )
    return to_hotspot_responses(db, hotspots, viewer_id)


def create_hotspot(
    db: Session,
    engine: ToggleEngine,
    author: User,
    data: HotspotCreate,
) -> HotspotResponse:
    """Persist a hotspot and announce it to everyone."""
    hotspot = Hotspot(
        author_id=author.id,
        title=data.title,
        description=data.description,
        latitude=data.coordinates.latitude,
        longitude=data.coordinates.longitude,
    )
    EntityStore(db).put(hotspot)
    db.commit()
    db.refresh(hotspot)

    (response,) = to_hotspot_responses(db, [hotspot], author.id)
    engine.broadcaster.publish(
        EventType.NEW_HOTSPOT,
        response.model_dump(mode="json", by_alias=True),
        Audience.everyone(),
    )
    logger.info("User %s created hotspot %s", author.id, hotspot.id)
    return response


def to_join_result(result: ToggleResult) -> JoinResult:
    """Describe a membership transition for the API."""
    if not result.changed:
        message = "Already joined hotspot" if result.new_state else "Not joined to hotspot"
    else:
        message = "Joined hotspot" if result.new_state else "Left hotspot"
    return JoinResult(
        message=message,
        joined_count=result.count,
        is_joined=result.new_state,
        joined_users=[UserSummary.model_validate(user) for user in result.members],
    )


def delete_hotspot(db: Session, engine: ToggleEngine, actor: User, hotspot_id: int) -> None:
    """Delete a hotspot with its memberships.

    Raises:
        NotFoundError: If the hotspot does not exist.
        ForbiddenError: If the actor is neither the author nor an admin.
    """
    hotspot = get_hotspot(db, hotspot_id)
    if hotspot.author_id != actor.id and not actor.is_admin:
        raise ForbiddenError("Not authorized to delete this hotspot")
    engine.purge_target(db, hotspot_id, TargetKind.HOTSPOT_JOIN)
