"""Hotspot endpoints for the Flare API."""

from __future__ import annotations

from fastapi import APIRouter, status

from flare_stage.schemas.common import StatusResponse
from flare_stage.schemas.hotspot import (
    HotspotCreate,
    HotspotCreated,
    HotspotList,
    JoinResult,
    MembershipIntent,
)
from flare_stage.services import hotspot_service
from flare_stage.services.toggle import TargetKind

from ..dependencies import CurrentUserDep, SessionDep, ToggleEngineDep

router = APIRouter(prefix="/hotspots", tags=["hotspots"])


@router.get("", response_model=HotspotList)
async def list_hotspots(current_user: CurrentUserDep, db: SessionDep) -> HotspotList:
    """List all hotspots, newest first."""
    return HotspotList(hotspots=hotspot_service.list_hotspots(db, current_user.id))


@router.post("", response_model=HotspotCreated, status_code=status.HTTP_201_CREATED)
def create_hotspot(
    body: HotspotCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> HotspotCreated:
    """Create a hotspot at the given coordinates."""
    hotspot = hotspot_service.create_hotspot(db, engine, current_user, body)
    return HotspotCreated(message="Hotspot created successfully", hotspot=hotspot)


@router.post("/{hotspot_id}/join", response_model=JoinResult)
def toggle_join(
    hotspot_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> JoinResult:
    """Join the hotspot, or leave it if already joined."""
    result = engine.toggle(db, current_user.id, hotspot_id, TargetKind.HOTSPOT_JOIN)
    return hotspot_service.to_join_result(result)


@router.put("/{hotspot_id}/membership", response_model=JoinResult)
def set_membership(
    hotspot_id: int,
    body: MembershipIntent,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> JoinResult:
    """Join or leave explicitly; repeating the request changes nothing."""
    result = engine.set_membership(
        db, current_user.id, hotspot_id, TargetKind.HOTSPOT_JOIN, body.joined
    )
    return hotspot_service.to_join_result(result)


@router.delete("/{hotspot_id}/membership", response_model=JoinResult)
def leave_hotspot(
    hotspot_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> JoinResult:
    """Leave the hotspot if joined."""
    result = engine.set_membership(db, current_user.id, hotspot_id, TargetKind.HOTSPOT_JOIN, False)
    return hotspot_service.to_join_result(result)


@router.delete("/{hotspot_id}", response_model=StatusResponse)
def delete_hotspot(
    hotspot_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> StatusResponse:
    """Delete a hotspot (author or admin only)."""
    hotspot_service.delete_hotspot(db, engine, current_user, hotspot_id)
    return StatusResponse(message="Hotspot deleted successfully")
