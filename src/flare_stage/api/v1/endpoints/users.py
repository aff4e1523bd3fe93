"""User endpoints for the Flare API."""

from __future__ import annotations

from fastapi import APIRouter

from flare_stage.schemas.common import StatusResponse
from flare_stage.schemas.user import (
    AdminUserUpdate,
    ProfileUpdateRequest,
    UserList,
    UserResponse,
    UserStats,
    UserUpdated,
)
from flare_stage.services import user_service

from ..dependencies import AdminUserDep, CurrentUserDep, SessionDep, ToggleEngineDep

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=UserList)
async def list_users(_current_user: CurrentUserDep, db: SessionDep) -> UserList:
    """List every user, newest account first."""
    users = user_service.get_users(db)
    return UserList(users=[user_service.to_user_response(user) for user in users])


@router.get("/stats", response_model=UserStats)
async def get_stats(admin: AdminUserDep, db: SessionDep) -> UserStats:
    """Return account counts (admin only)."""
    return user_service.user_stats(db, admin)


@router.put("/profile", response_model=UserUpdated)
def update_profile(
    body: ProfileUpdateRequest,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> UserUpdated:
    """Update the caller's avatar or bio."""
    user = user_service.update_profile(db, engine, current_user, body)
    return UserUpdated(
        message="Profile updated successfully",
        user=user_service.to_user_response(user),
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, _current_user: CurrentUserDep, db: SessionDep) -> UserResponse:
    """Return a user's public profile."""
    return user_service.to_user_response(user_service.get_user(db, user_id))


@router.put("/{user_id}", response_model=UserUpdated)
def admin_update_user(
    user_id: int,
    body: AdminUserUpdate,
    admin: AdminUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> UserUpdated:
    """Edit any account's username, bio or admin flag (admin only)."""
    user = user_service.admin_update_user(db, engine, admin, user_id, body)
    return UserUpdated(
        message="User updated successfully",
        user=user_service.to_user_response(user),
    )


@router.delete("/{user_id}", response_model=StatusResponse)
def delete_user(
    user_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> StatusResponse:
    """Delete an account (self, or admin for non-admin accounts)."""
    user_service.delete_user(db, engine, current_user, user_id)
    return StatusResponse(message="User deleted successfully")
