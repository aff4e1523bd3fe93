"""Authentication endpoints for the Flare API."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from flare_stage.core.security import create_access_token
from flare_stage.core.settings import settings
from flare_stage.db.time import utcnow
from flare_stage.schemas.common import StatusResponse
from flare_stage.schemas.user import (
    AccessRequest,
    AccessResponse,
    AuthResponse,
    LoginRequest,
    RegisterRequest,
)
from flare_stage.services import user_service
from flare_stage.services.broadcaster import Audience, EventType

from ..dependencies import BroadcasterDep, CurrentUserDep, SessionDep

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/verify-access", response_model=AccessResponse)
async def verify_access(body: AccessRequest) -> AccessResponse:
    """Check the shared access-gate password shown before sign-up."""
    if body.password != settings.gatekeeper_password:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect password",
        )
    return AccessResponse(success=True, message="Access granted")


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, db: SessionDep) -> AuthResponse:
    """Create an account and return a bearer token for it."""
    user = user_service.register_user(db, body)
    return AuthResponse(
        message="User created successfully",
        token=create_access_token(user.id),
        user=user_service.to_user_response(user),
    )


@router.post("/login", response_model=AuthResponse)
def login(body: LoginRequest, db: SessionDep) -> AuthResponse:
    """Exchange a username and password for a bearer token."""
    user = user_service.authenticate(db, body.username, body.password)
    return AuthResponse(
        message="Login successful",
        token=create_access_token(user.id),
        user=user_service.to_user_response(user),
    )


@router.post("/logout", response_model=StatusResponse)
def logout(
    current_user: CurrentUserDep,
    db: SessionDep,
    broadcaster: BroadcasterDep,
) -> StatusResponse:
    """Mark the caller offline unless a socket connection is still open."""
    if not broadcaster.is_connected(current_user.id):
        user_service.set_presence(db, current_user, online=False)
        broadcaster.publish(
            EventType.USER_OFFLINE,
            {
                "userId": current_user.id,
                "username": current_user.username,
                "isOnline": False,
                "lastSeen": utcnow().isoformat(),
            },
            Audience.everyone(),
        )
    return StatusResponse(message="Logged out successfully")
