"""Shared API dependencies for authentication and common functionality."""

from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from flare_stage.core.security import TokenError, decode_access_token
from flare_stage.db.session import SessionLocal, get_db
from flare_stage.models import User
from flare_stage.services.broadcaster import EventBroadcaster, get_broadcaster
from flare_stage.services.toggle import ToggleEngine, get_toggle_engine

# HTTP Bearer scheme; a missing header is reported as 401 below rather than 403
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]

SessionFactory = Callable[[], AbstractContextManager[Session]]


def get_session_factory() -> SessionFactory:
    """Return the factory for short-lived sessions opened outside a request."""
    return SessionLocal


SessionFactoryDep = Annotated[SessionFactory, Depends(get_session_factory)]


def resolve_user(db: Session, token: str) -> User:
    """Return the user a bearer token belongs to.

    Raises:
        HTTPException: 403 if the token is invalid or expired, 401 if its
            user no longer exists.
    """
    try:
        user_id = decode_access_token(token)
    except TokenError as err:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired token",
        ) from err

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: SessionDep,
) -> User:
    """Get the current authenticated user from the bearer token.

    Args:
        credentials: HTTP Bearer token credentials, if supplied
        db: Database session

    Returns:
        User object for the authenticated user

    Raises:
        HTTPException: If the token is missing, invalid, or its user is gone
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return resolve_user(db, credentials.credentials)


# Type alias for current user dependency
CurrentUserDep = Annotated[User, Depends(get_current_user)]


def get_admin_user(current_user: CurrentUserDep) -> User:
    """Require the current user to be an administrator."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


AdminUserDep = Annotated[User, Depends(get_admin_user)]
ToggleEngineDep = Annotated[ToggleEngine, Depends(get_toggle_engine)]
BroadcasterDep = Annotated[EventBroadcaster, Depends(get_broadcaster)]
