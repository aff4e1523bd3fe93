# tests/v1/test_dependencies.py
"""Tests for API dependencies module."""

import pytest
from fastapi import HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials

from flare_stage.api.v1.dependencies import get_admin_user, get_current_user, resolve_user
from flare_stage.core.security import create_access_token


class TestResolveUser:
    """Test bearer-token resolution."""

    def test_valid_token(self, db_session, test_user):
        """A token for an existing user resolves to that user."""
        user = resolve_user(db_session, create_access_token(test_user.id))
        assert user.id == test_user.id

    def test_invalid_token(self, db_session):
        """A malformed token is reported as forbidden."""
        with pytest.raises(HTTPException) as exc_info:
            resolve_user(db_session, "garbage")
        assert exc_info.value.status_code == status.HTTP_403_FORBIDDEN

    def test_unknown_user(self, db_session):
        """A valid token for a missing user is reported as unauthorized."""
        with pytest.raises(HTTPException) as exc_info:
            resolve_user(db_session, create_access_token(424242))
        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED


class TestGetCurrentUser:
    """Test the current-user dependency."""

    def test_missing_credentials(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(None, db_session)
        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    def test_bearer_credentials(self, db_session, test_user):
        credentials = HTTPAuthorizationCredentials(
            scheme="Bearer",
            credentials=create_access_token(test_user.id),
        )
        assert get_current_user(credentials, db_session).id == test_user.id


class TestGetAdminUser:
    """Test the administrator gate."""

    def test_admin_passes(self, admin_user):
        assert get_admin_user(admin_user) is admin_user

    def test_regular_user_rejected(self, test_user):
        with pytest.raises(HTTPException) as exc_info:
            get_admin_user(test_user)
        assert exc_info.value.status_code == status.HTTP_403_FORBIDDEN
