"""User-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .common import CamelModel


def _normalize_username(value: str) -> str:
    return value.strip().lower()


class UserSummary(CamelModel):
    """Minimal author/participant reference embedded in other payloads."""

    id: int
    username: str
    profile_picture: str


class UserResponse(CamelModel):
    """Public profile returned by the API."""

    id: int
    username: str
    profile_picture: str
    bio: str
    is_admin: bool
    is_online: bool
    last_seen: datetime | None = None
    join_date: datetime = Field(validation_alias="created_at")


class AccessRequest(BaseModel):
    """Access-gate password submitted before registration or login."""

    password: str = Field(..., min_length=1)


class AccessResponse(BaseModel):
    """Outcome of an access-gate check."""

    success: bool
    message: str


class RegisterRequest(CamelModel):
    """Schema for account registration."""

    username: str = Field(..., min_length=3, max_length=20)
    password: str = Field(..., min_length=6, max_length=128)
    bio: str = Field("", max_length=500)

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, value: object) -> object:
        return _normalize_username(value) if isinstance(value, str) else value


class LoginRequest(CamelModel):
    """Schema for login submissions."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, value: object) -> object:
        return _normalize_username(value) if isinstance(value, str) else value


class AuthResponse(CamelModel):
    """Response returned after successful registration or login."""

    message: str
    token: str = Field(..., description="JWT access token")
    user: UserResponse


class ProfileUpdateRequest(CamelModel):
    """Fields a user may change on their own profile."""

    profile_picture: str | None = Field(None, min_length=1, max_length=2048)
    bio: str | None = Field(None, max_length=500)


class AdminUserUpdate(CamelModel):
    """Fields an administrator may change on any account."""

    username: str | None = Field(None, min_length=3, max_length=20)
    bio: str | None = Field(None, max_length=500)
    is_admin: bool | None = None

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, value: object) -> object:
        return _normalize_username(value) if isinstance(value, str) else value


class UserStats(CamelModel):
    """Aggregate account counts for administrators."""

    total_users: int
    total_admins: int
    online_users: int
    recent_signups: int = Field(..., description="Accounts created in the last 24 hours")


class UserList(CamelModel):
    users: list[UserResponse]


class UserUpdated(CamelModel):
    message: str
    user: UserResponse
