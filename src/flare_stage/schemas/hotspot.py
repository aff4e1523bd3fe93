"""Hotspot-related Pydantic schemas."""

from datetime import datetime

from pydantic import Field

from .common import CamelModel
from .user import UserSummary


class Coordinates(CamelModel):
    """Geographic position in decimal degrees."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class HotspotCreate(CamelModel):
    """Schema for creating a hotspot."""

    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    coordinates: Coordinates


class HotspotResponse(CamelModel):
    """Hotspot with its joined users."""

    id: int
    title: str
    description: str
    author: UserSummary
    coordinates: Coordinates
    joined_users: list[UserSummary]
    joined_count: int
    is_joined_by_user: bool
    created_at: datetime


class MembershipIntent(CamelModel):
    """Explicit membership state requested by the client."""

    joined: bool


class JoinResult(CamelModel):
    """Membership state after a toggle or explicit intent."""

    message: str
    joined_count: int
    is_joined: bool
    joined_users: list[UserSummary]


class HotspotList(CamelModel):
    hotspots: list[HotspotResponse]


class HotspotCreated(CamelModel):
    message: str
    hotspot: HotspotResponse
