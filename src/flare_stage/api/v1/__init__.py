"""Version 1 API endpoints."""

from .endpoints import (
    auth_router,
    hotspots_router,
    messages_router,
    posts_router,
    realtime_router,
    system_router,
    users_router,
)

__all__ = [
    "auth_router",
    "hotspots_router",
    "messages_router",
    "posts_router",
    "realtime_router",
    "system_router",
    "users_router",
]
