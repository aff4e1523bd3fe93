"""API endpoint modules for version 1."""

from .auth import router as auth_router
from .hotspots import router as hotspots_router
from .messages import router as messages_router
from .posts import router as posts_router
from .realtime import router as realtime_router
from .system import router as system_router
from .users import router as users_router

__all__ = [
    "auth_router",
    "hotspots_router",
    "messages_router",
    "posts_router",
    "realtime_router",
    "system_router",
    "users_router",
]
