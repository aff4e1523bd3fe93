# src/flare_stage/models/__init__.py
"""SQLAlchemy models for the Flare application."""

from .hotspot import Hotspot, HotspotMember
from .message import Message
from .post import Post, PostLike, Reply
from .user import User

__all__ = [
    "Hotspot", "HotspotMember",
    "Message",
    "Post", "PostLike", "Reply",
    "User",
]
