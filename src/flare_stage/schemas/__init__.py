# src/flare_stage/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .hotspot import HotspotCreate, HotspotResponse, JoinResult, MembershipIntent
from .message import ConversationResponse, MessageCreate, MessageResponse, ReadResult
from .post import LikeIntent, LikeResult, PostCreate, PostPage, PostResponse, ReplyCreate
from .user import AuthResponse, UserResponse, UserSummary

__all__ = [
    "HotspotCreate", "HotspotResponse", "JoinResult", "MembershipIntent",
    "ConversationResponse", "MessageCreate", "MessageResponse", "ReadResult",
    "LikeIntent", "LikeResult", "PostCreate", "PostPage", "PostResponse", "ReplyCreate",
    "AuthResponse", "UserResponse", "UserSummary",
]
