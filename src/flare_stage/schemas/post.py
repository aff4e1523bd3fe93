"""Post-related Pydantic schemas."""

from datetime import datetime

from pydantic import Field

from .common import CamelModel
from .user import UserSummary


class PostCreate(CamelModel):
    """Schema for creating a new post."""

    content: str = Field(..., min_length=1, max_length=2000)
    images: list[str] = Field(default_factory=list, max_length=10)


class ReplyCreate(CamelModel):
    """Schema for replying to a post."""

    content: str = Field(..., min_length=1, max_length=1000)


class ReplyResponse(CamelModel):
    """A single reply with its author."""

    id: int
    post_id: int
    author: UserSummary
    content: str
    created_at: datetime


class PostResponse(CamelModel):
    """Post with derived like and reply information."""

    id: int
    author: UserSummary
    content: str
    images: list[str]
    likes: list[int] = Field(..., description="Ids of users who liked the post")
    like_count: int
    replies: list[ReplyResponse]
    reply_count: int
    is_liked_by_user: bool
    created_at: datetime


class PostPage(CamelModel):
    """One page of the post feed, newest first."""

    posts: list[PostResponse]
    current_page: int
    total_pages: int
    total_posts: int


class LikeIntent(CamelModel):
    """Explicit like state requested by the client."""

    liked: bool


class LikeResult(CamelModel):
    """Like state after a toggle or explicit intent."""

    message: str
    like_count: int
    is_liked: bool


class PostCreated(CamelModel):
    message: str
    post: PostResponse


class ReplyCreated(CamelModel):
    message: str
    reply: ReplyResponse


class ReplyList(CamelModel):
    replies: list[ReplyResponse]
