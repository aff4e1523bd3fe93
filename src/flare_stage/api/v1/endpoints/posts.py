"""Post, like and reply endpoints for the Flare API."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, status

from flare_stage.core.settings import settings
from flare_stage.schemas.common import StatusResponse
from flare_stage.schemas.post import (
    LikeIntent,
    LikeResult,
    PostCreate,
    PostCreated,
    PostPage,
    ReplyCreate,
    ReplyCreated,
    ReplyList,
)
from flare_stage.services import post_service
from flare_stage.services.toggle import TargetKind

from ..dependencies import CurrentUserDep, SessionDep, ToggleEngineDep

router = APIRouter(prefix="/posts", tags=["posts"])


@router.get("", response_model=PostPage)
async def list_posts(
    current_user: CurrentUserDep,
    db: SessionDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int | None, Query(ge=1)] = None,
) -> PostPage:
    """Return a page of the feed, newest first."""
    page_size = min(limit or settings.posts_page_size, settings.max_page_size)
    return post_service.list_posts(db, current_user.id, page, page_size)


@router.post("", response_model=PostCreated, status_code=status.HTTP_201_CREATED)
def create_post(
    body: PostCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> PostCreated:
    """Create a new post."""
    post = post_service.create_post(db, engine, current_user, body)
    return PostCreated(message="Post created successfully", post=post)


@router.post("/{post_id}/like", response_model=LikeResult)
def toggle_like(
    post_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> LikeResult:
    """Like the post, or unlike it if already liked."""
    result = engine.toggle(db, current_user.id, post_id, TargetKind.POST_LIKE)
    return post_service.to_like_result(result)


@router.put("/{post_id}/like", response_model=LikeResult)
def set_like(
    post_id: int,
    body: LikeIntent,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> LikeResult:
    """Like or unlike explicitly; repeating the request changes nothing."""
    result = engine.set_membership(db, current_user.id, post_id, TargetKind.POST_LIKE, body.liked)
    return post_service.to_like_result(result)


@router.delete("/{post_id}/like", response_model=LikeResult)
def unlike_post(
    post_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> LikeResult:
    """Remove the caller's like if present."""
    result = engine.set_membership(db, current_user.id, post_id, TargetKind.POST_LIKE, False)
    return post_service.to_like_result(result)


@router.post("/{post_id}/reply", response_model=ReplyCreated, status_code=status.HTTP_201_CREATED)
def reply_to_post(
    post_id: int,
    body: ReplyCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> ReplyCreated:
    """Append a reply to a post."""
    reply = post_service.add_reply(db, engine, current_user, post_id, body.content)
    return ReplyCreated(message="Reply added successfully", reply=reply)


@router.get("/{post_id}/replies", response_model=ReplyList)
async def list_replies(
    post_id: int,
    _current_user: CurrentUserDep,
    db: SessionDep,
) -> ReplyList:
    """Return a post's replies, oldest first."""
    return ReplyList(replies=post_service.list_replies(db, post_id))


@router.delete("/{post_id}", response_model=StatusResponse)
def delete_post(
    post_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    engine: ToggleEngineDep,
) -> StatusResponse:
    """Delete a post (author or admin only)."""
    post_service.delete_post(db, engine, current_user, post_id)
    return StatusResponse(message="Post deleted successfully")
