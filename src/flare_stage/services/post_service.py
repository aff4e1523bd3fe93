"""Service-level helpers for posts and replies."""
from __future__ import annotations

import logging
import math
from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.orm import Session

from flare_stage.core.errors import ForbiddenError, NotFoundError
from flare_stage.models import Post, PostLike, Reply, User
from flare_stage.repositories.store import EntityStore
from flare_stage.schemas.post import LikeResult, PostCreate, PostPage, PostResponse, ReplyResponse
from flare_stage.schemas.user import UserSummary
from flare_stage.services.broadcaster import Audience, EventType
from flare_stage.services.toggle import REPLY_LOCK, TargetKind, ToggleEngine, ToggleResult, lock_key

logger = logging.getLogger(__name__)


def get_post(db: Session, post_id: int) -> Post:
    """Return a post by id.

    Raises:
        NotFoundError: If the post does not exist.
    """
    post = EntityStore(db).get(Post, post_id)
    if post is None:
        raise NotFoundError("Post not found")
    return post


def _users_by_id(db: Session, user_ids: set[int]) -> dict[int, User]:
    if not user_ids:
        return {}
    users = db.execute(select(User).where(User.id.in_(user_ids))).scalars()
    return {user.id: user for user in users}


def to_reply_responses(db: Session, replies: list[Reply]) -> list[ReplyResponse]:
    """Serialize replies, skipping those whose author no longer exists."""
    authors = _users_by_id(db, {reply.author_id for reply in replies})
    return [
        ReplyResponse(
            id=reply.id,
            post_id=reply.post_id,
            author=UserSummary.model_validate(authors[reply.author_id]),
            content=reply.content,
            created_at=reply.created_at,
        )
        for reply in replies
        if reply.author_id in authors
    ]


def to_post_responses(db: Session, posts: list[Post], viewer_id: int) -> list[PostResponse]:
    """Serialize posts with their likes and replies.

    Likes by deleted users and posts by deleted authors are skipped.
    """
    if not posts:
        return []
    post_ids = [post.id for post in posts]

    likes: dict[int, list[int]] = defaultdict(list)
    like_rows = db.execute(
        select(PostLike.post_id, PostLike.user_id)
        .join(User, User.id == PostLike.user_id)
        .where(PostLike.post_id.in_(post_ids))
        .order_by(PostLike.created_at, PostLike.user_id)
    )
    for post_id, user_id in like_rows:
        likes[post_id].append(user_id)

    replies: dict[int, list[ReplyResponse]] = defaultdict(list)
    reply_rows = EntityStore(db).list_by(Reply, Reply.post_id.in_(post_ids), order_by=(Reply.id,))
    for response in to_reply_responses(db, reply_rows):
        replies[response.post_id].append(response)

    authors = _users_by_id(db, {post.author_id for post in posts})
    result = []
    for post in posts:
        author = authors.get(post.author_id)
        if author is None:
            continue
        liked_by = likes.get(post.id, [])
        post_replies = replies.get(post.id, [])
        result.append(
            PostResponse(
                id=post.id,
                author=UserSummary.model_validate(author),
                content=post.content,
                images=list(post.images or []),
                likes=liked_by,
                like_count=len(liked_by),
                replies=post_replies,
                reply_count=len(post_replies),
                is_liked_by_user=viewer_id in liked_by,
                created_at=post.created_at,
            )
        )
    return result


def to_post_response(db: Session, post: Post, viewer_id: int) -> PostResponse:
    """Serialize a single post."""
    responses = to_post_responses(db, [post], viewer_id)
    if not responses:
        raise NotFoundError("Post not found")
    return responses[0]


def list_posts(db: Session, viewer_id: int, page: int, limit: int) -> PostPage:
    """Return one page of the feed, newest first."""
    store = EntityStore(db)
    total = store.count_by(Post)
    posts = store.list_by(
        Post,
        order_by=(Post.created_at.desc(), Post.id.desc()),
        limit=limit,
        offset=(page - 1) * limit,
    )
    return PostPage(
        posts=to_post_responses(db, posts, viewer_id),
        current_page=page,
        total_pages=math.ceil(total / limit) if total else 0,
        total_posts=total,
    )


def create_post(db: Session, engine: ToggleEngine, author: User, data: PostCreate) -> PostResponse:
    """Persist a post and announce it to everyone."""
    post = Post(author_id=author.id, content=data.content, images=list(data.images))
    EntityStore(db).put(post)
    db.commit()
    db.refresh(post)

    response = to_post_response(db, post, author.id)
    engine.broadcaster.publish(
        EventType.NEW_POST,
        response.model_dump(mode="json", by_alias=True),
        Audience.everyone(),
    )
    logger.info("User %s created post %s", author.id, post.id)
    return response


def add_reply(
    db: Session,
    engine: ToggleEngine,
    author: User,
    post_id: int,
    content: str,
) -> ReplyResponse:
    """Append a reply to a post.

    Appends to the same post are serialized so reply ids and broadcast order
    agree.

    Raises:
        NotFoundError: If the post does not exist.
    """
    store = EntityStore(db)
    with engine.exclusive(lock_key(REPLY_LOCK, post_id)):
        if store.get(Post, post_id) is None:
            raise NotFoundError("Post not found")
        reply = Reply(post_id=post_id, author_id=author.id, content=content)
        try:
            store.put(reply)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(reply)

        response = ReplyResponse(
            id=reply.id,
            post_id=post_id,
            author=UserSummary.model_validate(author),
            content=reply.content,
            created_at=reply.created_at,
        )
        engine.broadcaster.publish(
            EventType.NEW_REPLY,
            {"postId": post_id, "reply": response.model_dump(mode="json", by_alias=True)},
            Audience.everyone(),
        )
    return response


def list_replies(db: Session, post_id: int) -> list[ReplyResponse]:
    """Return a post's replies in insertion order.

    Raises:
        NotFoundError: If the post does not exist.
    """
    get_post(db, post_id)
    replies = EntityStore(db).list_by(Reply, Reply.post_id == post_id, order_by=(Reply.id,))
    return to_reply_responses(db, replies)


def delete_post(db: Session, engine: ToggleEngine, actor: User, post_id: int) -> None:
    """Delete a post with its likes and replies.

    Raises:
        NotFoundError: If the post does not exist.
        ForbiddenError: If the actor is neither the author nor an admin.
    """
    post = get_post(db, post_id)
    if post.author_id != actor.id and not actor.is_admin:
        raise ForbiddenError("Not authorized to delete this post")
    engine.purge_target(db, post_id, TargetKind.POST_LIKE)


def to_like_result(result: ToggleResult) -> LikeResult:
    """Describe a like transition for the API."""
    if not result.changed:
        message = "Post already liked" if result.new_state else "Post not liked"
    else:
        message = "Post liked" if result.new_state else "Post unliked"
    return LikeResult(message=message, like_count=result.count, is_liked=result.new_state)
