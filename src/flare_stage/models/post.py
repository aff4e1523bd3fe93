# src/flare_stage/models/post.py
"""SQLAlchemy models for posts, likes and replies."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from flare_stage.db.session import Base
from flare_stage.db.time import utcnow


class Post(Base):
    """Text post with optional image references.

    Like and reply counts are never stored; they are derived from the
    `post_like` and `reply` tables.
    """

    __tablename__ = "post"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    author_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # Image URLs in upload order.
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class PostLike(Base):
    """Membership row in a post's liked set."""

    __tablename__ = "post_like"

    # Composite primary key prevents duplicate likes from the same user.
    post_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("post.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        primary_key=True,
    )
    # Keeps liked-set ordering stable for clients.
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Reply(Base):
    """Append-only reply to a post; ordered by insertion id."""

    __tablename__ = "reply"
    __table_args__ = (Index("ix_reply_post_id", "post_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("post.id", ondelete="CASCADE"),
        nullable=False,
    )
    author_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
