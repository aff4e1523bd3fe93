# src/flare_stage/models/message.py
"""Models describing messages between users."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from flare_stage.db.session import Base
from flare_stage.db.time import utcnow


class Message(Base):
    """Message from one user to another, or to everyone.

    A null `recipient_id` marks a public broadcast message. The read flag
    only ever moves from False to True.
    """

    __tablename__ = "message"
    __table_args__ = (
        Index("ix_message_recipient_sender_read", "recipient_id", "sender_id", "is_read"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    recipient_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    @property
    def is_public(self) -> bool:
        """Return True for broadcast messages without a recipient."""
        return self.recipient_id is None
