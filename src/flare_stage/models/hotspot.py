# src/flare_stage/models/hotspot.py
"""SQLAlchemy models for location hotspots and their members."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from flare_stage.db.session import Base
from flare_stage.db.time import utcnow


class Hotspot(Base):
    """Geotagged meeting point that users can join or leave."""

    __tablename__ = "hotspot"
    __table_args__ = (
        CheckConstraint("latitude BETWEEN -90 AND 90", name="ck_hotspot_latitude"),
        CheckConstraint("longitude BETWEEN -180 AND 180", name="ck_hotspot_longitude"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    author_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class HotspotMember(Base):
    """Membership row in a hotspot's joined set."""

    __tablename__ = "hotspot_member"

    # Composite primary key: presence implies membership, at most once.
    hotspot_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("hotspot.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
