"""SQLAlchemy ORM models — all database tables."""

import uuid
from datetime import datetime, date
from typing import Optional
from sqlalchemy import (
    Integer, String, Text, Boolean, DateTime, Date,
    ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from schedularr.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


# ── Content ──────────────────────────────────────────────────────

class Content(Base):
    __tablename__ = "content"
    __table_args__ = (
        Index("idx_content_tmdb", "tmdb_id"),
        Index("idx_content_mal", "mal_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tmdb_id: Mapped[Optional[int]] = mapped_column(Integer)
    mal_id: Mapped[Optional[int]] = mapped_column(Integer)
    data_source: Mapped[str] = mapped_column(String(10), default="tmdb")  # tmdb | jikan
    content_type: Mapped[str] = mapped_column(String(10), nullable=False)  # show | movie
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    default_duration: Mapped[Optional[int]] = mapped_column(Integer)
    number_of_seasons: Mapped[Optional[int]] = mapped_column(Integer)
    number_of_episodes: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Episode(Base):
    __tablename__ = "episodes"
    __table_args__ = (
        UniqueConstraint("content_id", "season", "episode_number"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    content_id: Mapped[str] = mapped_column(ForeignKey("content.id", ondelete="CASCADE"))
    season: Mapped[int] = mapped_column(Integer, nullable=False)
    episode_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(500))
    overview: Mapped[Optional[str]] = mapped_column(Text)
    duration: Mapped[Optional[int]] = mapped_column(Integer)
    air_date: Mapped[Optional[date]] = mapped_column(Date)
    still_url: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ── Watch History ────────────────────────────────────────────────

class WatchHistory(Base):
    __tablename__ = "watch_history"
    __table_args__ = (
        UniqueConstraint("user_id", "content_id", "season", "episode"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content_id: Mapped[str] = mapped_column(ForeignKey("content.id", ondelete="CASCADE"))
    season: Mapped[Optional[int]] = mapped_column(Integer)          # NULL for movies
    episode: Mapped[Optional[int]] = mapped_column(Integer)         # NULL for movies
    watched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    rewatch_count: Mapped[int] = mapped_column(Integer, default=0)


# ── Queue ────────────────────────────────────────────────────────

class QueueItem(Base):
    __tablename__ = "queue"
    __table_args__ = (
        Index("idx_queue_user_position", "user_id", "position"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content_id: Mapped[str] = mapped_column(ForeignKey("content.id", ondelete="CASCADE"))
    position: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ── Schedule ─────────────────────────────────────────────────────

class ScheduleEntry(Base):
    __tablename__ = "schedule"
    __table_args__ = (
        Index("idx_schedule_user_time", "user_id", "scheduled_time"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content_id: Mapped[str] = mapped_column(ForeignKey("content.id", ondelete="CASCADE"))
    season: Mapped[Optional[int]] = mapped_column(Integer)
    episode: Mapped[Optional[int]] = mapped_column(Integer)
    scheduled_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    source_type: Mapped[str] = mapped_column(String(10), default="auto")  # manual | auto | block | rotation
    watched: Mapped[bool] = mapped_column(Boolean, default=False)
    timezone_offset: Mapped[str] = mapped_column(String(6), default="+00:00")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
