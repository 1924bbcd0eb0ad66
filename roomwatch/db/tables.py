"""SQLAlchemy ORM mappings for the tracked users and rooms.

The schema is owned by the ingestion process; these mappings describe it for
querying (and let tests and SQLite dev databases create it).
"""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, Text, Index
from sqlalchemy.orm import DeclarativeBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    user_id = Column(String(64), primary_key=True)
    username = Column(String(200), nullable=True, index=True)
    user_avatar = Column(String(1000), nullable=True)

    # Profile metrics
    followers_count = Column(Integer, nullable=True)
    following_count = Column(Integer, nullable=True)
    friends_count = Column(Integer, nullable=True)
    supporter_level = Column(Integer, nullable=True)
    verification_status = Column(String(50), nullable=True)

    # Activity metrics
    first_seen = Column(DateTime(timezone=True), nullable=True)
    last_seen = Column(DateTime(timezone=True), nullable=True)
    profile_views_count = Column(Integer, nullable=True)
    total_sessions = Column(Integer, nullable=True)
    total_duration_seconds = Column(BigInteger, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class RoomRow(Base):
    __tablename__ = "rooms"

    room_id = Column(String(64), primary_key=True)
    channel = Column(String(200), nullable=True)
    platform = Column(String(50), nullable=True)
    topic = Column(Text, nullable=True)
    language = Column(String(100), nullable=True, index=True)
    second_language = Column(String(100), nullable=True)
    skill_level = Column(String(50), nullable=True, index=True)

    # Capacity / mic rules
    max_capacity = Column(Integer, nullable=True)
    allows_unlimited = Column(Boolean, default=False)
    is_locked = Column(Boolean, default=False)
    mic_allowed = Column(Boolean, default=True)
    mic_required = Column(Boolean, default=False)
    no_mic = Column(Boolean, default=False)
    al_mic = Column(Boolean, default=False)
    url = Column(String(1000), nullable=True)

    # Creator attribution
    creator_user_id = Column(String(64), nullable=True)
    creator_name = Column(String(200), nullable=True)
    creator_avatar = Column(String(1000), nullable=True)
    creator_is_verified = Column(Boolean, default=False)

    # Occupancy
    is_active = Column(Boolean, default=False, index=True)
    is_full = Column(Boolean, default=False)
    is_empty = Column(Boolean, default=True)
    current_users_count = Column(Integer, default=0)

    first_seen = Column(DateTime(timezone=True), nullable=True)
    last_activity = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_rooms_active_users", "is_active", "current_users_count"),
    )
