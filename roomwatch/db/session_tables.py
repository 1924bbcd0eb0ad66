"""Join/leave sessions, profile views and the per-user activity log."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, Index

from roomwatch.db.tables import Base


class SessionRow(Base):
    """One join-to-leave presence of a user in a room. Open while left_at is NULL."""
    __tablename__ = "sessions"

    session_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.user_id"), nullable=False, index=True)
    room_id = Column(String(64), ForeignKey("rooms.room_id"), nullable=False, index=True)
    joined_at = Column(DateTime(timezone=True), nullable=False, index=True)
    left_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    is_currently_active = Column(Boolean, default=False, nullable=False)
    event_type = Column(String(10), nullable=True)  # join | leave
    user_position = Column(Integer, nullable=True)
    mic_was_on = Column(Boolean, nullable=True)

    __table_args__ = (
        Index("ix_sessions_room_joined", "room_id", "joined_at"),
        Index("ix_sessions_user_room", "user_id", "room_id"),
    )


class ProfileViewRow(Base):
    __tablename__ = "profile_views"

    view_id = Column(Integer, primary_key=True, autoincrement=True)
    viewed_user_id = Column(String(64), ForeignKey("users.user_id"), nullable=False, index=True)
    viewer_ip = Column(String(50), nullable=True)
    viewer_user_agent = Column(String(255), nullable=True)
    viewed_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)


class UserActivityLogRow(Base):
    __tablename__ = "user_activity_log"

    log_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.user_id"), nullable=False)
    activity_type = Column(String(50), nullable=False)
    activity_data = Column(Text, nullable=True)  # JSON document
    activity_time = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_activity_user_time", "user_id", "activity_time"),
    )
