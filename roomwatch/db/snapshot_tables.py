"""Periodic room snapshots and daily room rollups."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from roomwatch.db.tables import Base


class RoomSnapshotRow(Base):
    __tablename__ = "room_snapshots"

    snapshot_id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(64), ForeignKey("rooms.room_id"), nullable=False, index=True)
    snapshot_time = Column(DateTime(timezone=True), nullable=False, index=True)
    participants_count = Column(Integer, nullable=True)
    participants_json = Column(Text, nullable=True)  # serialized participant list
    is_active = Column(Boolean, nullable=True)


class RoomAnalyticsRow(Base):
    """Precomputed per-room daily rollup."""
    __tablename__ = "room_analytics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(64), ForeignKey("rooms.room_id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    total_participants = Column(Integer, nullable=True)
    unique_participants = Column(Integer, nullable=True)
    total_sessions = Column(Integer, nullable=True)
    avg_session_duration_seconds = Column(Integer, nullable=True)
    peak_concurrent_users = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("room_id", "date", name="uq_room_analytics_day"),
    )
