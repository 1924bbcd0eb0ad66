"""Room endpoints: discovery views, details, rosters, timeline, snapshots, rollups."""
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from roomwatch.db.engine import get_session
from roomwatch.db.query import Page
from roomwatch.db.repository import RoomRepository
from roomwatch.errors import NotFoundError, ServiceRoute, storage_errors
from roomwatch.services.shaping import (
    as_int,
    as_utc,
    paginated,
    room_occupancy,
    shape_rows,
    shape_snapshot,
)

router = APIRouter(tags=["rooms"], route_class=ServiceRoute)

_ANALYTICS_FIELDS = (
    "total_participants",
    "unique_participants",
    "total_sessions",
    "avg_session_duration_seconds",
    "peak_concurrent_users",
)


# ── Discovery ─────────────────────────────────────────────────────────────────


@router.get("/rooms/trending")
@storage_errors("Failed to get trending rooms")
async def trending_rooms(
    hours: float = Query(24, gt=0, le=24 * 90),
    limit: int = Query(20, ge=1, le=100),
    language: str | None = None,
    skill_level: str | None = None,
    session: AsyncSession = Depends(get_session),
):
    """Rooms with the most distinct visitors in the last ``hours``."""
    rows = await RoomRepository(session).trending(
        hours=hours, limit=limit, language=language, skill_level=skill_level,
    )
    return shape_rows(rows, ("unique_visitors", "total_sessions", "current_users_count"))


@router.get("/rooms/active")
@storage_errors("Failed to get active rooms")
async def active_rooms(
    language: str | None = None,
    skill_level: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    sort: str = Query("users", description="users, recent or popular; anything else sorts by users"),
    session: AsyncSession = Depends(get_session),
):
    rows = await RoomRepository(session).active(
        limit=limit, sort=sort, language=language, skill_level=skill_level,
    )
    return [room_occupancy(r) for r in rows]


@router.get("/rooms/search")
@storage_errors("Failed to search rooms")
async def search_rooms(
    q: str | None = Query(None, description="Topic or language fragment (min 2 chars)"),
    limit: int = Query(20, ge=1, le=100),
    active_only: bool = False,
    session: AsyncSession = Depends(get_session),
):
    """Active rooms first, then by head count, then by recent activity."""
    rows = await RoomRepository(session).search(q, limit=limit, active_only=active_only)
    return shape_rows(rows, ("current_users_count",))


# ── Single room ───────────────────────────────────────────────────────────────


@router.get("/rooms/{room_id}")
@storage_errors("Failed to get room")
async def get_room(room_id: str, session: AsyncSession = Depends(get_session)):
    """Room attributes plus statistics computed from its sessions."""
    repo = RoomRepository(session)
    room = await repo.get(room_id)
    if room is None:
        raise NotFoundError("Room not found")

    stats = await repo.session_stats(room_id)
    currently_active = as_int(stats.get("currently_active_users"))

    detail = room_occupancy(room)
    detail["statistics"] = {
        "total_unique_participants": as_int(stats.get("total_unique_participants")),
        "total_sessions": as_int(stats.get("total_sessions")),
        "avg_duration_seconds": as_int(stats.get("avg_duration_seconds")),
        "max_duration_seconds": as_int(stats.get("max_duration_seconds")),
        "first_activity": stats.get("first_activity") or room.get("first_seen"),
        "last_activity": stats.get("last_activity") or room.get("last_activity"),
        "currently_active_users": currently_active,
        "is_currently_active": currently_active > 0,
    }
    return detail


@router.get("/rooms/{room_id}/participants")
@storage_errors("Failed to get participants")
async def get_participants(
    room_id: str,
    current_only: bool = True,
    session: AsyncSession = Depends(get_session),
):
    """Live roster (seat order), or everyone who ever joined when current_only=false."""
    repo = RoomRepository(session)
    if current_only:
        rows = await repo.current_participants(room_id)
        return shape_rows(rows, ("followers_count", "supporter_level"))
    rows = await repo.past_participants(room_id)
    return shape_rows(rows, ("followers_count", "supporter_level", "total_sessions"))


@router.get("/rooms/{room_id}/timeline")
@storage_errors("Failed to get timeline")
async def get_timeline(
    room_id: str,
    event_type: str | None = Query(None, description="join or leave; other values are ignored"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    return await RoomRepository(session).timeline(room_id, Page(limit, offset), event_type=event_type)


@router.get("/rooms/{room_id}/snapshots")
@storage_errors("Failed to get snapshots")
async def get_snapshots(
    room_id: str,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    """Occupancy snapshots, newest first, with participants parsed."""
    rows, total = await RoomRepository(session).snapshots(
        room_id, Page(limit, offset), start=as_utc(start_date), end=as_utc(end_date),
    )
    return paginated("snapshots", [shape_snapshot(r) for r in rows], total, limit, offset)


@router.get("/rooms/{room_id}/analytics")
@storage_errors("Failed to get room analytics")
async def get_room_analytics(
    room_id: str,
    days: int = Query(30, ge=1, le=366),
    session: AsyncSession = Depends(get_session),
):
    rows = await RoomRepository(session).daily_analytics(room_id, days=days)
    return shape_rows(rows, _ANALYTICS_FIELDS)
