"""Leaderboards: most-viewed and most-active users."""
from __future__ import annotations


from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from roomwatch.db.engine import get_session
from roomwatch.db.stats_repository import StatsRepository
from roomwatch.errors import ServiceRoute, storage_errors
from roomwatch.services.shaping import shape_rows

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"], route_class=ServiceRoute)

_CARD_FIELDS = ("followers_count", "supporter_level")


@router.get("/most-stalked")
@storage_errors("Failed to get leaderboard")
async def most_stalked(
    days: int = Query(7, ge=1, le=365),
    limit: int = Query(100, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
):
    """Users whose profiles were viewed most in the last ``days``."""
    rows = await StatsRepository(session).most_viewed_users(days=days, limit=limit)
    return shape_rows(rows, _CARD_FIELDS + ("views_in_period", "total_views"))


@router.get("/most-active")
@storage_errors("Failed to get most active users")
async def most_active(
    by: str = Query("sessions", description="sessions, time or rooms; anything else ranks by sessions"),
    days: int | None = Query(None, ge=1, le=365),
    limit: int = Query(100, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
):
    """Users ranked by session count, total time in rooms, or distinct rooms visited."""
    rows = await StatsRepository(session).most_active_users(limit=limit, by=by, days=days)
    return shape_rows(
        rows,
        _CARD_FIELDS + ("total_sessions", "total_time_seconds", "rooms_visited", "avg_session_duration"),
    )
