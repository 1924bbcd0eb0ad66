"""Global statistics endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from roomwatch.db.engine import get_session
from roomwatch.db.stats_repository import StatsRepository
from roomwatch.errors import ServiceRoute, storage_errors
from roomwatch.services.shaping import coalesce, shape_rows

router = APIRouter(prefix="/stats", tags=["stats"], route_class=ServiceRoute)

OVERVIEW_FIELDS = (
    "total_users",
    "total_rooms",
    "active_rooms",
    "active_sessions",
    "total_sessions",
    "views_24h",
    "total_snapshots",
    "active_users_24h",
    "active_users_7d",
    "total_watch_time_seconds",
)


@router.get("")
@storage_errors("Failed to get stats")
async def overview(session: AsyncSession = Depends(get_session)):
    row = await StatsRepository(session).overview()
    return coalesce(row, OVERVIEW_FIELDS)


@router.get("/languages")
@storage_errors("Failed to get language statistics")
async def by_language(
    days: int | None = Query(None, ge=1, le=365),
    session: AsyncSession = Depends(get_session),
):
    """Room and session aggregates per room language."""
    rows = await StatsRepository(session).by_language(days=days)
    return shape_rows(
        rows, ("room_count", "unique_users", "total_sessions", "total_time_seconds", "avg_session_duration"),
    )


@router.get("/skills")
@storage_errors("Failed to get skill level statistics")
async def by_skill_level(session: AsyncSession = Depends(get_session)):
    rows = await StatsRepository(session).by_skill_level()
    return shape_rows(rows, ("room_count", "unique_users", "total_sessions", "avg_session_duration"))
