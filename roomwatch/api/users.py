"""User endpoints: search, profiles, history, room visits, co-presence, views."""
from __future__ import annotations


from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from roomwatch.db.engine import get_session
from roomwatch.db.query import Page
from roomwatch.db.repository import UserRepository
from roomwatch.errors import NotFoundError, ServiceRoute, storage_errors
from roomwatch.services.overlap import Presence, find_shared_rooms
from roomwatch.services.profile_views import recorder
from roomwatch.services.shaping import (
    USER_COUNT_FIELDS,
    as_int,
    coalesce,
    paginated,
    shape_activity,
    shape_rows,
)

router = APIRouter(tags=["users"], route_class=ServiceRoute)

_SEARCH_COUNT_FIELDS = (
    "followers_count", "following_count", "friends_count", "supporter_level", "total_sessions",
)
_VISIT_COUNT_FIELDS = ("total_visits", "total_time_seconds", "avg_session_duration", "current_users_count")


def record_view(user_id: str, request: Request) -> None:
    """Hand a profile view to the background recorder; never raises into the request."""
    viewer_ip = request.client.host if request.client else None
    recorder.submit(user_id, viewer_ip, request.headers.get("user-agent"))


@router.get("/users/search")
@storage_errors("Search failed")
async def search_users(
    q: str | None = Query(None, description="Username or user id fragment (min 2 chars)"),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    """Fuzzy user search: exact username, then prefix, then substring matches."""
    rows = await UserRepository(session).search(q, limit)
    return shape_rows(rows, _SEARCH_COUNT_FIELDS)


@router.get("/users/{user_id}")
@storage_errors("Failed to get user")
async def get_user(
    user_id: str,
    request: Request,
    record_view_: bool = Query(False, alias="record_view"),
    session: AsyncSession = Depends(get_session),
):
    """Profile plus statistics computed from the user's sessions.

    ``user_id`` may also be a username (case-insensitive); an id match wins.
    """
    repo = UserRepository(session)
    user = await repo.get_profile(user_id)
    if user is None:
        raise NotFoundError("User not found")

    stats = await repo.session_stats(user["user_id"])
    favorite_language = await repo.favorite_language(user["user_id"])

    if record_view_:
        record_view(user["user_id"], request)

    profile = coalesce(user, USER_COUNT_FIELDS)
    profile["statistics"] = {
        "total_rooms_visited": as_int(stats.get("total_rooms_visited")),
        "total_sessions": as_int(stats.get("total_sessions")),
        "total_duration_seconds": as_int(stats.get("total_duration_seconds")),
        "avg_session_duration": as_int(stats.get("avg_session_duration")),
        "favorite_language": favorite_language,
        "last_active": stats.get("last_active") or user.get("last_seen"),
        "is_currently_active": as_int(stats.get("active_sessions")) > 0,
    }
    return profile


@router.get("/users/{user_id}/history")
@storage_errors("Failed to get user history")
async def get_user_history(
    user_id: str,
    activity_type: str = Query("all", alias="type"),
    limit: int = Query(50, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
):
    """Activity log entries, newest first, with activity_data parsed."""
    rows = await UserRepository(session).history(user_id, activity_type, limit)
    return [shape_activity(r) for r in rows]


@router.get("/users/{user_id}/rooms")
@storage_errors("Failed to get rooms")
async def get_user_rooms(
    user_id: str,
    language: str | None = None,
    skill_level: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    """Rooms the user visited, most recent visit first, paginated."""
    rows, total = await UserRepository(session).room_history(
        user_id, Page(limit, offset), language=language, skill_level=skill_level,
    )
    return paginated("rooms", shape_rows(rows, _VISIT_COUNT_FIELDS), total, limit, offset)


@router.get("/users/{user_id}/rooms/{room_id}/sessions")
@storage_errors("Failed to get sessions")
async def get_user_room_sessions(
    user_id: str,
    room_id: str,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    return await UserRepository(session).room_sessions(user_id, room_id, Page(limit, offset))


@router.get("/users/{user1_id}/shared/{user2_id}")
@storage_errors("Failed to find shared rooms")
async def get_shared_rooms(
    user1_id: str,
    user2_id: str,
    min_overlaps: int = Query(1, ge=1),
    session: AsyncSession = Depends(get_session),
):
    """Rooms where both users were present at the same time."""
    rooms, user1, user2 = await UserRepository(session).shared_room_sessions(user1_id, user2_id)
    return find_shared_rooms(
        rooms,
        [Presence.from_row(s) for s in user1],
        [Presence.from_row(s) for s in user2],
        min_overlaps=min_overlaps,
    )


@router.post("/users/{user_id}/view")
@storage_errors("Failed to record view")
async def post_profile_view(
    user_id: str,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """Record a profile view. The insert runs in the background."""
    if not await UserRepository(session).exists(user_id):
        raise NotFoundError("User not found")
    record_view(user_id, request)
    return {"success": True, "message": "Profile view recorded"}
