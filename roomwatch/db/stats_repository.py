"""Leaderboards and global statistics."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import and_, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from roomwatch.db.query import Predicate, window_start
from roomwatch.db.repository import USER_CARD, avg_int
from roomwatch.db.session_tables import ProfileViewRow, SessionRow
from roomwatch.db.snapshot_tables import RoomSnapshotRow
from roomwatch.db.tables import RoomRow, UserRow
from roomwatch.services.shaping import as_dict

ACTIVITY_RANKINGS = ("sessions", "time", "rooms")


class StatsRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _all(self, stmt) -> list[dict[str, Any]]:
        result = await self.session.execute(stmt)
        return [as_dict(r) for r in result.all()]

    async def most_viewed_users(self, days: float = 7, limit: int = 100,
                                now: datetime | None = None) -> list[dict[str, Any]]:
        """Users with profile views in the last ``days``, most viewed first."""
        cutoff = window_start(days=days, now=now)
        views_in_period = func.count(ProfileViewRow.view_id).label("views_in_period")
        total_views = func.coalesce(UserRow.profile_views_count, 0).label("total_views")
        stmt = (
            select(
                *USER_CARD,
                views_in_period,
                total_views,
                func.max(ProfileViewRow.viewed_at).label("last_viewed"),
            )
            .select_from(UserRow)
            .join(ProfileViewRow, and_(
                UserRow.user_id == ProfileViewRow.viewed_user_id,
                ProfileViewRow.viewed_at >= cutoff,
            ))
            .group_by(*USER_CARD, UserRow.profile_views_count)
            .having(func.count(ProfileViewRow.view_id) > 0)
            .order_by(views_in_period.desc(), total_views.desc(), UserRow.user_id)
            .limit(limit)
        )
        return await self._all(stmt)

    async def most_active_users(self, limit: int = 100, by: str = "sessions",
                                days: float | None = None, now: datetime | None = None) -> list[dict[str, Any]]:
        """Users ranked by session count, total time in rooms, or distinct rooms."""
        predicate = Predicate().since(SessionRow.joined_at, days=days, now=now)

        total_sessions = func.count(distinct(SessionRow.session_id)).label("total_sessions")
        total_time = func.coalesce(func.sum(SessionRow.duration_seconds), 0).label("total_time_seconds")
        rooms_visited = func.count(distinct(SessionRow.room_id)).label("rooms_visited")
        ranking = {"time": total_time, "rooms": rooms_visited}.get(by, total_sessions)

        stmt = (
            predicate.apply(
                select(
                    *USER_CARD,
                    total_sessions,
                    total_time,
                    rooms_visited,
                    func.max(SessionRow.joined_at).label("last_active"),
                    avg_int(SessionRow.duration_seconds).label("avg_session_duration"),
                )
                .select_from(UserRow)
                .join(SessionRow, UserRow.user_id == SessionRow.user_id)
            )
            .group_by(*USER_CARD)
            .order_by(ranking.desc(), UserRow.user_id)
            .limit(limit)
        )
        return await self._all(stmt)

    async def overview(self, now: datetime | None = None) -> dict[str, Any]:
        """Global counters in a single round trip."""
        now = now or datetime.now(timezone.utc)
        day_ago = now - timedelta(hours=24)
        week_ago = now - timedelta(days=7)

        def count_of(table, *where):
            return select(func.count()).select_from(table).where(*where).scalar_subquery()

        stmt = select(
            count_of(UserRow).label("total_users"),
            count_of(RoomRow).label("total_rooms"),
            count_of(RoomRow, RoomRow.is_active.is_(True)).label("active_rooms"),
            count_of(SessionRow, SessionRow.is_currently_active.is_(True)).label("active_sessions"),
            count_of(SessionRow).label("total_sessions"),
            count_of(ProfileViewRow, ProfileViewRow.viewed_at >= day_ago).label("views_24h"),
            count_of(RoomSnapshotRow).label("total_snapshots"),
            select(func.count(distinct(SessionRow.user_id)))
            .where(SessionRow.joined_at >= day_ago).scalar_subquery().label("active_users_24h"),
            select(func.count(distinct(SessionRow.user_id)))
            .where(SessionRow.joined_at >= week_ago).scalar_subquery().label("active_users_7d"),
            select(func.coalesce(func.sum(SessionRow.duration_seconds), 0))
            .scalar_subquery().label("total_watch_time_seconds"),
        )
        return as_dict((await self.session.execute(stmt)).first())

    async def by_language(self, days: float | None = None, now: datetime | None = None) -> list[dict[str, Any]]:
        """Per-language room and session aggregates; sessions optionally limited to ``days``."""
        join_on = Predicate(RoomRow.room_id == SessionRow.room_id).since(SessionRow.joined_at, days=days, now=now)
        unique_users = func.count(distinct(SessionRow.user_id)).label("unique_users")
        total_sessions = func.count(SessionRow.session_id).label("total_sessions")
        stmt = (
            select(
                RoomRow.language,
                func.count(distinct(RoomRow.room_id)).label("room_count"),
                unique_users,
                total_sessions,
                func.coalesce(func.sum(SessionRow.duration_seconds), 0).label("total_time_seconds"),
                avg_int(SessionRow.duration_seconds).label("avg_session_duration"),
            )
            .select_from(RoomRow)
            .outerjoin(SessionRow, join_on.clause)
            .group_by(RoomRow.language)
            .order_by(unique_users.desc(), total_sessions.desc(), RoomRow.language)
        )
        return await self._all(stmt)

    async def by_skill_level(self) -> list[dict[str, Any]]:
        total_sessions = func.count(SessionRow.session_id).label("total_sessions")
        stmt = (
            select(
                RoomRow.skill_level,
                func.count(distinct(RoomRow.room_id)).label("room_count"),
                func.count(distinct(SessionRow.user_id)).label("unique_users"),
                total_sessions,
                avg_int(SessionRow.duration_seconds).label("avg_session_duration"),
            )
            .select_from(RoomRow)
            .outerjoin(SessionRow, RoomRow.room_id == SessionRow.room_id)
            .group_by(RoomRow.skill_level)
            .order_by(total_sessions.desc(), RoomRow.skill_level)
        )
        return await self._all(stmt)
