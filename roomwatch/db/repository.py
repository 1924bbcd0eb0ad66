"""User and room repositories: read queries behind the API endpoints.

Methods return plain dicts (or lists of them); shaping of counts and JSON
columns happens in ``roomwatch.services.shaping``.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import Integer, String, case, cast, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from roomwatch.db.query import Page, Predicate
from roomwatch.db.session_tables import SessionRow, UserActivityLogRow
from roomwatch.db.snapshot_tables import RoomAnalyticsRow, RoomSnapshotRow
from roomwatch.db.tables import RoomRow, UserRow
from roomwatch.services.shaping import as_dict

MIN_SEARCH_LENGTH = 2
TIMELINE_EVENTS = ("join", "leave")
ACTIVE_ROOM_SORTS = ("users", "recent", "popular")


def avg_int(column):
    """AVG rounded to an integer (NULL when there are no rows)."""
    return cast(func.round(func.avg(column)), Integer)


def _lower(column):
    return func.lower(column, type_=String)


def is_searchable(q: str | None) -> bool:
    return bool(q) and len(q) >= MIN_SEARCH_LENGTH


USER_CARD = (
    UserRow.user_id,
    UserRow.username,
    UserRow.user_avatar,
    UserRow.followers_count,
    UserRow.verification_status,
    UserRow.supporter_level,
)

_visits = SessionRow.__table__.join(RoomRow.__table__, SessionRow.room_id == RoomRow.room_id)


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _all(self, stmt) -> list[dict[str, Any]]:
        result = await self.session.execute(stmt)
        return [as_dict(r) for r in result.all()]

    async def search(self, q: str | None, limit: int = 20) -> list[dict[str, Any]]:
        """Fuzzy match on username/user_id; exact, then prefix, then substring matches.

        Returns [] without querying when ``q`` is shorter than MIN_SEARCH_LENGTH.
        """
        if not is_searchable(q):
            return []

        username = _lower(UserRow.username)
        tier = case(
            (username == q.lower(), 1),
            (UserRow.username.istartswith(q, autoescape=True), 2),
            else_=3,
        )
        stmt = (
            select(
                UserRow.user_id,
                UserRow.username,
                UserRow.user_avatar,
                UserRow.followers_count,
                UserRow.following_count,
                UserRow.friends_count,
                UserRow.verification_status,
                UserRow.supporter_level,
                UserRow.last_seen,
                UserRow.total_sessions,
            )
            .where(or_(
                UserRow.username.icontains(q, autoescape=True),
                UserRow.user_id.icontains(q, autoescape=True),
            ))
            .order_by(
                tier,
                UserRow.followers_count.desc().nulls_last(),
                UserRow.total_sessions.desc().nulls_last(),
            )
            .limit(limit)
        )
        return await self._all(stmt)

    async def get_profile(self, identifier: str) -> dict[str, Any] | None:
        """Look up by user_id, falling back to case-insensitive username.

        An exact user_id match wins over another user whose username collides.
        """
        stmt = (
            select(
                UserRow.user_id,
                UserRow.username,
                UserRow.user_avatar,
                UserRow.followers_count,
                UserRow.following_count,
                UserRow.friends_count,
                UserRow.supporter_level,
                UserRow.verification_status,
                UserRow.first_seen,
                UserRow.last_seen,
                UserRow.profile_views_count,
                UserRow.total_sessions,
                UserRow.total_duration_seconds,
                UserRow.created_at,
                UserRow.updated_at,
            )
            .where(or_(UserRow.user_id == identifier, _lower(UserRow.username) == identifier.lower()))
            .order_by(case((UserRow.user_id == identifier, 0), else_=1), UserRow.user_id)
            .limit(1)
        )
        row = (await self.session.execute(stmt)).first()
        return as_dict(row) if row else None

    async def exists(self, user_id: str) -> bool:
        stmt = select(UserRow.user_id).where(UserRow.user_id == user_id)
        return (await self.session.execute(stmt)).scalar_one_or_none() is not None

    async def session_stats(self, user_id: str) -> dict[str, Any]:
        stmt = select(
            func.count(distinct(SessionRow.room_id)).label("total_rooms_visited"),
            func.count(distinct(SessionRow.session_id)).label("total_sessions"),
            func.coalesce(func.sum(SessionRow.duration_seconds), 0).label("total_duration_seconds"),
            func.coalesce(avg_int(SessionRow.duration_seconds), 0).label("avg_session_duration"),
            func.max(SessionRow.joined_at).label("last_active"),
            func.count(case((SessionRow.is_currently_active.is_(True), 1))).label("active_sessions"),
        ).where(SessionRow.user_id == user_id)
        return as_dict((await self.session.execute(stmt)).first())

    async def favorite_language(self, user_id: str) -> str | None:
        visits = func.count().label("visit_count")
        stmt = (
            select(RoomRow.language, visits)
            .select_from(_visits)
            .where(SessionRow.user_id == user_id)
            .group_by(RoomRow.language)
            .order_by(visits.desc(), RoomRow.language)
            .limit(1)
        )
        row = (await self.session.execute(stmt)).first()
        return row.language if row else None

    async def history(self, user_id: str, activity_type: str = "all", limit: int = 50) -> list[dict[str, Any]]:
        predicate = Predicate(UserActivityLogRow.user_id == user_id)
        predicate.add(UserActivityLogRow.activity_type == activity_type, present=activity_type != "all")
        stmt = predicate.apply(
            select(
                UserActivityLogRow.log_id,
                UserActivityLogRow.activity_type,
                UserActivityLogRow.activity_data,
                UserActivityLogRow.activity_time,
            )
        ).order_by(UserActivityLogRow.activity_time.desc()).limit(limit)
        return await self._all(stmt)

    async def room_history(
        self,
        user_id: str,
        page: Page,
        language: str | None = None,
        skill_level: str | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """Per-room visit aggregates for one user, plus the filtered room total."""
        predicate = (
            Predicate(SessionRow.user_id == user_id)
            .equals(RoomRow.language, language)
            .equals(RoomRow.skill_level, skill_level)
        )
        last_visit = func.max(SessionRow.joined_at).label("last_visit")
        room_columns = (
            RoomRow.room_id,
            RoomRow.language,
            RoomRow.second_language,
            RoomRow.skill_level,
            RoomRow.topic,
            RoomRow.is_active,
            RoomRow.current_users_count,
            RoomRow.max_capacity,
        )
        stmt = (
            predicate.apply(
                select(
                    *room_columns,
                    last_visit,
                    func.min(SessionRow.joined_at).label("first_visit"),
                    func.count(SessionRow.session_id).label("total_visits"),
                    func.coalesce(func.sum(SessionRow.duration_seconds), 0).label("total_time_seconds"),
                    avg_int(SessionRow.duration_seconds).label("avg_session_duration"),
                ).select_from(_visits)
            )
            .group_by(*room_columns)
            .order_by(last_visit.desc())
        )
        rows = await self._all(page.apply(stmt))

        count_stmt = predicate.apply(
            select(func.count(distinct(SessionRow.room_id))).select_from(_visits)
        )
        total = (await self.session.execute(count_stmt)).scalar() or 0
        return rows, total

    async def room_sessions(self, user_id: str, room_id: str, page: Page) -> list[dict[str, Any]]:
        stmt = (
            select(
                SessionRow.session_id,
                SessionRow.joined_at,
                SessionRow.left_at,
                SessionRow.duration_seconds,
                SessionRow.is_currently_active,
                SessionRow.event_type,
                SessionRow.user_position,
                SessionRow.mic_was_on,
            )
            .where(SessionRow.user_id == user_id, SessionRow.room_id == room_id)
            .order_by(SessionRow.joined_at.desc())
        )
        return await self._all(page.apply(stmt))

    async def shared_room_sessions(self, user1_id: str, user2_id: str) -> tuple[
        dict[str, dict[str, Any]], list[dict[str, Any]], list[dict[str, Any]]
    ]:
        """Sessions of both users in the rooms both of them visited, plus those rooms."""
        rooms_of_user1 = select(SessionRow.room_id).where(SessionRow.user_id == user1_id)
        rooms_of_user2 = select(SessionRow.room_id).where(SessionRow.user_id == user2_id)
        stmt = select(
            SessionRow.session_id,
            SessionRow.user_id,
            SessionRow.room_id,
            SessionRow.joined_at,
            SessionRow.left_at,
        ).where(
            SessionRow.user_id.in_([user1_id, user2_id]),
            SessionRow.room_id.in_(rooms_of_user1),
            SessionRow.room_id.in_(rooms_of_user2),
        )
        sessions = await self._all(stmt)
        user1 = [s for s in sessions if s["user_id"] == user1_id]
        user2 = [s for s in sessions if s["user_id"] == user2_id]

        room_ids = {s["room_id"] for s in sessions}
        rooms: dict[str, dict[str, Any]] = {}
        if room_ids:
            room_stmt = select(
                RoomRow.room_id,
                RoomRow.language,
                RoomRow.topic,
                RoomRow.skill_level,
                RoomRow.is_active,
            ).where(RoomRow.room_id.in_(room_ids))
            rooms = {r["room_id"]: r for r in await self._all(room_stmt)}
        return rooms, user1, user2


class RoomRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _all(self, stmt) -> list[dict[str, Any]]:
        result = await self.session.execute(stmt)
        return [as_dict(r) for r in result.all()]

    async def get(self, room_id: str) -> dict[str, Any] | None:
        stmt = select(RoomRow.__table__).where(RoomRow.room_id == room_id)
        row = (await self.session.execute(stmt)).first()
        return as_dict(row) if row else None

    async def session_stats(self, room_id: str) -> dict[str, Any]:
        stmt = select(
            func.count(distinct(SessionRow.user_id)).label("total_unique_participants"),
            func.count(SessionRow.session_id).label("total_sessions"),
            func.coalesce(avg_int(SessionRow.duration_seconds), 0).label("avg_duration_seconds"),
            func.coalesce(func.max(SessionRow.duration_seconds), 0).label("max_duration_seconds"),
            func.min(SessionRow.joined_at).label("first_activity"),
            func.max(func.coalesce(SessionRow.left_at, SessionRow.joined_at)).label("last_activity"),
            func.count(case((SessionRow.is_currently_active.is_(True), 1))).label("currently_active_users"),
        ).where(SessionRow.room_id == room_id)
        return as_dict((await self.session.execute(stmt)).first())

    async def current_participants(self, room_id: str) -> list[dict[str, Any]]:
        stmt = (
            select(*USER_CARD, SessionRow.joined_at, SessionRow.user_position, SessionRow.mic_was_on)
            .select_from(SessionRow)
            .join(UserRow, SessionRow.user_id == UserRow.user_id)
            .where(SessionRow.room_id == room_id, SessionRow.is_currently_active.is_(True))
            .order_by(SessionRow.user_position.asc().nulls_last(), SessionRow.joined_at.asc())
        )
        return await self._all(stmt)

    async def past_participants(self, room_id: str) -> list[dict[str, Any]]:
        """Everyone who was ever in the room, most recently joined first."""
        last_joined = func.max(SessionRow.joined_at).label("last_joined")
        stmt = (
            select(*USER_CARD, last_joined, func.count(SessionRow.session_id).label("total_sessions"))
            .select_from(SessionRow)
            .join(UserRow, SessionRow.user_id == UserRow.user_id)
            .where(SessionRow.room_id == room_id)
            .group_by(*USER_CARD)
            .order_by(last_joined.desc(), UserRow.user_id)
        )
        return await self._all(stmt)

    async def timeline(self, room_id: str, page: Page, event_type: str | None = None) -> list[dict[str, Any]]:
        predicate = (
            Predicate(SessionRow.room_id == room_id)
            .one_of(SessionRow.event_type, event_type, TIMELINE_EVENTS)
        )
        stmt = predicate.apply(
            select(
                SessionRow.session_id,
                SessionRow.user_id,
                UserRow.username,
                UserRow.user_avatar,
                UserRow.verification_status,
                SessionRow.joined_at,
                SessionRow.left_at,
                SessionRow.duration_seconds,
                SessionRow.event_type,
                SessionRow.is_currently_active,
            )
            .select_from(SessionRow)
            .join(UserRow, SessionRow.user_id == UserRow.user_id)
        ).order_by(SessionRow.joined_at.desc())
        return await self._all(page.apply(stmt))

    async def snapshots(
        self,
        room_id: str,
        page: Page,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        predicate = (
            Predicate(RoomSnapshotRow.room_id == room_id)
            .at_least(RoomSnapshotRow.snapshot_time, start)
            .at_most(RoomSnapshotRow.snapshot_time, end)
        )
        stmt = predicate.apply(
            select(
                RoomSnapshotRow.snapshot_id,
                RoomSnapshotRow.room_id,
                RoomSnapshotRow.snapshot_time,
                RoomSnapshotRow.participants_count,
                RoomSnapshotRow.participants_json,
                RoomSnapshotRow.is_active,
            )
        ).order_by(RoomSnapshotRow.snapshot_time.desc())
        rows = await self._all(page.apply(stmt))

        count_stmt = predicate.apply(select(func.count()).select_from(RoomSnapshotRow))
        total = (await self.session.execute(count_stmt)).scalar() or 0
        return rows, total

    async def daily_analytics(self, room_id: str, days: int = 30, today: date | None = None) -> list[dict[str, Any]]:
        today = today or datetime.now(timezone.utc).date()
        stmt = (
            select(
                RoomAnalyticsRow.date,
                RoomAnalyticsRow.total_participants,
                RoomAnalyticsRow.unique_participants,
                RoomAnalyticsRow.total_sessions,
                RoomAnalyticsRow.avg_session_duration_seconds,
                RoomAnalyticsRow.peak_concurrent_users,
            )
            .where(RoomAnalyticsRow.room_id == room_id, RoomAnalyticsRow.date >= today - timedelta(days=days))
            .order_by(RoomAnalyticsRow.date.desc())
        )
        return await self._all(stmt)

    async def trending(
        self,
        hours: float = 24,
        limit: int = 20,
        language: str | None = None,
        skill_level: str | None = None,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Rooms ranked by distinct visitors who joined within the last ``hours``."""
        predicate = (
            Predicate()
            .since(SessionRow.joined_at, hours=hours, now=now)
            .equals(RoomRow.language, language)
            .equals(RoomRow.skill_level, skill_level)
        )
        room_columns = (
            RoomRow.room_id,
            RoomRow.topic,
            RoomRow.language,
            RoomRow.second_language,
            RoomRow.skill_level,
            RoomRow.is_active,
            RoomRow.current_users_count,
            RoomRow.max_capacity,
            RoomRow.is_locked,
            RoomRow.creator_name,
            RoomRow.creator_avatar,
            RoomRow.creator_is_verified,
        )
        unique_visitors = func.count(distinct(SessionRow.user_id)).label("unique_visitors")
        total_sessions = func.count(SessionRow.session_id).label("total_sessions")
        stmt = (
            predicate.apply(
                select(
                    *room_columns,
                    unique_visitors,
                    total_sessions,
                    func.max(SessionRow.joined_at).label("last_activity"),
                ).select_from(_visits)
            )
            .group_by(*room_columns)
            .order_by(unique_visitors.desc(), total_sessions.desc(), RoomRow.room_id)
            .limit(limit)
        )
        return await self._all(stmt)

    async def active(
        self,
        limit: int = 50,
        sort: str = "users",
        language: str | None = None,
        skill_level: str | None = None,
    ) -> list[dict[str, Any]]:
        predicate = (
            Predicate(RoomRow.is_active.is_(True))
            .equals(RoomRow.language, language)
            .equals(RoomRow.skill_level, skill_level)
        )
        if sort == "recent":
            order = (RoomRow.last_activity.desc().nulls_last(),)
        elif sort == "popular":
            order = (RoomRow.current_users_count.desc(), RoomRow.last_activity.desc().nulls_last())
        else:
            order = (RoomRow.current_users_count.desc(),)

        stmt = predicate.apply(
            select(
                RoomRow.room_id,
                RoomRow.topic,
                RoomRow.language,
                RoomRow.second_language,
                RoomRow.skill_level,
                RoomRow.current_users_count,
                RoomRow.max_capacity,
                RoomRow.is_full,
                RoomRow.is_empty,
                RoomRow.is_locked,
                RoomRow.mic_allowed,
                RoomRow.mic_required,
                RoomRow.no_mic,
                RoomRow.creator_name,
                RoomRow.creator_avatar,
                RoomRow.creator_is_verified,
                RoomRow.last_activity,
                RoomRow.allows_unlimited,
            )
        ).order_by(*order).limit(limit)
        return await self._all(stmt)

    async def search(self, q: str | None, limit: int = 20, active_only: bool = False) -> list[dict[str, Any]]:
        """Topic/language substring search, active and busy rooms first."""
        if not is_searchable(q):
            return []

        predicate = Predicate(or_(
            RoomRow.topic.icontains(q, autoescape=True),
            RoomRow.language.icontains(q, autoescape=True),
        )).add(RoomRow.is_active.is_(True), present=active_only)
        stmt = predicate.apply(
            select(
                RoomRow.room_id,
                RoomRow.topic,
                RoomRow.language,
                RoomRow.second_language,
                RoomRow.skill_level,
                RoomRow.is_active,
                RoomRow.current_users_count,
                RoomRow.max_capacity,
                RoomRow.is_locked,
                RoomRow.last_activity,
                RoomRow.creator_name,
            )
        ).order_by(
            RoomRow.is_active.desc(),
            RoomRow.current_users_count.desc().nulls_last(),
            RoomRow.last_activity.desc().nulls_last(),
        ).limit(limit)
        return await self._all(stmt)
