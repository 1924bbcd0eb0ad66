"""Best-effort profile view recording.

``ProfileViewRecorder.submit`` schedules the insert as a detached task on its
own DB session and returns immediately. The request that triggered it never
awaits the task; failures go to the task's done-callback, which logs them.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from roomwatch.db.engine import async_session
from roomwatch.db.session_tables import ProfileViewRow

logger = logging.getLogger(__name__)

MAX_IP_LENGTH = 50
MAX_USER_AGENT_LENGTH = 255

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def insert_profile_view(
    session: AsyncSession,
    user_id: str,
    viewer_ip: str | None,
    user_agent: str | None,
    viewed_at: datetime | None = None,
) -> None:
    """INSERT ... ON CONFLICT DO NOTHING one profile_views row and commit."""
    insert = _INSERTS.get(session.bind.dialect.name, postgresql.insert)
    stmt = insert(ProfileViewRow).values(
        viewed_user_id=user_id,
        viewer_ip=(viewer_ip or "unknown")[:MAX_IP_LENGTH],
        viewer_user_agent=(user_agent or "Unknown")[:MAX_USER_AGENT_LENGTH],
        viewed_at=viewed_at or datetime.now(timezone.utc),
    ).on_conflict_do_nothing()
    await session.execute(stmt)
    await session.commit()


class ProfileViewRecorder:
    """Fire-and-forget submission of profile views."""

    def __init__(self):
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, user_id: str, viewer_ip: str | None, user_agent: str | None) -> asyncio.Task:
        task = asyncio.create_task(
            self._record(user_id, viewer_ip, user_agent, datetime.now(timezone.utc)),
            name=f"profile-view:{user_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def _record(self, user_id: str, viewer_ip: str | None, user_agent: str | None,
                      viewed_at: datetime) -> None:
        async with async_session() as session:
            await insert_profile_view(session, user_id, viewer_ip, user_agent, viewed_at)
        logger.debug("Recorded profile view of %s", user_id)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Failed to record profile view (%s): %s", task.get_name(), exc)

    async def drain(self, timeout: float | None = 5.0) -> None:
        """Wait for in-flight inserts (shutdown, tests)."""
        if not self._pending:
            return
        done, not_done = await asyncio.wait(set(self._pending), timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning("Dropped %d pending profile view(s) on drain", len(not_done))


recorder = ProfileViewRecorder()
