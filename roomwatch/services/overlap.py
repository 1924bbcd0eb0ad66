"""Co-presence analysis: rooms where two users were in at the same time.

Two sessions overlap when each one started no later than the other ended, with an
open session (left_at NULL) treated as running until ``now``.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from roomwatch.services.shaping import as_utc

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Presence:
    session_id: Any
    room_id: str
    joined_at: datetime
    left_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Presence:
        return cls(
            session_id=row["session_id"],
            room_id=row["room_id"],
            joined_at=as_utc(row["joined_at"]),
            left_at=as_utc(row.get("left_at")),
        )

    def end(self, now: datetime) -> datetime:
        return self.left_at or now


def overlap_window(a: Presence, b: Presence, now: datetime) -> tuple[datetime, datetime] | None:
    """(start, end) of the shared stretch of two sessions, or None."""
    if a.joined_at <= b.end(now) and b.joined_at <= a.end(now):
        return max(a.joined_at, b.joined_at), min(a.end(now), b.end(now))
    return None


def find_shared_rooms(
    rooms: Mapping[str, Mapping[str, Any]],
    user1_sessions: Iterable[Presence],
    user2_sessions: Iterable[Presence],
    *,
    min_overlaps: int = 1,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Per-room overlap summary for two users.

    ``rooms`` maps room_id to the room attributes copied into each result.
    Every (user1 session, user2 session) pair in the same room is tested;
    ``overlap_count`` counts overlapping pairs. Results are ordered by
    overlap_count, then last_overlap_time, both descending.
    """
    now = as_utc(now) or datetime.now(timezone.utc)

    by_room1: dict[str, list[Presence]] = defaultdict(list)
    by_room2: dict[str, list[Presence]] = defaultdict(list)
    for s in user1_sessions:
        by_room1[s.room_id].append(s)
    for s in user2_sessions:
        by_room2[s.room_id].append(s)

    results = []
    for room_id in by_room1.keys() & by_room2.keys():
        first_overlap = None
        last_overlap = None
        count = 0
        for a in by_room1[room_id]:
            for b in by_room2[room_id]:
                window = overlap_window(a, b, now)
                if window is None:
                    continue
                count += 1
                start, end = window
                first_overlap = start if first_overlap is None else min(first_overlap, start)
                last_overlap = end if last_overlap is None else max(last_overlap, end)

        if count < min_overlaps:
            continue

        results.append({
            **dict(rooms.get(room_id, {"room_id": room_id})),
            "room_id": room_id,
            "user1_sessions": len({s.session_id for s in by_room1[room_id]}),
            "user2_sessions": len({s.session_id for s in by_room2[room_id]}),
            "overlap_count": count,
            "first_overlap_time": first_overlap,
            "last_overlap_time": last_overlap,
        })

    results.sort(key=lambda r: r["room_id"])
    results.sort(
        key=lambda r: (r["overlap_count"], r["last_overlap_time"] or _EPOCH),
        reverse=True,
    )
    return results
