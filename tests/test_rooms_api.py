"""Tests for the room endpoints."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tests.factories import rollup, room, session, snapshot, user, utc


def ago(**kw) -> datetime:
    return datetime.now(timezone.utc) - timedelta(**kw)


# ── Room details ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_full_room_detail(client, seed):
    await seed(
        user("u1"), user("u2"),
        room("r1", max_capacity=2, allows_unlimited=False, current_users_count=2,
             is_active=True, is_full=False, is_empty=True),
    )
    await seed(
        session("u1", "r1", utc(2026, 5, 4, 9), utc(2026, 5, 4, 10)),
        session("u1", "r1", utc(2026, 5, 4, 11)),
        session("u2", "r1", utc(2026, 5, 4, 11, 5)),
    )
    resp = await client.get("/api/rooms/r1")
    assert resp.status_code == 200
    data = resp.json()

    assert data["is_full"] is True
    assert data["is_empty"] is False
    stats = data["statistics"]
    assert stats["total_unique_participants"] == 2
    assert stats["total_sessions"] == 3
    assert stats["avg_duration_seconds"] == 3600
    assert stats["max_duration_seconds"] == 3600
    assert stats["first_activity"].startswith("2026-05-04T09:00")
    assert stats["currently_active_users"] == 2
    assert stats["is_currently_active"] is True


@pytest.mark.asyncio
async def test_room_without_sessions_falls_back_to_room_columns(client, seed):
    await seed(room("r1", first_seen=utc(2026, 1, 1), last_activity=utc(2026, 2, 1), current_users_count=0))
    stats = (await client.get("/api/rooms/r1")).json()["statistics"]
    assert stats["total_sessions"] == 0
    assert stats["avg_duration_seconds"] == 0
    assert stats["first_activity"].startswith("2026-01-01")
    assert stats["last_activity"].startswith("2026-02-01")
    assert stats["is_currently_active"] is False


@pytest.mark.asyncio
async def test_unknown_room_is_404(client):
    resp = await client.get("/api/rooms/missing")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Room not found"}


# ── Participants & timeline ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_current_participants_in_seat_order(client, seed):
    await seed(user("u1", followers_count=None), user("u2"), user("u3"), room("r1"))
    await seed(
        session("u1", "r1", utc(2026, 5, 4, 10), user_position=2),
        session("u2", "r1", utc(2026, 5, 4, 11), user_position=1),
        session("u3", "r1", utc(2026, 5, 4, 9), utc(2026, 5, 4, 9, 30)),
    )
    current = (await client.get("/api/rooms/r1/participants")).json()
    assert [p["user_id"] for p in current] == ["u2", "u1"]
    assert current[1]["followers_count"] == 0


@pytest.mark.asyncio
async def test_historical_participants(client, seed):
    await seed(user("u1"), user("u2"), room("r1"))
    await seed(
        session("u1", "r1", utc(2026, 5, 1, 10), utc(2026, 5, 1, 11)),
        session("u1", "r1", utc(2026, 5, 3, 10), utc(2026, 5, 3, 11)),
        session("u2", "r1", utc(2026, 5, 2, 10), utc(2026, 5, 2, 11)),
    )
    past = (await client.get("/api/rooms/r1/participants", params={"current_only": "false"})).json()
    assert [(p["user_id"], p["total_sessions"]) for p in past] == [("u1", 2), ("u2", 1)]
    assert past[0]["last_joined"].startswith("2026-05-03")


@pytest.mark.asyncio
async def test_timeline_filters_known_event_types(client, seed):
    await seed(user("u1", "alice"), room("r1"))
    await seed(
        session("u1", "r1", utc(2026, 5, 4, 10), utc(2026, 5, 4, 11)),
        session("u1", "r1", utc(2026, 5, 4, 12)),
    )
    everything = (await client.get("/api/rooms/r1/timeline")).json()
    assert [e["event_type"] for e in everything] == ["join", "leave"]
    assert everything[0]["username"] == "alice"

    leaves = (await client.get("/api/rooms/r1/timeline", params={"event_type": "leave"})).json()
    assert [e["event_type"] for e in leaves] == ["leave"]

    # Unknown types are ignored, not rejected
    unknown = (await client.get("/api/rooms/r1/timeline", params={"event_type": "kick"})).json()
    assert len(unknown) == 2


# ── Snapshots & analytics ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_snapshots_paginated_and_parsed(client, seed):
    await seed(room("r1"))
    await seed(
        snapshot("r1", utc(2026, 5, 4, 10), [{"user_id": "u1"}]),
        snapshot("r1", utc(2026, 5, 4, 11), [{"user_id": "u1"}, {"user_id": "u2"}]),
        snapshot("r1", utc(2026, 5, 4, 12), []),
    )
    body = (await client.get("/api/rooms/r1/snapshots", params={"limit": 2})).json()
    assert body["pagination"] == {"total": 3, "limit": 2, "offset": 0, "has_more": True}
    newest, second = body["snapshots"]
    assert newest["participants"] == []
    assert second["participants"] == [{"user_id": "u1"}, {"user_id": "u2"}]
    assert second["participants_count"] == 2
    assert "participants_json" not in second


@pytest.mark.asyncio
async def test_snapshots_date_range(client, seed):
    await seed(room("r1"))
    await seed(*(snapshot("r1", utc(2026, 5, 4, hour)) for hour in (8, 10, 12, 14)))
    body = (await client.get("/api/rooms/r1/snapshots", params={
        "start_date": "2026-05-04T09:00:00Z",
        "end_date": "2026-05-04T13:00:00Z",
    })).json()
    assert body["pagination"]["total"] == 2
    assert [s["snapshot_time"][:13] for s in body["snapshots"]] == ["2026-05-04T12", "2026-05-04T10"]


@pytest.mark.asyncio
async def test_snapshot_with_bad_json_still_returned(client, seed):
    await seed(room("r1"))
    await seed(snapshot("r1", utc(2026, 5, 4, 10), participants_json="{oops", participants_count=None))
    [snap] = (await client.get("/api/rooms/r1/snapshots")).json()["snapshots"]
    assert snap["participants"] is None
    assert snap["participants_count"] == 0


@pytest.mark.asyncio
async def test_daily_analytics_window(client, seed):
    today = datetime.now(timezone.utc).date()
    await seed(room("r1"))
    await seed(
        rollup("r1", today, total_sessions=10, peak_concurrent_users=None),
        rollup("r1", today - timedelta(days=3), total_sessions=4),
        rollup("r1", today - timedelta(days=40), total_sessions=1),
    )
    rows = (await client.get("/api/rooms/r1/analytics")).json()
    assert [r["total_sessions"] for r in rows] == [10, 4]
    assert rows[0]["peak_concurrent_users"] == 0

    week = (await client.get("/api/rooms/r1/analytics", params={"days": 2})).json()
    assert len(week) == 1


# ── Discovery ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_trending_ranks_by_unique_visitors(client, seed):
    await seed(user("u1"), user("u2"), user("u3"), room("quiet"), room("busy"), room("stale"))
    await seed(
        session("u1", "busy", ago(hours=2), ago(hours=1)),
        session("u2", "busy", ago(hours=3), ago(hours=2)),
        session("u1", "quiet", ago(hours=5), ago(hours=4)),
        session("u1", "quiet", ago(hours=6), ago(hours=5)),
        session("u2", "stale", ago(days=3), ago(days=3) + timedelta(hours=1)),
        session("u3", "stale", ago(days=3), ago(days=3) + timedelta(hours=1)),
        session("u1", "stale", ago(days=3), ago(days=3) + timedelta(hours=1)),
    )
    rows = (await client.get("/api/rooms/trending")).json()
    assert [(r["room_id"], r["unique_visitors"]) for r in rows] == [("busy", 2), ("quiet", 1)]

    wider = (await client.get("/api/rooms/trending", params={"hours": 24 * 7})).json()
    assert wider[0]["room_id"] == "stale"


@pytest.mark.asyncio
async def test_trending_language_filter(client, seed):
    await seed(user("u1"), room("es", language="Spanish"), room("en", language="English"))
    await seed(
        session("u1", "es", ago(hours=2), ago(hours=1)),
        session("u1", "en", ago(hours=2), ago(hours=1)),
    )
    rows = (await client.get("/api/rooms/trending", params={"language": "Spanish"})).json()
    assert [r["room_id"] for r in rows] == ["es"]


@pytest.mark.asyncio
async def test_active_rooms_sorting(client, seed):
    await seed(
        room("small", is_active=True, current_users_count=1, last_activity=utc(2026, 5, 4, 12)),
        room("big", is_active=True, current_users_count=9, last_activity=utc(2026, 5, 4, 9),
             max_capacity=9),
        room("closed", is_active=False, current_users_count=0),
    )
    by_users = (await client.get("/api/rooms/active")).json()
    assert [r["room_id"] for r in by_users] == ["big", "small"]
    assert by_users[0]["is_full"] is True

    recent = (await client.get("/api/rooms/active", params={"sort": "recent"})).json()
    assert [r["room_id"] for r in recent] == ["small", "big"]


@pytest.mark.asyncio
async def test_active_rooms_unknown_sort_falls_back_to_users(client, seed):
    await seed(
        room("small", is_active=True, current_users_count=1, last_activity=utc(2026, 5, 4, 12)),
        room("big", is_active=True, current_users_count=9, last_activity=utc(2026, 5, 4, 9)),
    )
    resp = await client.get("/api/rooms/active", params={"sort": "random"})
    assert resp.status_code == 200
    assert [r["room_id"] for r in resp.json()] == ["big", "small"]


@pytest.mark.asyncio
async def test_trending_accepts_fractional_hours(client, seed):
    await seed(user("u1"), user("u2"), room("now"), room("earlier"))
    await seed(
        session("u1", "now", ago(minutes=10)),
        session("u2", "earlier", ago(hours=2), ago(hours=1)),
    )
    resp = await client.get("/api/rooms/trending", params={"hours": 0.5})
    assert resp.status_code == 200
    assert [r["room_id"] for r in resp.json()] == ["now"]


@pytest.mark.asyncio
async def test_timestamps_serialize_with_utc_offset(client, seed):
    await seed(user("u1"), room("r1"))
    await seed(session("u1", "r1", utc(2026, 5, 4, 9), utc(2026, 5, 4, 10)))
    rows = (await client.get("/api/rooms/r1/timeline")).json()
    assert rows[0]["joined_at"] == "2026-05-04T09:00:00+00:00"
    assert rows[0]["left_at"] == "2026-05-04T10:00:00+00:00"


@pytest.mark.asyncio
async def test_room_search_orders_active_first(client, seed):
    await seed(
        room("a", topic="Korean drama talk", is_active=False, current_users_count=0),
        room("b", topic="Casual chat", language="Korean", is_active=True, current_users_count=2),
        room("c", topic="korean grammar", is_active=True, current_users_count=5),
        room("d", topic="French only", is_active=True, current_users_count=50),
    )
    rows = (await client.get("/api/rooms/search", params={"q": "korean"})).json()
    assert [r["room_id"] for r in rows] == ["c", "b", "a"]

    active = (await client.get("/api/rooms/search", params={"q": "korean", "active_only": "true"})).json()
    assert [r["room_id"] for r in active] == ["c", "b"]


@pytest.mark.asyncio
async def test_room_search_short_query(client):
    resp = await client.get("/api/rooms/search", params={"q": "k"})
    assert resp.status_code == 200
    assert resp.json() == []
