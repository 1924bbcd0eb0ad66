"""Tests for row shaping: null coalescing, JSON columns, occupancy, pagination."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from roomwatch.services.shaping import (
    USER_COUNT_FIELDS,
    as_dict,
    as_int,
    as_utc,
    coalesce,
    has_more,
    paginated,
    parse_json,
    room_occupancy,
    shape_activity,
    shape_snapshot,
)


@pytest.mark.parametrize("value,expected", [
    (None, 0),
    (7, 7),
    (Decimal("12.0"), 12),
    (3.9, 3),
    ("42", 42),
    ("not a number", 0),
    (True, 1),
])
def test_as_int(value, expected):
    assert as_int(value) == expected


def test_coalesce_forces_counts_to_ints():
    row = {"user_id": "u1", "followers_count": None, "total_sessions": Decimal("4"), "username": None}
    shaped = coalesce(row, USER_COUNT_FIELDS)

    for field in USER_COUNT_FIELDS:
        assert isinstance(shaped[field], int)
    assert shaped["total_sessions"] == 4
    # Non-count fields are left alone
    assert shaped["username"] is None


def test_coalesce_is_idempotent():
    row = {"followers_count": None, "profile_views_count": "9"}
    once = coalesce(row, USER_COUNT_FIELDS)
    assert coalesce(once, USER_COUNT_FIELDS) == once


@pytest.mark.parametrize("total,offset,returned,expected", [
    (10, 0, 5, True),
    (10, 5, 5, False),
    (0, 0, 0, False),
    (11, 5, 5, True),
])
def test_has_more(total, offset, returned, expected):
    assert has_more(total, offset, returned) is expected


def test_paginated_envelope():
    body = paginated("rooms", [{"room_id": "a"}], Decimal("3"), limit=1, offset=1)
    assert body == {
        "rooms": [{"room_id": "a"}],
        "pagination": {"total": 3, "limit": 1, "offset": 1, "has_more": True},
    }


def test_parse_json():
    assert parse_json('{"a": 1}') == {"a": 1}
    assert parse_json([1, 2]) == [1, 2]
    assert parse_json(None) is None
    assert parse_json("") is None


def test_parse_json_logs_bad_values(caplog):
    with caplog.at_level("WARNING"):
        assert parse_json("{not json") is None
    assert "Unparseable JSON" in caplog.text


def test_shape_snapshot_replaces_raw_column():
    shaped = shape_snapshot({
        "snapshot_id": 1,
        "participants_json": '[{"user_id": "u1"}]',
        "participants_count": None,
    })
    assert "participants_json" not in shaped
    assert shaped["participants"] == [{"user_id": "u1"}]
    assert shaped["participants_count"] == 0


def test_shape_activity_parses_data():
    shaped = shape_activity({"activity_type": "join", "activity_data": '{"room_id": "r1"}'})
    assert shaped["activity_data"] == {"room_id": "r1"}


class TestRoomOccupancy:
    def test_full_when_capacity_reached(self):
        shaped = room_occupancy({"current_users_count": 8, "max_capacity": 8, "allows_unlimited": False,
                                 "is_full": False})
        assert shaped["is_full"] is True
        assert shaped["is_empty"] is False

    def test_not_full_below_capacity(self):
        shaped = room_occupancy({"current_users_count": 3, "max_capacity": 8, "is_full": True})
        assert shaped["is_full"] is False

    def test_unlimited_room_keeps_stored_flag(self):
        shaped = room_occupancy({"current_users_count": 50, "max_capacity": 8, "allows_unlimited": True,
                                 "is_full": False})
        assert shaped["is_full"] is False

    def test_empty_room(self):
        shaped = room_occupancy({"current_users_count": None, "max_capacity": None})
        assert shaped["current_users_count"] == 0
        assert shaped["is_empty"] is True
        assert shaped["is_full"] is False


def test_as_utc():
    naive = datetime(2026, 1, 1, 10, 0)
    assert as_utc(naive) == datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)
    plus_two = datetime(2026, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    assert as_utc(plus_two).hour == 10
    assert as_utc(None) is None


def test_as_dict_marks_naive_datetimes_utc():
    row = {"joined_at": datetime(2026, 1, 1, 10, 0), "date": date(2026, 1, 1), "user_id": "u1"}
    shaped = as_dict(row)
    assert shaped["joined_at"].tzinfo == timezone.utc
    assert shaped["date"] == date(2026, 1, 1)
    assert shaped["user_id"] == "u1"
