"""Row shaping: turn result rows into response dicts.

Numeric aggregates never leave the service as null, serialized JSON columns
are parsed, and paginated lists carry their pagination block.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

USER_COUNT_FIELDS = (
    "followers_count",
    "following_count",
    "friends_count",
    "supporter_level",
    "profile_views_count",
    "total_sessions",
    "total_duration_seconds",
)


def as_int(value: Any) -> int:
    """Driver value (int, Decimal, float, numeric string, None) -> int, 0 when unusable."""
    if value is None or isinstance(value, bool):
        return int(value or 0)
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        return int(value)
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def as_utc(value: datetime | None) -> datetime | None:
    """Aware UTC datetime. Naive values (SQLite hands these back) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def as_dict(row: Any) -> dict[str, Any]:
    """SQLAlchemy Row / mapping -> plain dict, datetimes as aware UTC."""
    if row is None:
        return {}
    mapping = getattr(row, "_mapping", row)
    return {k: as_utc(v) if isinstance(v, datetime) else v for k, v in mapping.items()}


def coalesce(row: Mapping[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    """Copy of ``row`` with every field in ``fields`` forced to an int (0 if null)."""
    shaped = dict(row)
    for field in fields:
        shaped[field] = as_int(shaped.get(field))
    return shaped


def shape_rows(rows: Iterable[Any], fields: Iterable[str] = ()) -> list[dict[str, Any]]:
    fields = tuple(fields)
    return [coalesce(as_dict(r), fields) for r in rows]


def parse_json(value: Any) -> Any:
    """Parse a serialized JSON column; already-parsed values pass through."""
    if not isinstance(value, (str, bytes)):
        return value
    if not value:
        return None
    try:
        return json.loads(value)
    except ValueError:
        logger.warning("Unparseable JSON column value (%d chars)", len(value))
        return None


def shape_activity(row: Mapping[str, Any]) -> dict[str, Any]:
    shaped = dict(row)
    shaped["activity_data"] = parse_json(shaped.get("activity_data"))
    return shaped


def shape_snapshot(row: Mapping[str, Any]) -> dict[str, Any]:
    """``participants_json`` is replaced by the parsed ``participants``."""
    shaped = dict(row)
    participants = parse_json(shaped.pop("participants_json", None))
    shaped["participants"] = participants
    shaped["participants_count"] = as_int(shaped.get("participants_count"))
    return shaped


def room_occupancy(room: Mapping[str, Any]) -> dict[str, Any]:
    """Derive is_full / is_empty from the live head count.

    A room is full when it has a finite capacity (max_capacity set and not
    allows_unlimited) and current_users_count has reached it. Without a finite
    capacity the stored flag is kept.
    """
    shaped = dict(room)
    count = as_int(shaped.get("current_users_count"))
    capacity = shaped.get("max_capacity")
    shaped["current_users_count"] = count
    if capacity and not shaped.get("allows_unlimited"):
        shaped["is_full"] = count >= capacity
    else:
        shaped["is_full"] = bool(shaped.get("is_full"))
    shaped["is_empty"] = count == 0
    return shaped


def has_more(total: int, offset: int, returned: int) -> bool:
    return offset + returned < total


def paginated(key: str, items: list[Any], total: Any, limit: int, offset: int) -> dict[str, Any]:
    """``{key: items, "pagination": {total, limit, offset, has_more}}``."""
    total = as_int(total)
    return {
        key: items,
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": has_more(total, offset, len(items)),
        },
    }
