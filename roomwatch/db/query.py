"""Incremental WHERE-clause builder for endpoints with optional filters.

A ``Predicate`` keeps its terms in declaration order. Optional terms skip
themselves when their value is absent, so callers never track placeholder
positions: the SQL compiler numbers bind parameters in the order the terms
were appended. The same predicate feeds a page query and its count query;
``Page`` (LIMIT/OFFSET) is applied last and never becomes part of it.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Collection

from sqlalchemy import and_, true
from sqlalchemy.dialects.postgresql import asyncpg as pg_asyncpg
from sqlalchemy.engine import Dialect
from sqlalchemy.sql import ColumnElement, Select


def _absent(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def window_start(*, days: float | None = None, hours: float | None = None,
                 now: datetime | None = None) -> datetime:
    """Start of a relative window ending at ``now`` (UTC)."""
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=days or 0, hours=hours or 0)


class Predicate:
    """Ordered AND-ed WHERE terms with skip-if-absent appenders."""

    def __init__(self, *base: ColumnElement):
        self._terms: list[ColumnElement] = list(base)

    def __len__(self) -> int:
        return len(self._terms)

    @property
    def terms(self) -> tuple[ColumnElement, ...]:
        return tuple(self._terms)

    def add(self, term: ColumnElement, present: bool = True) -> Predicate:
        if present:
            self._terms.append(term)
        return self

    def equals(self, column, value: Any) -> Predicate:
        if _absent(value):
            return self
        return self.add(column == value)

    def one_of(self, column, value: Any, allowed: Collection[Any]) -> Predicate:
        """Exact match, only when ``value`` is one of ``allowed``."""
        if value not in allowed:
            return self
        return self.add(column == value)

    def contains(self, column, value: str | None) -> Predicate:
        """Case-insensitive ``%value%`` match; LIKE wildcards in value are literal."""
        if _absent(value):
            return self
        return self.add(column.icontains(value, autoescape=True))

    def at_least(self, column, value: Any) -> Predicate:
        if value is None:
            return self
        return self.add(column >= value)

    def at_most(self, column, value: Any) -> Predicate:
        if value is None:
            return self
        return self.add(column <= value)

    def since(self, column, *, days: float | None = None, hours: float | None = None,
              now: datetime | None = None) -> Predicate:
        """Keep rows whose ``column`` falls in the last ``days``/``hours``."""
        if days is None and hours is None:
            return self
        return self.add(column >= window_start(days=days, hours=hours, now=now))

    @property
    def clause(self) -> ColumnElement:
        return and_(*self._terms) if self._terms else true()

    def apply(self, stmt: Select) -> Select:
        return stmt.where(*self._terms) if self._terms else stmt

    def render(self, dialect: Dialect | None = None) -> tuple[str, list[Any]]:
        """Compile to ``(sql, params)`` with positional ``$n`` placeholders.

        Params are listed in placeholder order, which is append order.
        """
        compiled = self.clause.compile(dialect=dialect or pg_asyncpg.dialect())
        values = compiled.params
        names = compiled.positiontup or []
        return str(compiled), [values[name] for name in names]


@dataclass(frozen=True)
class Page:
    limit: int
    offset: int = 0

    def apply(self, stmt: Select) -> Select:
        return stmt.limit(self.limit).offset(self.offset)
