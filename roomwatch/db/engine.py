"""Async SQLAlchemy engine + session factory.

Supports both SQLite (dev/tests) and PostgreSQL (prod). PostgreSQL gets a
bounded pool: DB_POOL_MAX connections, DB_POOL_ACQUIRE_TIMEOUT seconds to
wait for one, connections recycled after DB_POOL_IDLE_TIMEOUT seconds.
"""
from __future__ import annotations

import logging
import ssl as ssl_module
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config.settings import settings

logger = logging.getLogger(__name__)

_SSL_OFF = {"disable", "allow", "prefer"}


def normalize_database_url(url: str, ssl_mode: str = "require") -> tuple[str, str]:
    """Return (async driver URL, effective ssl mode).

    postgres:// and postgresql:// become postgresql+asyncpg://. A libpq style
    ``sslmode`` query argument is not understood by asyncpg, so it is removed
    from the URL and takes precedence over ``ssl_mode``.
    """
    if not url:
        raise ValueError("DATABASE_URL is required")

    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            url = "postgresql+asyncpg://" + url[len(prefix):]
            break

    if not url.startswith("postgresql+asyncpg://"):
        return url, "disable"

    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query))
    ssl_mode = query.pop("sslmode", ssl_mode)
    url = urlunsplit(parts._replace(query=urlencode(query)))
    return url, ssl_mode


_db_url, _ssl_mode = normalize_database_url(settings.DATABASE_URL, settings.DB_SSL_MODE)

_is_sqlite = _db_url.startswith("sqlite")

_engine_kwargs: dict = {
    "echo": False,
    "future": True,
}

if not _is_sqlite:
    connect_args: dict = {}
    if _ssl_mode not in _SSL_OFF:
        # Hosted Postgres presents certs we don't pin
        ssl_context = ssl_module.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl_module.CERT_NONE
        connect_args["ssl"] = ssl_context

    _engine_kwargs.update({
        "pool_size": settings.DB_POOL_MAX,
        "max_overflow": 0,
        "pool_timeout": settings.DB_POOL_ACQUIRE_TIMEOUT,
        "pool_recycle": settings.DB_POOL_IDLE_TIMEOUT,
        "pool_pre_ping": True,
        "connect_args": connect_args,
    })

engine = create_async_engine(_db_url, **_engine_kwargs)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@event.listens_for(engine.sync_engine, "connect")
def _on_connect(dbapi_connection, connection_record):
    logger.debug("Opened database connection (%s)", engine.dialect.name)


async def get_session() -> AsyncSession:
    """Dependency for FastAPI: yields an async session."""
    async with async_session() as session:
        yield session
