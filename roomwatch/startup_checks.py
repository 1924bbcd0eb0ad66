"""Startup validation: catch misconfigurations before the app serves traffic."""
from __future__ import annotations

import logging
import sys

from config.settings import settings

logger = logging.getLogger(__name__)

_POOL_SETTINGS = ("DB_POOL_MAX", "DB_POOL_IDLE_TIMEOUT", "DB_POOL_ACQUIRE_TIMEOUT")


def validate_settings() -> list[str]:
    """Validate configuration. Returns list of warnings (empty = all good).

    Raises SystemExit for configurations the service cannot run with.
    """
    warnings: list[str] = []

    if not settings.DATABASE_URL:
        logger.critical("DATABASE_URL is not set")
        sys.exit(1)

    for name in _POOL_SETTINGS:
        if getattr(settings, name) <= 0:
            logger.critical("%s must be positive, got %s", name, getattr(settings, name))
            sys.exit(1)

    is_postgres = "sqlite" not in settings.DATABASE_URL

    if is_postgres and "*" in settings.CORS_ORIGINS:
        warnings.append("CORS_ORIGINS is set to * against a production database")

    if is_postgres and settings.DB_SSL_MODE == "disable":
        warnings.append("DB_SSL_MODE=disable: PostgreSQL traffic is unencrypted")

    for w in warnings:
        logger.warning("%s", w)

    if not warnings:
        logger.info("All startup checks passed")

    return warnings
