"""Service error kinds and storage-error translation.

Handlers raise ``NotFoundError``; driver and pool failures inside a route are
turned into ``StorageError`` by ``ServiceRoute``, using the message the
endpoint declared with ``@storage_errors``. The app's exception handlers map
``ServiceError`` subclasses to HTTP responses in one place.
"""
from __future__ import annotations

from typing import Any, Callable, TypeVar

from fastapi.routing import APIRoute
from sqlalchemy.exc import SQLAlchemyError
from starlette.requests import Request
from starlette.responses import Response

F = TypeVar("F", bound=Callable[..., Any])

DEFAULT_STORAGE_MESSAGE = "Database request failed"


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class NotFoundError(ServiceError):
    status_code = 404


class StorageError(ServiceError):
    """Query or connection failure. Never retried."""
    status_code = 500


def storage_errors(message: str) -> Callable[[F], F]:
    """Declare the error message an endpoint reports when storage fails."""

    def decorator(func: F) -> F:
        func.storage_error_message = message
        return func

    return decorator


class ServiceRoute(APIRoute):
    """APIRoute that re-raises SQLAlchemy/connection errors as ``StorageError``."""

    def get_route_handler(self) -> Callable[[Request], Any]:
        handler = super().get_route_handler()
        message = getattr(self.endpoint, "storage_error_message", DEFAULT_STORAGE_MESSAGE)

        async def route_handler(request: Request) -> Response:
            try:
                return await handler(request)
            except (SQLAlchemyError, OSError) as exc:
                raise StorageError(message, details=str(exc)) from exc

        return route_handler
