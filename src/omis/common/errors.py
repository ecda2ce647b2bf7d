"""
Unified error handling.

Every failure leaves the API as the same JSON envelope:

    {"error": <category label>, "message": <detail>, "timestamp": <ISO-8601>}

Exceptions are matched against an ordered chain of mappers, most specific
first (lowest priority number wins), falling through to the catch-all.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = structlog.stdlib.get_logger()


class OmisError(Exception):
    """Base exception for all OMIS errors."""

    status_code: int = 500
    default_message: str = "An internal error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class MalformedRequestError(OmisError):
    status_code = 400
    default_message = "The request is malformed."


class NotFoundError(OmisError):
    status_code = 404
    default_message = "The requested resource does not exist."


class ConflictError(OmisError):
    status_code = 409
    default_message = "The request conflicts with the current state of the resource."


class ProviderUnavailableError(OmisError):
    """The persistence cache provider is not initialized or has been shut down."""

    status_code = 500
    default_message = "The cache provider is unavailable."


def _http_status(exc: Exception) -> int | None:
    if isinstance(exc, StarletteHTTPException):
        return exc.status_code
    return None


@dataclass(frozen=True)
class ErrorMapper:
    """One link of the translation chain."""

    priority: int
    label: str
    matches: Callable[[Exception], bool]
    status: Callable[[Exception], int]

    def render(self, exc: Exception) -> ORJSONResponse:
        status_code = self.status(exc)
        return ORJSONResponse(
            status_code=status_code,
            content={
                "error": self.label,
                "message": describe(exc, status_code),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )


def describe(exc: Exception, status_code: int) -> str:
    """Human-readable detail for an exception; never empty."""
    if isinstance(exc, OmisError):
        return exc.message
    if isinstance(exc, RequestValidationError):
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return "; ".join(parts) or MalformedRequestError.default_message
    if isinstance(exc, StarletteHTTPException):
        return str(exc.detail) if exc.detail else f"HTTP {status_code}"
    return str(exc) or OmisError.default_message


ERROR_MAPPERS: list[ErrorMapper] = sorted(
    [
        ErrorMapper(
            priority=1,
            label="Malformed request",
            matches=lambda e: isinstance(e, (MalformedRequestError, RequestValidationError))
            or _http_status(e) == 400,
            status=lambda e: 400,
        ),
        ErrorMapper(
            priority=100,
            label="Resource not found",
            matches=lambda e: isinstance(e, NotFoundError) or _http_status(e) == 404,
            status=lambda e: 404,
        ),
        ErrorMapper(
            priority=200,
            label="Conflict",
            matches=lambda e: isinstance(e, ConflictError),
            status=lambda e: 409,
        ),
        ErrorMapper(
            priority=500,
            label="Request error",
            matches=lambda e: _http_status(e) is not None,
            status=lambda e: _http_status(e) or 500,
        ),
        ErrorMapper(
            priority=1000,
            label="Server error",
            matches=lambda e: True,
            status=lambda e: 500,
        ),
    ],
    key=lambda m: m.priority,
)


def resolve_mapper(exc: Exception) -> ErrorMapper:
    """Return the first mapper in priority order that accepts ``exc``."""
    for mapper in ERROR_MAPPERS:
        if mapper.matches(exc):
            return mapper
    return ERROR_MAPPERS[-1]


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    async def translate(request: Request, exc: Exception) -> ORJSONResponse:
        mapper = resolve_mapper(exc)
        response = mapper.render(exc)
        if response.status_code >= 500:
            await logger.aexception(
                "omis.unhandled_error",
                error_type=type(exc).__name__,
                path=request.url.path,
                error=str(exc),
                exc_info=exc,
            )
        else:
            await logger.awarning(
                "omis.error",
                error_type=type(exc).__name__,
                label=mapper.label,
                status_code=response.status_code,
                path=request.url.path,
            )
        return response

    app.add_exception_handler(OmisError, translate)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, translate)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, translate)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, translate)
