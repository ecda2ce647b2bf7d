"""Tag every request and response with an X-Request-ID."""

from __future__ import annotations

import re
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "x-request-id"

# Client-supplied ids end up in log lines and response headers
_VALID_REQUEST_ID = re.compile(r"[A-Za-z0-9._:-]{1,64}")


def resolve_request_id(incoming: str | None) -> str:
    """Reuse the caller's id when it is well-formed, otherwise mint one."""
    if incoming and _VALID_REQUEST_ID.fullmatch(incoming):
        return incoming
    return uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER)
        request_id = resolve_request_id(incoming)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        if incoming is not None and incoming != request_id:
            await structlog.stdlib.get_logger().awarning(
                "request_id.replaced", received_length=len(incoming)
            )

        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
