"""Request correlation ids and the per-request access log.

Handlers can attach ledger details (item, user, ticket type, error code) with
:func:`add_log_context`; they end up on the ``request.completed`` line so a
single log record tells which item a request touched and how it ended.
"""

from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import HTTPConnection, Request
from starlette.responses import Response

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
logger = logging.getLogger("toolcrib.request")

LOG_CONTEXT_KEY = "log_context"


def add_log_context(connection: HTTPConnection, **values: Any) -> None:
    """Merge non-empty ``values`` into the access-log fields for this request."""

    context = getattr(connection.state, LOG_CONTEXT_KEY, None)
    if context is None:
        context = {}
        setattr(connection.state, LOG_CONTEXT_KEY, context)
    context.update({key: value for key, value in values.items() if value is not None})


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with a correlation id and log its outcome."""

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self.header_name) or uuid4().hex
        token = request_id_ctx_var.set(request_id)
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000
            response.headers[self.header_name] = request_id
            response.headers.setdefault("X-Response-Time", f"{duration_ms:.2f}ms")
            fields: dict[str, Any] = {
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            }
            fields.update(getattr(request.state, LOG_CONTEXT_KEY, None) or {})
            logger.info("request.completed", extra={"extra_data": fields})
            return response
        finally:
            request_id_ctx_var.reset(token)
