from __future__ import annotations

from .request_id import RequestIdMiddleware, add_log_context, request_id_ctx_var

__all__ = [
    "RequestIdMiddleware",
    "add_log_context",
    "request_id_ctx_var",
]
