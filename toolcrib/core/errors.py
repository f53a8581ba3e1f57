"""Error taxonomy for the ledger plus the handlers that turn it into JSON.

Every business failure raised by :mod:`toolcrib.services.ledger` derives from
:class:`LedgerError`. Each subclass knows its HTTP status and a short machine
readable ``code`` so the request boundary never has to guess.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..middlewares import add_log_context

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(LedgerError):
    """A required field is missing or blank."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class NotFoundError(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class InsufficientStockError(LedgerError):
    """The item does not have enough units on the shelf."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "insufficient_stock"


class InsufficientBalanceError(LedgerError):
    """The user is returning more than they currently hold."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "insufficient_balance"


class StorageError(LedgerError):
    code = "storage_error"


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


async def ledger_error_handler(request: Request, exc: LedgerError):
    add_log_context(request, error_code=exc.code)
    return ErrorEnvelope(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(status_code=exc.status_code, code="http_error", message=message, details=details)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    add_log_context(request, error_code="validation_error")
    # Missing or mistyped body fields are client errors, reported as 400.
    return ErrorEnvelope(
        status_code=status.HTTP_400_BAD_REQUEST,
        code="validation_error",
        message="Incomplete or invalid data",
        details={"errors": jsonable_errors(exc.errors())},
    )


async def storage_exception_handler(request: Request, exc: SQLAlchemyError):
    add_log_context(request, error_code=StorageError.code)
    logger.error("storage.failure", exc_info=exc, extra={"extra_data": {"path": request.url.path}})
    return ErrorEnvelope(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code=StorageError.code,
        message="Storage failure",
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last resort so even unexpected failures reach the client as the JSON envelope."""

    logger.error("request.unhandled", exc_info=exc, extra={"extra_data": {"path": request.url.path}})
    return ErrorEnvelope(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="internal_error",
        message="Internal server error",
    )


def jsonable_errors(errors: Any) -> list[dict[str, Any]]:
    """Strip pydantic error entries down to JSON-safe values."""

    cleaned: list[dict[str, Any]] = []
    for error in errors:
        cleaned.append(
            {
                "loc": [str(part) for part in error.get("loc", ())],
                "msg": str(error.get("msg", "")),
                "type": str(error.get("type", "")),
            }
        )
    return cleaned
