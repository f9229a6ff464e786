import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from src.core.config import settings
from src.core.exceptions import AppException
from src.shared.schemas import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int,
    message: str,
    errors: list[ErrorDetail] | None = None,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        message=message,
        errors=errors if errors is not None else [ErrorDetail(message=message)],
        details=details or None,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Rejected ledger operations: the message names the rule, `details` the figures."""
    details = {k: v for k, v in exc.details.items() if k != "field"}
    if exc.status_code == 409:
        logger.info("Conflict on %s %s: %s", request.method, request.url.path, exc.message)
    return _error_response(
        exc.status_code,
        exc.message,
        errors=[ErrorDetail(field=exc.details.get("field"), message=exc.message)],
        details=details,
    )


def _format_validation_errors(errors: list[dict]) -> list[ErrorDetail]:
    formatted: list[ErrorDetail] = []
    for error in errors:
        loc = error.get("loc", ())
        # "body.amount" -> "amount"
        if loc and loc[0] == "body":
            loc = loc[1:]
        field = ".".join(str(part) for part in loc) if loc else None
        formatted.append(ErrorDetail(field=field, message=error.get("msg", "Invalid value")))
    return formatted


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return _error_response(422, "Validation error", errors=_format_validation_errors(exc.errors()))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail) if exc.detail else "HTTP error")


def _friendly_db_error(exc: Exception) -> tuple[str, int]:
    """
    Map storage-layer errors to a stable message and status.

    Raw driver text is only exposed when debug is enabled.
    """
    raw = str(getattr(exc, "orig", exc))
    lower = raw.lower()

    if ("does not exist" in lower and "column" in lower) or "no such column" in lower:
        return "Database schema is out of date. Run the latest migrations and try again.", 500
    # Lock timeouts and serialization failures: the ledger write lost a race
    if "database is locked" in lower or "could not serialize" in lower or "deadlock" in lower:
        return "The record is being modified by another request. Retry the operation.", 409
    if settings.debug:
        return raw, 500
    return "Database error", 500


async def sqlalchemy_db_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    message, status_code = _friendly_db_error(exc)
    logger.error("Unhandled database error on %s %s: %s", request.method, request.url.path, exc)
    return _error_response(status_code, message)
