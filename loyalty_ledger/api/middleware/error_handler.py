"""
Exception handlers for the ledger API.

Every error body has the same shape::

    {"error": "<message>", "correlation_id": "<id>", "details": {...}}

``details`` is left out when there is nothing to add. A purchase that hit a
creation conflict or an unavailable store is marked ``retryable``: sending
it again is safe because nothing was committed.
"""
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from loyalty_ledger.lib.errors import (
    ConflictError,
    LedgerError,
    StorageUnavailable,
    ValidationError,
)
from loyalty_ledger.lib.logging import get_logger, log_with_context

logger = get_logger(__name__)

STORAGE_RETRY_AFTER_SECONDS = 1

# Log level per error type; other ledger errors go by status code.
LOG_LEVELS = (
    (ValidationError, "info"),
    (ConflictError, "warning"),
    (StorageUnavailable, "error"),
)

RETRYABLE_ERRORS = (ConflictError, StorageUnavailable)


def error_response(
    request: Request,
    status_code: int,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build the JSON error body, tagged with the request's correlation ID."""
    content = {
        "error": message,
        "correlation_id": getattr(request.state, "correlation_id", "unknown"),
    }
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def log_level_for(exc: LedgerError) -> str:
    for error_type, level in LOG_LEVELS:
        if isinstance(exc, error_type):
            return level
    return "warning" if exc.status_code < 500 else "error"


async def ledger_exception_handler(request: Request, exc: LedgerError) -> JSONResponse:
    log_with_context(
        logger,
        log_level_for(exc),
        f"Ledger error: {exc.message}",
        status_code=exc.status_code,
        method=request.method,
        path=request.url.path,
        details=exc.details,
    )
    
    details = dict(exc.details)
    headers = None
    if isinstance(exc, RETRYABLE_ERRORS):
        details["retryable"] = True
    if isinstance(exc, StorageUnavailable):
        headers = {"Retry-After": str(STORAGE_RETRY_AFTER_SECONDS)}
    
    return error_response(request, exc.status_code, exc.message, details, headers)


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Request bodies and query strings that fail schema validation.
    
    The first failing location is reported as ``field``, matching the
    ledger's own ValidationError body, with the full list under ``errors``.
    """
    errors = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    log_with_context(
        logger,
        "info",
        "Request failed schema validation",
        method=request.method,
        path=request.url.path,
        errors=errors,
    )
    
    details: Dict[str, Any] = {"errors": errors}
    if errors and errors[0]["loc"]:
        details["field"] = str(errors[0]["loc"][-1])
    
    return error_response(
        request, status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation error", details
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Unknown routes and wrong methods, in the ledger's error shape."""
    log_with_context(
        logger,
        "info",
        f"HTTP {exc.status_code}: {exc.detail}",
        method=request.method,
        path=request.url.path,
    )
    return error_response(
        request, exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None)
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return error_response(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
    )
