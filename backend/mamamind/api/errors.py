"""API error handling - consistent error responses.

Registers FastAPI exception handlers that convert domain exceptions into
``{"error": {"code": "...", "message": "...", "details": {...}}}`` JSON
responses.

Status code mapping:
- ``MamaMindError`` subclasses -> their class-level ``status_code``
- ``RequestValidationError`` (body/query shape) -> 400 with per-field reasons
- Any other ``Exception`` -> 500 Internal Server Error

5xx responses never carry the exception message or details; those are
logged server-side only.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from mamamind.api.schemas import ErrorDetail, ErrorResponse
from mamamind.core.exceptions import MamaMindError, ValidationError

logger = logging.getLogger(__name__)

_GENERIC_MESSAGES = {
    500: "Internal server error",
    503: "Service temporarily unavailable",
}


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details or {}))
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _handle_domain_error(request: Request, exc: MamaMindError) -> JSONResponse:
    """Map a MamaMindError onto its status code."""
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s",
            exc.code,
            request.method,
            request.url.path,
            exc.message,
            exc_info=exc,
        )
        message = _GENERIC_MESSAGES.get(exc.status_code, "Internal server error")
        return error_response(exc.status_code, exc.code, message)

    logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


def _field_name(loc: tuple) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts) or "body"


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 for malformed request bodies and query parameters."""
    fields = {_field_name(tuple(err.get("loc", ()))): err.get("msg", "invalid") for err in exc.errors()}
    logger.info("Request validation failed on %s: %s", request.url.path, sorted(fields))
    return error_response(
        400,
        ValidationError.code,
        "Request validation failed",
        {"fields": fields},
    )


class CatchAllErrorMiddleware(BaseHTTPMiddleware):
    """Middleware that catches any unhandled exception and returns a 500.

    Sits above the Starlette exception handler layer so that exceptions
    without a registered handler still get the standard error envelope.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled exception on %s %s",
                request.method,
                request.url.path,
                exc_info=True,
            )
            return error_response(500, "INTERNAL_ERROR", "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI application.

    Call this from ``create_app()`` after constructing the ``FastAPI`` instance.
    """
    app.add_exception_handler(MamaMindError, _handle_domain_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_request_validation)  # type: ignore[arg-type]
    app.add_middleware(CatchAllErrorMiddleware)
