"""Centralized exception handlers for the FastAPI app.

Register with register_exception_handlers(app). Maps domain and framework
exceptions to HTTP responses.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from echohub.core.config import get_settings
from echohub.domain.exceptions import EchoHubException

logger = logging.getLogger(__name__)

# Domain error_code -> HTTP status. WebSocket sessions report these errors as
# frames; current HTTP routes raise none of them. The table covers every code
# so a route that calls into the registry gets a meaningful status.
_ERROR_CODE_STATUS: dict[str, int] = {
    "CONNECTION_NOT_FOUND": 404,
    "CONNECTION_CLOSED": 409,
    "QUEUE_FULL": 429,
    "MALFORMED_MESSAGE": 400,
    "TRANSPORT_ERROR": 502,
    "REGISTRY_CORRUPTION": 503,
}


def _echohub_exception_handler(request: Request, exc: EchoHubException) -> JSONResponse:
    """Return JSON from EchoHubException.to_dict() with appropriate status code."""
    status = _ERROR_CODE_STATUS.get(exc.error_code, 400)
    if status >= 500:
        logger.error("%s on %s: %s", exc.error_code, request.url.path, exc.message)
    return JSONResponse(status_code=status, content=exc.to_dict())


def _validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 422 with validation error details."""
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": exc.errors(),
        },
    )


def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Return JSON for Starlette HTTP exceptions (status + detail)."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "HTTP_ERROR", "message": exc.detail},
    )


def _generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return 500; include detail only when debug is True."""
    logger.exception("Unhandled exception: %s", exc)
    settings = get_settings()
    detail: Any = str(exc) if settings.debug else "Internal server error"
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "message": detail},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app.

    Handlers: EchoHubException (and subclasses), RequestValidationError,
    StarletteHTTPException, generic Exception.
    """
    app.add_exception_handler(EchoHubException, _echohub_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _generic_exception_handler)
