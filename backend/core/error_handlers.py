"""Centralized exception handlers for FastAPI application.

Every error is rendered in the API envelope: {"success": false, "error": "..."}.
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
    )


def _describe_validation_error(error: dict) -> str:
    """Readable message for one pydantic error, with the offending field."""
    ctx_error = error.get("ctx", {}).get("error")
    message = str(ctx_error) if ctx_error else error.get("msg", "Invalid request")
    location = [
        str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")
    ]
    if not location:
        return message
    return f"{'.'.join(location)}: {message}"


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Render HTTPException raised by routes (400/404) in the envelope."""
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
    return error_response(exc.status_code, str(exc.detail))


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Request shape violations are client errors (400)."""
    message = "; ".join(_describe_validation_error(error) for error in exc.errors())
    logger.warning(f"Validation error on {request.url.path}: {message}")
    return error_response(status.HTTP_400_BAD_REQUEST, message or "Invalid request")


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Handle ValueError exceptions (validation errors, business logic errors)."""
    logger.warning(f"ValueError on {request.url.path}: {str(exc)}")
    return error_response(status.HTTP_400_BAD_REQUEST, str(exc))


async def runtime_error_handler(request: Request, exc: RuntimeError) -> JSONResponse:
    """Handle RuntimeError exceptions (database errors, system errors)."""
    logger.error(f"RuntimeError on {request.url.path}: {str(exc)}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(f"Unexpected error on {request.url.path}: {str(exc)}", exc_info=True)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred"
    )
