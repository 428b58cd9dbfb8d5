"""
Shared API Middleware
======================

Common middleware and exception handlers for the FastAPI application.

Application exceptions are rendered as problem-details JSON so clients get
field-attributed validation feedback.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from msp_desk.core import (
    ApplicationException,
    AuthenticationException,
    ConflictException,
    ForbiddenException,
    ResourceNotFoundException,
    ValidationException,
)
from msp_desk.shared.infrastructure.logging import get_context_logger, get_logger

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Adds correlation ID to requests for tracing.

    Correlation IDs link every log line written while serving one request.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER, str(uuid.uuid4()))
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs all requests and responses.

    Provides audit trail and debugging information.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        request_logger = get_context_logger(__name__, correlation_id)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            request_logger.error(
                "Request failed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        response_time = time.perf_counter() - start_time
        response.headers["X-Response-Time"] = f"{response_time:.3f}s"
        request_logger.info(
            "Request completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": int(response_time * 1000)
            }
        )
        return response


def _problem(
    request: Request,
    status_code: int,
    title: str,
    errors: dict | None = None
) -> JSONResponse:
    content = {
        "title": title,
        "status": status_code,
        "correlation_id": getattr(request.state, "correlation_id", None),
    }
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content)


async def validation_exception_handler(request: Request, exc: ValidationException) -> JSONResponse:
    logger.info(
        "Validation failed",
        extra={"path": request.url.path, "errors": exc.errors}
    )
    return _problem(request, status.HTTP_400_BAD_REQUEST, exc.message, exc.errors)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI body/path validation failures as field-keyed problem details."""
    errors = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "path", "query")]
        errors.setdefault(".".join(location) or "request", []).append(error.get("msg", "Invalid value"))
    return _problem(request, status.HTTP_400_BAD_REQUEST, "Request is invalid.", errors)


async def not_found_exception_handler(request: Request, exc: ResourceNotFoundException) -> JSONResponse:
    return _problem(request, status.HTTP_404_NOT_FOUND, exc.message)


async def forbidden_exception_handler(request: Request, exc: ForbiddenException) -> JSONResponse:
    return _problem(request, status.HTTP_403_FORBIDDEN, exc.message)


async def conflict_exception_handler(request: Request, exc: ConflictException) -> JSONResponse:
    logger.warning(
        "Concurrent modification rejected",
        extra={"path": request.url.path, "error_message": exc.message}
    )
    return _problem(request, status.HTTP_409_CONFLICT, exc.message)


async def authentication_exception_handler(request: Request, exc: AuthenticationException) -> JSONResponse:
    return _problem(request, status.HTTP_401_UNAUTHORIZED, exc.message)


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    logger.error(
        "Application error",
        extra={
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": exc.message
        }
    )
    return _problem(request, status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.

    Returns consistent error responses for all exceptions.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    # Don't expose internal details in production
    is_dev = getattr(getattr(request.app.state, "settings", None), "environment", None) == "development"

    return JSONResponse(
        status_code=500,
        content={
            "title": "Internal server error",
            "status": 500,
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None
        }
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map application exceptions onto HTTP status codes."""
    app.add_exception_handler(ValidationException, validation_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(ResourceNotFoundException, not_found_exception_handler)
    app.add_exception_handler(ForbiddenException, forbidden_exception_handler)
    app.add_exception_handler(ConflictException, conflict_exception_handler)
    app.add_exception_handler(AuthenticationException, authentication_exception_handler)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
