"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers. Every
error body uses the service envelope:

    {"success": false, "error": <code>, "message": <text>, "details": {...}}
"""

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("driver_matching.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Raised for malformed coordinates, bad radius, or missing identifiers."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id},
        )


class StorageError(AppException):
    """Raised when the location store is unavailable or a write fails."""

    def __init__(self, message: str = "Location store unavailable", details: Dict[str, Any] = None,
                 error_code: str = "ERR_STORAGE_001", status_code: int = status.HTTP_503_SERVICE_UNAVAILABLE):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details,
        )


class DriverConflictError(StorageError):
    """Raised when a driver with the same ID already exists."""

    def __init__(self, driver_id: str):
        super().__init__(
            message=f"Driver with ID {driver_id} already exists",
            details={"id": driver_id},
            error_code="ERR_STORAGE_002",
            status_code=status.HTTP_409_CONFLICT,
        )


class CacheError(AppException):
    """
    Raised by proximity cache implementations.

    Never leaves the location service: callers log it and fall back to
    the store (reads) or carry on (writes).
    """

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="ERR_CACHE_001",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


class UpstreamUnavailableError(AppException):
    """Raised when the location service cannot be reached or the circuit is open."""

    def __init__(self, message: str = "Driver location service unavailable", details: Dict[str, Any] = None,
                 error_code: str = "ERR_UPSTREAM_001", status_code: int = status.HTTP_503_SERVICE_UNAVAILABLE):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details,
        )


class LocationServiceOperationError(UpstreamUnavailableError):
    """Raised when the location service answers with an explicit failure envelope."""

    def __init__(self, upstream_error: str, upstream_message: str):
        super().__init__(
            message=f"Driver location service error: {upstream_error} - {upstream_message}",
            details={"upstream_error": upstream_error, "upstream_message": upstream_message},
            error_code="ERR_UPSTREAM_002",
            status_code=status.HTTP_502_BAD_GATEWAY,
        )
        self.upstream_error = upstream_error
        self.upstream_message = upstream_message


class NoDriversAvailableError(AppException):
    """Raised when a search returns no candidates. An expected outcome, not a failure."""

    def __init__(self, message: str = "No drivers found nearby"):
        super().__init__(
            message=message,
            error_code="ERR_NO_DRIVERS",
            status_code=status.HTTP_404_NOT_FOUND,
        )


def _error_body(error_code: str, message: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "error": error_code,
        "message": message,
        "details": details or {},
    }


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.error_code, exc.message, exc.details),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handler for HTTP exceptions, including router 404/405, with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        405: "ERR_METHOD_NOT_ALLOWED",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(error_code, exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for request body validation errors. Reported as 400, not 422."""
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("ERR_VALIDATION", "Request validation failed", {"errors": errors}),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("ERR_INTERNAL_SERVER", "An internal server error occurred"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register the global exception handlers on an application."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
