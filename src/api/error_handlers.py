"""Centralized error handling for market data API endpoints."""

from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from src.services.errors import StoreUnavailable, UpstreamUnavailable
from src.utils.logger import StructuredLogger

structured_logger = StructuredLogger("API")


class ErrorCode:
    """Standard error codes returned by the API."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse:
    """Standardized error response format."""

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | list[str] | None = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ):
        """
        Initialize error response.

        Args:
            error_code: Standard error code from ErrorCode class
            message: Human-readable error message
            details: Additional error details (field-specific errors, etc.)
            status_code: HTTP status code
        """
        self.error_code = error_code
        self.message = message
        self.details = details
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        response = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            response["details"] = self.details
        return response

    def to_http_exception(self) -> HTTPException:
        """Convert to FastAPI HTTPException."""
        return HTTPException(
            status_code=self.status_code,
            detail=self.to_dict(),
        )

    def to_json_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


def create_validation_error_response(errors: list[dict[str, Any]]) -> ErrorResponse:
    """
    Create standardized validation error response from Pydantic validation errors.

    Args:
        errors: List of validation errors from Pydantic

    Returns:
        ErrorResponse with field-specific validation errors
    """
    field_errors = {}
    for error in errors:
        field_path = ".".join(str(loc) for loc in error["loc"])
        field_errors[field_path] = error["msg"]

    return ErrorResponse(
        error_code=ErrorCode.VALIDATION_ERROR,
        message="Validation failed for one or more fields",
        details=field_errors,
        status_code=status.HTTP_400_BAD_REQUEST,
    )


def create_not_found_error(resource: str, identifier: str) -> ErrorResponse:
    """
    Create not found error (404).

    Args:
        resource: Kind of resource looked up (cryptocurrency, alert, ...)
        identifier: Identifier that was not found
    """
    return ErrorResponse(
        error_code=ErrorCode.NOT_FOUND,
        message=f"{resource.capitalize()} not found",
        details={resource: identifier},
        status_code=status.HTTP_404_NOT_FOUND,
    )


def create_bad_request_error(message: str, field: str | None = None) -> ErrorResponse:
    return ErrorResponse(
        error_code=ErrorCode.VALIDATION_ERROR,
        message=message,
        details={field: message} if field else None,
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI validation errors with standardized format."""
    return create_validation_error_response(exc.errors()).to_json_response()


async def pydantic_validation_exception_handler(
    request: Request, exc: ValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with standardized format."""
    return create_validation_error_response(exc.errors()).to_json_response()


async def upstream_exception_handler(request: Request, exc: UpstreamUnavailable) -> JSONResponse:
    """Map upstream failures that reach the HTTP edge to 502."""
    structured_logger.warning(
        "Upstream unavailable",
        context={"path": request.url.path, "status_code": exc.status_code},
        exception=exc,
    )
    details = {"upstream_status": exc.status_code} if exc.status_code else None
    return ErrorResponse(
        error_code=ErrorCode.UPSTREAM_UNAVAILABLE,
        message="Upstream market data provider is unavailable",
        details=details,
        status_code=status.HTTP_502_BAD_GATEWAY,
    ).to_json_response()


async def store_exception_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    """Map storage failures to 503."""
    structured_logger.error(
        "Store unavailable", context={"path": request.url.path}, exception=exc
    )
    return ErrorResponse(
        error_code=ErrorCode.STORE_UNAVAILABLE,
        message="Market data store is unavailable",
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    ).to_json_response()


def register_exception_handlers(app: FastAPI) -> None:
    """Install the standard handlers on an application."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, pydantic_validation_exception_handler)
    app.add_exception_handler(UpstreamUnavailable, upstream_exception_handler)
    app.add_exception_handler(StoreUnavailable, store_exception_handler)
