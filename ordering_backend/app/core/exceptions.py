"""
Custom exceptions and error handlers for consistent error responses.

Every error body has the shape {success: false, error, error_code, details}.
"""

import logging
from decimal import Decimal

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class NotFoundError(AppException):
    """Raised when an entity, or a tenant-scoped entity, is missing."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class ForbiddenError(AppException):
    """Raised when the actor lacks the required relationship to the entity."""

    def __init__(self, message: str = "Access denied", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_FORBIDDEN",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class InvalidStateError(AppException):
    """Raised when an entity is not in a state that allows the operation."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_INVALID_STATE",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class InvalidTransitionError(AppException):
    """Raised when an order status transition is not allowed from its current status."""

    def __init__(self, order_id: int, current: str, target: str, details: Dict[str, Any] = None):
        super().__init__(
            message=f"Order {order_id} cannot move from '{current}' to '{target}'",
            error_code="ERR_INVALID_TRANSITION",
            status_code=status.HTTP_409_CONFLICT,
            details={"order_id": order_id, "current_status": current, "target_status": target, **(details or {})}
        )


class ClaimConflictError(AppException):
    """Raised when orders cannot be claimed for a route (lost race or not claimable)."""

    def __init__(self, message: str, conflicts: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CLAIM_CONFLICT",
            status_code=status.HTTP_409_CONFLICT,
            details={"conflicts": conflicts or {}}
        )


class AmountExceedsDebtError(AppException):
    """Raised when a payment is larger than the customer's current debt."""

    def __init__(self, amount: Decimal, current_debt: Decimal, details: Dict[str, Any] = None):
        super().__init__(
            message=f"Payment amount ({amount}) exceeds current debt ({current_debt})",
            error_code="ERR_AMOUNT_EXCEEDS_DEBT",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"amount": amount, "current_debt": current_debt, **(details or {})}
        )


class DomainValidationError(AppException):
    """Raised for malformed input detected by the domain layer."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class InternalError(AppException):
    """Raised when a persistence step fails; callers may retry."""

    def __init__(self, message: str = "An internal error occurred", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_INTERNAL",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details
        )


def _error_body(message: str, error_code: str, details: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "success": False,
        "error": message,
        "error_code": error_code,
        "details": details,
    }


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.error_code, jsonable_encoder(exc.details))
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail), error_code, {}),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body("Validation error", "ERR_VALIDATION", {"errors": jsonable_encoder(exc.errors())})
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handler for persistence failures that escaped the domain layer."""
    logger.exception("Persistence failure on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("A persistence error occurred", "ERR_INTERNAL", {})
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("An internal server error occurred", "ERR_INTERNAL", {})
    )
