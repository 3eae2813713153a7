"""
Custom exceptions and error handlers for consistent error responses.

Every failure the core can report is a typed AppException carrying an error
code, a category (validation / policy / consistency / infrastructure) and an
HTTP status so the presentation layer can branch on kind.
"""

import enum
import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger("poultry_pos.errors")


class ErrorCategory(str, enum.Enum):
    VALIDATION = "validation"
    POLICY = "policy"
    CONSISTENCY = "consistency"
    INFRASTRUCTURE = "infrastructure"


class AppException(Exception):
    """Base application exception."""

    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class ValidationFailedError(AppException):
    """Raised for caller-correctable input problems not covered by a narrower error."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class InvalidAmountError(AppException):
    """Raised when a monetary amount is zero, negative or above the business limit."""

    def __init__(self, message: str = "Amount must be greater than zero", amount: Any = None):
        super().__init__(
            message=message,
            error_code="ERR_LEDGER_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"amount": str(amount) if amount is not None else None}
        )


class InvalidWeightError(AppException):
    """Raised when a weight or cage count is not positive."""

    def __init__(self, message: str = "Weight must be greater than zero", weight: Any = None):
        super().__init__(
            message=message,
            error_code="ERR_WEIGHT_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"weight": str(weight) if weight is not None else None}
        )


class ImmutableRecordError(AppException):
    """Raised when code tries to change or delete a posted financial record."""

    def __init__(self, record_type: str, record_id: Any = None):
        super().__init__(
            message=f"{record_type} records are immutable once posted",
            error_code="ERR_LEDGER_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"record_type": record_type, "id": record_id}
        )


class InactiveEntityError(AppException):
    """Raised when a command targets a deactivated customer or truck."""

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            message=f"{resource} {resource_id} is inactive",
            error_code="ERR_STATE_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource": resource, "id": resource_id}
        )


class InvalidStateTransitionError(AppException):
    """Raised when a state machine transition is not permitted from the current state."""

    def __init__(self, resource: str, current: str, attempted: str):
        super().__init__(
            message=f"Cannot {attempted} {resource} in state {current}",
            error_code="ERR_STATE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource": resource, "current_state": current, "attempted": attempted}
        )


class OverAllocationError(AppException):
    """Raised when sold weight would exceed the loaded weight."""

    def __init__(self, requested: Any, available: Any, scope: str):
        super().__init__(
            message=f"Sold weight {requested} exceeds remaining {scope} weight {available}",
            error_code="ERR_RECON_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"requested": str(requested), "available": str(available), "scope": scope}
        )


class DuplicateReconciliationError(AppException):
    """Raised when a truck-day reconciliation already exists."""

    def __init__(self, truck_id: int, day: Any):
        super().__init__(
            message=f"Reconciliation for truck {truck_id} on {day} already exists",
            error_code="ERR_RECON_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"truck_id": truck_id, "date": str(day)}
        )


class ReconciliationNotFoundError(AppException):
    """Raised when a truck-day reconciliation was never opened."""

    def __init__(self, truck_id: int, day: Any):
        super().__init__(
            message=f"No reconciliation opened for truck {truck_id} on {day}",
            error_code="ERR_RECON_003",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"truck_id": truck_id, "date": str(day)}
        )


class ReconciliationClosedError(AppException):
    """Raised when weight is recorded against a closed truck-day."""

    def __init__(self, truck_id: int, day: Any, current: str):
        super().__init__(
            message=f"Reconciliation for truck {truck_id} on {day} is closed ({current}); reopen it first",
            error_code="ERR_RECON_004",
            status_code=status.HTTP_409_CONFLICT,
            details={"truck_id": truck_id, "date": str(day), "status": current}
        )


class OverpaymentRejectedError(AppException):
    """Raised when a payment exceeds the balance and policy forbids credit."""

    category = ErrorCategory.POLICY

    def __init__(self, amount: Any, balance: Any, override_allowed: bool = False):
        message = f"Payment {amount} exceeds outstanding balance {balance}"
        if override_allowed:
            message += "; resubmit with allow_overpayment to record a credit"
        super().__init__(
            message=message,
            error_code="ERR_POLICY_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"amount": str(amount), "balance": str(balance), "override_allowed": override_allowed}
        )


class ConcurrencyConflictError(AppException):
    """Raised when concurrent updates to the same key could not be reconciled."""

    category = ErrorCategory.CONSISTENCY

    def __init__(self, operation: str, attempts: int, key: str = None):
        super().__init__(
            message=f"{operation} conflicted with a concurrent update after {attempts} attempt(s)",
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"operation": operation, "attempts": attempts, "key": key}
        )


class StorageUnavailableError(AppException):
    """Raised when the database cannot be reached."""

    category = ErrorCategory.INFRASTRUCTURE

    def __init__(self, operation: str, reason: str = None):
        super().__init__(
            message=f"Storage unavailable during {operation}",
            error_code="ERR_STORAGE_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"operation": operation, "reason": reason}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "category": exc.category.value,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "category": ErrorCategory.VALIDATION.value,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "category": ErrorCategory.VALIDATION.value,
            "message": "Validation error",
            "details": {
                "errors": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
                    for err in exc.errors()
                ]
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "category": ErrorCategory.INFRASTRUCTURE.value,
            "message": "An internal server error occurred",
            "details": {}
        }
    )
