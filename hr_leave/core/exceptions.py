"""
Domain errors for the leave service.

Every error is an HTTPException subclass so services can raise it directly and
the central handler in core/errors.py renders it. `error_code` is stable and is
what bulk operations report per item.
"""
from typing import Optional
from fastapi import HTTPException, status


class LeaveServiceError(HTTPException):
    """Base class for all domain errors"""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "LEAVE_SERVICE_ERROR"

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(status_code=status_code or self.__class__.status_code, detail=detail)


class ValidationError(LeaveServiceError):
    """Malformed or missing input"""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "VALIDATION_ERROR"


class ConflictError(LeaveServiceError):
    """Duplicate code, overlapping request and similar uniqueness conflicts"""

    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"


class PolicyViolationError(LeaveServiceError):
    """An eligibility precondition failed at submission"""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "POLICY_VIOLATION"


class InsufficientBalanceError(LeaveServiceError):
    """A ledger debit would take the balance below the leave type's min_balance"""

    status_code = status.HTTP_409_CONFLICT
    error_code = "INSUFFICIENT_BALANCE"

    def __init__(self, requested, available, min_balance=0):
        self.requested = requested
        self.available = available
        self.min_balance = min_balance
        detail = f"requested {_fmt_days(requested)} days, available balance {_fmt_days(available)}"
        if min_balance:
            detail += f" (minimum balance {_fmt_days(min_balance)})"
        super().__init__(detail)


class InvalidTransitionError(LeaveServiceError):
    """Workflow transition attempted from a terminal or incompatible state"""

    status_code = status.HTTP_409_CONFLICT
    error_code = "INVALID_TRANSITION"

    def __init__(self, current_status, action: str):
        self.current_status = current_status
        self.action = action
        value = getattr(current_status, "value", current_status)
        super().__init__(f"Cannot {action} leave request with status {value}")


class NotFoundError(LeaveServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"


class PermissionDeniedError(LeaveServiceError):
    """Actor lacks authority for the requested action"""

    status_code = status.HTTP_403_FORBIDDEN
    error_code = "PERMISSION_DENIED"


def _fmt_days(value) -> str:
    """Render 5 -> '5', 2.50 -> '2.5'"""
    number = float(value)
    if number == int(number):
        return str(int(number))
    return f"{number:g}"
