"""Error hierarchy for ledger and bookkeeping failures.

Every error is an ``HTTPException`` so services can raise it directly and
routers re-raise it untouched, while callers can still tell conditions apart
by class.
"""

from typing import Optional

from fastapi import HTTPException, status


class LedgerError(HTTPException):
    """Base class for all bookkeeping errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Operation rejected."

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class NotFoundError(LedgerError):
    """Raised when a referenced loan, payment or person does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found."


class InvalidStateError(LedgerError):
    """Raised when the target entity is in a state that forbids the operation."""

    default_detail = "Operation not allowed in the current state."


class AlreadyCompletedError(InvalidStateError):
    """Raised when a payment is attempted on a fully paid loan."""

    default_detail = "Loan is already completed."


class PaymentExceedsDebtError(LedgerError):
    """Raised when a payment amount is greater than the loan's remaining balance."""

    default_detail = "Payment amount exceeds the remaining debt."


class ValidationFailureError(LedgerError):
    """Raised when numeric checks or query parameters are malformed."""

    status_code = 422
    default_detail = "Validation failed."


class ConflictError(LedgerError):
    """Raised when a uniqueness rule is violated."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource already exists."
