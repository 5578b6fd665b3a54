from typing import Any, Mapping

from sqlalchemy import asc, desc
from sqlalchemy.sql.elements import ColumnElement

from app.core.exceptions import ValidationFailureError
from app.v1_0.models import Loan, Payment

SORT_DIRECTIONS = {"asc": asc, "desc": desc}

LOAN_SORT_FIELDS: Mapping[str, Any] = {
    "created_at": Loan.created_at,
    "total_amount": Loan.total_amount,
    "paid_amount": Loan.paid_amount,
    "remaining_amount": Loan.remaining_amount,
    "due_date": Loan.due_date,
    "status": Loan.status,
}

PAYMENT_SORT_FIELDS: Mapping[str, Any] = {
    "paid_at": Payment.paid_at,
    "amount": Payment.amount,
    "created_at": Payment.created_at,
}


def resolve_order_by(
    fields: Mapping[str, Any],
    sort_by: str,
    order: str,
    *,
    tiebreaker: Any,
) -> list[ColumnElement]:
    """
    Map a caller-supplied sort key onto a whitelisted column.

    Raises:
        ValidationFailureError: unknown key or direction.
    """
    column = fields.get((sort_by or "").strip())
    if column is None:
        allowed = ", ".join(sorted(fields))
        raise ValidationFailureError(f"Unsupported sort field '{sort_by}'. Allowed: {allowed}.")

    direction = SORT_DIRECTIONS.get((order or "").strip().lower())
    if direction is None:
        raise ValidationFailureError(f"Unsupported sort order '{order}'. Use 'asc' or 'desc'.")

    return [direction(column), direction(tiebreaker)]
