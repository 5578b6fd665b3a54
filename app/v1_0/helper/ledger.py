"""
Pure bookkeeping rules for a loan's derived fields.

Both the incremental update applied on payment creation and the full
recalculation over a loan's payment set go through ``derive_ledger_state``.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from app.v1_0.models.enums import LoanStatus
from .money import COMPONENT_TOLERANCE, ZERO, clamp_zero, to_money


@dataclass(frozen=True, slots=True)
class LedgerState:
    paid_amount: Decimal
    remaining_amount: Decimal
    completed: bool
    installments_paid: int
    completed_at: Optional[datetime]
    status: str

    def as_fields(self) -> dict[str, Any]:
        return {
            "paid_amount": self.paid_amount,
            "remaining_amount": self.remaining_amount,
            "completed": self.completed,
            "installments_paid": self.installments_paid,
            "completed_at": self.completed_at,
            "status": self.status,
        }


def derive_ledger_state(
    *,
    total_amount: Any,
    paid_amount: Any,
    installments_paid: int,
    current_status: str,
    current_completed_at: Optional[datetime],
    now: datetime,
) -> LedgerState:
    """
    Compute remaining balance, completion flag and status for a loan.

    Status table:
    - completed and never stamped -> stamp ``now`` and set ``completado``.
    - completed and already stamped -> keep stamp, status ``completado``.
    - not completed -> clear the stamp; ``completado`` reverts to ``activo``,
      any other status (``cancelado``, ``vencido``, ``activo``) is kept.
    """
    total = to_money(total_amount)
    paid = to_money(paid_amount)
    remaining = clamp_zero(total - paid)
    completed = remaining <= ZERO

    if completed:
        completed_at = current_completed_at or now
        status = LoanStatus.COMPLETED.value
    else:
        completed_at = None
        status = (
            LoanStatus.ACTIVE.value
            if current_status == LoanStatus.COMPLETED.value
            else current_status
        )

    return LedgerState(
        paid_amount=paid,
        remaining_amount=remaining,
        completed=completed,
        installments_paid=int(installments_paid or 0),
        completed_at=completed_at,
        status=status,
    )


def components_match(
    amount: Any,
    capital_amount: Any = None,
    interest_amount: Any = None,
    late_fee_amount: Any = None,
) -> bool:
    """
    True when no split is given (all components zero) or when
    capital + interest + late fee equals the amount within one cent.
    """
    parts = [to_money(capital_amount), to_money(interest_amount), to_money(late_fee_amount)]
    split = sum(parts, ZERO)
    if split == ZERO:
        return True
    return abs(split - to_money(amount)) <= COMPONENT_TOLERANCE
