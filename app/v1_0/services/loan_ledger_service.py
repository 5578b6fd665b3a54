from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.core.logger import logger
from app.utils.tx import maybe_begin
from app.v1_0.helper.ledger import LedgerState, derive_ledger_state
from app.v1_0.helper.money import sum_money
from app.v1_0.models import Loan
from app.v1_0.models.base import utcnow
from app.v1_0.repositories import LoanRepository, PaymentRepository


class LoanLedgerService:
    """
    Keeps a loan's derived fields (paid, remaining, completion, installment
    count, status) in line with its payment set.
    """

    def __init__(
        self,
        loan_repository: LoanRepository,
        payment_repository: PaymentRepository,
    ) -> None:
        self.loan_repository = loan_repository
        self.payment_repository = payment_repository

    async def lock_loan(self, loan_id: int, db: AsyncSession) -> Loan:
        """
        Lock the loan row for the rest of the transaction and return its
        current values.

        Raises:
            NotFoundError: If the loan does not exist.
        """
        loan = await self.loan_repository.get_for_update(loan_id, db)
        if not loan:
            raise NotFoundError("Loan not found.")
        return loan

    async def apply_state(
        self,
        loan: Loan,
        state: LedgerState,
        db: AsyncSession,
    ) -> Loan:
        return await self.loan_repository.update_fields(loan, state.as_fields(), db)

    async def apply_payment(
        self,
        loan: Loan,
        amount,
        is_installment: bool,
        db: AsyncSession,
        *,
        now: Optional[datetime] = None,
    ) -> Loan:
        """
        Incremental update for a single new payment on an already locked loan.
        """
        state = derive_ledger_state(
            total_amount=loan.total_amount,
            paid_amount=sum_money([loan.paid_amount, amount]),
            installments_paid=int(loan.installments_paid or 0) + (1 if is_installment else 0),
            current_status=loan.status,
            current_completed_at=loan.completed_at,
            now=now or utcnow(),
        )
        return await self.apply_state(loan, state, db)

    async def recalculate(
        self,
        loan_id: int,
        db: AsyncSession,
        *,
        now: Optional[datetime] = None,
    ) -> Loan:
        """
        Rebuild the loan's derived fields from every payment that references it.

        Joins the caller's transaction when one is open, so it can run as the
        last step of a payment update or delete.

        Args:
            loan_id: Loan to recompute.
            db: Active async database session.
            now: Completion timestamp to use when the loan becomes completed.

        Returns:
            The loan entity with refreshed fields.

        Raises:
            NotFoundError: If the loan does not exist.
        """
        async with maybe_begin(db):
            loan = await self.lock_loan(loan_id, db)
            rows = await self.payment_repository.ledger_rows(loan_id, db)

            paid = sum_money(amount for amount, _ in rows)
            installments = sum(1 for _, flagged in rows if flagged)

            state = derive_ledger_state(
                total_amount=loan.total_amount,
                paid_amount=paid,
                installments_paid=installments,
                current_status=loan.status,
                current_completed_at=loan.completed_at,
                now=now or utcnow(),
            )
            loan = await self.apply_state(loan, state, db)

        logger.info(
            "[LoanLedgerService] Recalculated loan ID=%s paid=%s remaining=%s completed=%s",
            loan_id,
            state.paid_amount,
            state.remaining_amount,
            state.completed,
        )
        return loan
