from datetime import datetime
from typing import Any, List, Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AlreadyCompletedError,
    NotFoundError,
    PaymentExceedsDebtError,
    ValidationFailureError,
)
from app.core.logger import logger
from app.core.settings import settings
from app.utils.tx import maybe_begin
from app.v1_0.entities import (
    PaymentCreatedDTO,
    PaymentDTO,
    PaymentMethodStatsDTO,
    PaymentPageDTO,
    PaymentPeriodDTO,
    PaymentPeriodSummaryDTO,
)
from app.v1_0.helper.ledger import components_match
from app.v1_0.helper.mappers import loan_to_dto, payment_to_dto
from app.v1_0.helper.money import ZERO, sum_money, to_money
from app.v1_0.helper.sorting import PAYMENT_SORT_FIELDS, resolve_order_by
from app.v1_0.models import Loan, Payment
from app.v1_0.repositories import PaymentRepository
from app.v1_0.schemas import PaymentCreate, PaymentUpdate
from app.v1_0.schemas.payment_schema import COMPONENT_MISMATCH
from .loan_ledger_service import LoanLedgerService

MONEY_FIELDS = ("amount", "capital_amount", "interest_amount", "late_fee_amount")
NOT_NULL_FIELDS = {*MONEY_FIELDS, "method", "is_installment", "paid_at"}
UPDATABLE_FIELDS = NOT_NULL_FIELDS | {
    "transaction_ref",
    "description",
    "scheduled_date",
    "installment_number",
}


def _check_amounts(amount: Any, capital: Any, interest: Any, late_fee: Any) -> None:
    """
    Numeric checks re-derived here regardless of what the request layer did.

    Raises:
        ValidationFailureError: Non-positive amount or a component split that
            does not add up to the amount.
    """
    if to_money(amount) <= ZERO:
        raise ValidationFailureError("Payment amount must be greater than zero.")
    if any(to_money(v) < ZERO for v in (capital, interest, late_fee)):
        raise ValidationFailureError("Payment components cannot be negative.")
    if not components_match(amount, capital, interest, late_fee):
        raise ValidationFailureError(COMPONENT_MISMATCH)


class PaymentService:
    def __init__(
        self,
        payment_repository: PaymentRepository,
        loan_ledger_service: LoanLedgerService,
    ) -> None:
        self.payment_repository = payment_repository
        self.loan_ledger_service = loan_ledger_service
        self.PAGE_SIZE = settings.PAGE_SIZE

    async def _require(self, payment_id: int, db: AsyncSession) -> Payment:
        payment = await self.payment_repository.get_by_id(payment_id, db)
        if not payment:
            raise NotFoundError("Payment not found.")
        return payment

    async def create(
        self,
        payload: PaymentCreate,
        db: AsyncSession,
    ) -> PaymentCreatedDTO:
        """
        Register a payment and update the loan it belongs to, atomically.

        Operations:
        - Lock the loan row and read its current balance.
        - Reject missing loans, completed loans and amounts above the remaining balance.
        - Re-check amount and component split.
        - Insert the payment.
        - Apply the incremental ledger update (paid + amount, installment counter).

        Args:
            payload: Validated payment data.
            db: Active async database session.

        Returns:
            PaymentCreatedDTO with the new payment and the updated loan.

        Raises:
            NotFoundError: Loan does not exist.
            AlreadyCompletedError: Loan is fully paid.
            PaymentExceedsDebtError: Amount is greater than the remaining balance.
            ValidationFailureError: Non-positive amount or component mismatch.
            HTTPException: 500 on unexpected persistence errors.
        """
        logger.info(
            "[PaymentService] Creating payment loan_id=%s amount=%s",
            payload.loan_id,
            payload.amount,
        )

        async def _run() -> PaymentCreatedDTO:
            loan = await self.loan_ledger_service.lock_loan(payload.loan_id, db)
            if loan.completed:
                raise AlreadyCompletedError("Loan is already completed.")

            amount = to_money(payload.amount)
            _check_amounts(
                amount,
                payload.capital_amount,
                payload.interest_amount,
                payload.late_fee_amount,
            )

            remaining = to_money(loan.remaining_amount)
            if amount > remaining:
                raise PaymentExceedsDebtError(
                    f"Payment amount {amount} exceeds the remaining debt {remaining}."
                )

            payment = await self.payment_repository.create_payment(payload, db)
            loan = await self.loan_ledger_service.apply_payment(
                loan,
                amount,
                bool(payload.is_installment),
                db,
            )
            return PaymentCreatedDTO(
                payment=payment_to_dto(payment),
                loan=loan_to_dto(loan),
            )

        if not db.in_transaction():
            await db.begin()
        try:
            dto = await _run()
            await db.commit()
        except HTTPException:
            await db.rollback()
            raise
        except Exception as e:
            await db.rollback()
            logger.error(
                "[PaymentService] Create failed loan_id=%s: %s",
                payload.loan_id,
                e,
                exc_info=True,
            )
            raise HTTPException(status_code=500, detail="Failed to create payment")

        logger.info(
            "[PaymentService] Payment created ID=%s loan_id=%s remaining=%s completed=%s",
            dto.payment.id,
            dto.loan.id,
            dto.loan.remaining_amount,
            dto.loan.completed,
        )
        return dto

    async def update(
        self,
        payment_id: int,
        payload: PaymentUpdate,
        db: AsyncSession,
    ) -> PaymentDTO:
        """
        Apply a partial update to a payment.

        The loan ledger is rebuilt from scratch when the amount or the
        installment flag changes. The remaining balance is not re-checked here.

        Raises:
            NotFoundError: Payment does not exist.
            ValidationFailureError: Resulting amount or split is invalid.
        """
        logger.info("[PaymentService] Updating payment ID=%s", payment_id)

        async def _run() -> PaymentDTO:
            payment = await self._require(payment_id, db)

            data = {
                k: v
                for k, v in payload.model_dump(exclude_unset=True).items()
                if k in UPDATABLE_FIELDS and not (v is None and k in NOT_NULL_FIELDS)
            }
            for k in MONEY_FIELDS:
                if k in data:
                    data[k] = to_money(data[k])

            _check_amounts(*(data.get(k, getattr(payment, k)) for k in MONEY_FIELDS))

            amount_changed = "amount" in data and data["amount"] != to_money(payment.amount)
            flag_changed = (
                "is_installment" in data
                and bool(data["is_installment"]) != bool(payment.is_installment)
            )

            payment = await self.payment_repository.update_fields(
                payment, data, db, allow=UPDATABLE_FIELDS
            )
            if amount_changed or flag_changed:
                await self.loan_ledger_service.recalculate(payment.loan_id, db)
            return payment_to_dto(payment)

        if not db.in_transaction():
            await db.begin()
        try:
            dto = await _run()
            await db.commit()
        except HTTPException:
            await db.rollback()
            raise
        except Exception as e:
            await db.rollback()
            logger.error(
                "[PaymentService] Update failed ID=%s: %s",
                payment_id,
                e,
                exc_info=True,
            )
            raise HTTPException(status_code=500, detail="Failed to update payment")

        logger.info("[PaymentService] Payment updated ID=%s", payment_id)
        return dto

    async def delete(
        self,
        payment_id: int,
        db: AsyncSession,
    ) -> None:
        """
        Delete a payment and rebuild its loan's ledger in the same transaction.

        Raises:
            NotFoundError: Payment does not exist.
        """
        logger.warning("[PaymentService] Deleting payment ID=%s", payment_id)

        async def _run() -> int:
            payment = await self._require(payment_id, db)
            loan_id = payment.loan_id
            await self.payment_repository.delete_payment(payment, db)
            await self.loan_ledger_service.recalculate(loan_id, db)
            return loan_id

        if not db.in_transaction():
            await db.begin()
        try:
            loan_id = await _run()
            await db.commit()
        except HTTPException:
            await db.rollback()
            raise
        except Exception as e:
            await db.rollback()
            logger.error(
                "[PaymentService] Delete failed ID=%s: %s",
                payment_id,
                e,
                exc_info=True,
            )
            raise HTTPException(status_code=500, detail="Failed to delete payment")

        logger.warning(
            "[PaymentService] Payment deleted ID=%s loan_id=%s",
            payment_id,
            loan_id,
        )

    async def get(
        self,
        payment_id: int,
        db: AsyncSession,
    ) -> PaymentDTO:
        logger.debug("[PaymentService] Get payment ID=%s", payment_id)
        try:
            async with maybe_begin(db):
                p = await self._require(payment_id, db)
            return payment_to_dto(p)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(
                "[PaymentService] Get failed ID=%s: %s",
                payment_id,
                e,
                exc_info=True,
            )
            raise HTTPException(status_code=500, detail="Failed to fetch payment")

    async def list_paginated(
        self,
        page: int,
        db: AsyncSession,
        *,
        limit: Optional[int] = None,
        loan_id: Optional[int] = None,
        person_id: Optional[int] = None,
        method: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        sort_by: str = "paid_at",
        order: str = "desc",
    ) -> PaymentPageDTO:
        """
        Page through payments with optional filters.

        ``sort_by`` must be one of ``paid_at``, ``amount`` or ``created_at``.

        Raises:
            ValidationFailureError: Unknown sort key/order or inverted date range.
        """
        page = max(1, int(page or 1))
        page_size = min(int(limit or self.PAGE_SIZE), settings.MAX_PAGE_SIZE)
        offset = (page - 1) * page_size

        order_by = resolve_order_by(PAYMENT_SORT_FIELDS, sort_by, order, tiebreaker=Payment.id)
        if date_from and date_to and date_from > date_to:
            raise ValidationFailureError("date_from must not be after date_to.")

        filters = []
        if loan_id is not None:
            filters.append(Payment.loan_id == loan_id)
        if person_id is not None:
            filters.append(
                Payment.loan_id.in_(select(Loan.id).where(Loan.person_id == person_id))
            )
        if method:
            filters.append(Payment.method == method)
        if date_from:
            filters.append(Payment.paid_at >= date_from)
        if date_to:
            filters.append(Payment.paid_at <= date_to)

        logger.debug(
            "[PaymentService] List payments page=%s size=%s loan_id=%s person_id=%s",
            page,
            page_size,
            loan_id,
            person_id,
        )
        try:
            async with maybe_begin(db):
                items, total = await self.payment_repository.list_paginated(
                    offset,
                    page_size,
                    db,
                    filters=filters,
                    order_by=order_by,
                )
            return PaymentPageDTO.build(
                [payment_to_dto(p) for p in items], page, page_size, total
            )
        except HTTPException:
            raise
        except Exception as e:
            logger.error("[PaymentService] List failed: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to list payments")

    async def statistics_by_method(self, db: AsyncSession) -> List[PaymentMethodStatsDTO]:
        logger.debug("[PaymentService] Statistics by method")
        try:
            async with maybe_begin(db):
                rows = await self.payment_repository.stats_by_method(db)
            return [
                PaymentMethodStatsDTO(
                    method=r.method,
                    total_amount=to_money(r.total_amount),
                    payment_count=int(r.payment_count or 0),
                )
                for r in rows
            ]
        except Exception as e:
            logger.error("[PaymentService] Method statistics failed: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to compute payment statistics")

    async def by_period(
        self,
        date_from: datetime,
        date_to: datetime,
        db: AsyncSession,
    ) -> PaymentPeriodDTO:
        """
        Payments made within ``[date_from, date_to]`` and their summary.

        Raises:
            ValidationFailureError: If ``date_from`` is after ``date_to``.
        """
        if date_from > date_to:
            raise ValidationFailureError("date_from must not be after date_to.")

        logger.debug("[PaymentService] Payments between %s and %s", date_from, date_to)
        try:
            async with maybe_begin(db):
                rows = await self.payment_repository.list_between(date_from, date_to, db)
            payments = [payment_to_dto(p) for p in rows]
            return PaymentPeriodDTO(
                payments=payments,
                summary=PaymentPeriodSummaryDTO(
                    total_payments=len(payments),
                    total_amount=sum_money(p.amount for p in payments),
                    date_from=date_from,
                    date_to=date_to,
                ),
            )
        except Exception as e:
            logger.error("[PaymentService] Period query failed: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to fetch payments for period")

    async def person_history(
        self,
        person_id: int,
        db: AsyncSession,
        *,
        limit: int = 10,
    ) -> List[PaymentDTO]:
        """Latest payments across every loan of a person, newest first."""
        logger.debug("[PaymentService] History person_id=%s limit=%s", person_id, limit)
        try:
            async with maybe_begin(db):
                rows = await self.payment_repository.list_by_person(person_id, limit, db)
            return [payment_to_dto(p) for p in rows]
        except Exception as e:
            logger.error(
                "[PaymentService] History failed person_id=%s: %s",
                person_id,
                e,
                exc_info=True,
            )
            raise HTTPException(status_code=500, detail="Failed to fetch payment history")
