from datetime import datetime
from typing import Any, List, Sequence, Tuple
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.v1_0.helper.money import to_money
from app.v1_0.models import Payment, Loan, PaymentMethod
from app.v1_0.schemas import PaymentCreate
from .base_repository import BaseRepository

class PaymentRepository(BaseRepository[Payment]):
    def __init__(self) -> None:
        super().__init__(Payment)

    async def create_payment(
        self,
        payload: PaymentCreate,
        session: AsyncSession,
    ) -> Payment:
        """
        Insert a new payment and flush. No commit here.
        """
        payment = Payment(
            loan_id=payload.loan_id,
            amount=to_money(payload.amount),
            capital_amount=to_money(payload.capital_amount),
            interest_amount=to_money(payload.interest_amount),
            late_fee_amount=to_money(payload.late_fee_amount),
            method=PaymentMethod(payload.method).value,
            transaction_ref=payload.transaction_ref,
            description=payload.description,
            scheduled_date=payload.scheduled_date,
            is_installment=bool(payload.is_installment),
            installment_number=payload.installment_number,
        )
        if payload.paid_at is not None:
            payment.paid_at = payload.paid_at
        await self.add(payment, session)
        return payment

    async def ledger_rows(
        self,
        loan_id: int,
        session: AsyncSession,
    ) -> List[Tuple[Any, bool]]:
        """
        Return ``(amount, is_installment)`` for every payment of the loan.
        """
        stmt = select(Payment.amount, Payment.is_installment).where(Payment.loan_id == loan_id)
        return [(r.amount, bool(r.is_installment)) for r in (await session.execute(stmt)).all()]

    async def list_paginated(
        self,
        offset: int,
        limit: int,
        session: AsyncSession,
        *,
        filters: Sequence[Any] = (),
        order_by: Sequence[Any] = (),
    ) -> Tuple[List[Payment], int]:
        return await self.list_filtered(
            session,
            filters=filters,
            order_by=order_by,
            offset=offset,
            limit=limit,
        )

    async def list_between(
        self,
        date_from: datetime,
        date_to: datetime,
        session: AsyncSession,
    ) -> List[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.paid_at >= date_from, Payment.paid_at <= date_to)
            .order_by(Payment.paid_at.desc(), Payment.id.desc())
        )
        return list((await session.execute(stmt)).scalars().all())

    async def list_by_person(
        self,
        person_id: int,
        limit: int,
        session: AsyncSession,
    ) -> List[Payment]:
        stmt = (
            select(Payment)
            .join(Loan, Loan.id == Payment.loan_id)
            .where(Loan.person_id == person_id)
            .order_by(Payment.paid_at.desc(), Payment.id.desc())
            .limit(limit)
        )
        return list((await session.execute(stmt)).scalars().all())

    async def stats_by_method(self, session: AsyncSession):
        stmt = (
            select(
                Payment.method.label("method"),
                func.coalesce(func.sum(Payment.amount), 0).label("total_amount"),
                func.count(Payment.id).label("payment_count"),
            )
            .group_by(Payment.method)
            .order_by(Payment.method.asc())
        )
        return (await session.execute(stmt)).all()

    async def delete_payment(
        self,
        payment: Payment,
        session: AsyncSession,
    ) -> None:
        await self.delete(payment, session)

    async def delete_by_loan(
        self,
        loan_id: int,
        session: AsyncSession,
    ) -> int:
        """
        Delete all payments linked to a loan. Return affected rows.
        """
        stmt = delete(Payment).where(Payment.loan_id == loan_id)
        result = await session.execute(stmt)
        await session.flush()
        return int(result.rowcount or 0)
