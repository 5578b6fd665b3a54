from datetime import date
from typing import Any, List, Optional, Sequence, Tuple
from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from app.v1_0.helper.money import to_money, ZERO
from app.v1_0.models import Loan, LoanStatus, LoanType
from app.v1_0.schemas import LoanCreate
from .base_repository import BaseRepository

class LoanRepository(BaseRepository[Loan]):
    def __init__(self) -> None:
        super().__init__(Loan)

    async def create_loan(
        self,
        payload: LoanCreate,
        person_id: int,
        session: AsyncSession,
    ) -> Loan:
        total = to_money(payload.total_amount)
        entity = Loan(
            person_id=person_id,
            total_amount=total,
            interest_rate=to_money(payload.interest_rate),
            loan_type=LoanType(payload.loan_type).value,
            description=payload.description,
            due_date=payload.due_date,
            installments_agreed=payload.installments_agreed,
            installments_paid=0,
            paid_amount=ZERO,
            remaining_amount=total,
            completed=False,
            status=LoanStatus.ACTIVE.value,
        )
        await self.add(entity, session)
        return entity

    async def get_for_update(self, loan_id: int, session: AsyncSession) -> Optional[Loan]:
        """
        Lock the loan row and reload its current values inside the open transaction.
        """
        return await self.get_by_id(loan_id, session, for_update=True)

    async def list_paginated(
        self,
        offset: int,
        limit: int,
        session: AsyncSession,
        *,
        filters: Sequence[Any] = (),
        order_by: Sequence[Any] = (),
    ) -> Tuple[List[Loan], int]:
        return await self.list_filtered(
            session,
            filters=filters,
            order_by=order_by,
            offset=offset,
            limit=limit,
        )

    async def totals(self, session: AsyncSession):
        stmt = select(
            func.coalesce(func.sum(Loan.total_amount), 0).label("total_amount"),
            func.coalesce(func.sum(Loan.paid_amount), 0).label("paid_amount"),
            func.coalesce(func.sum(Loan.remaining_amount), 0).label("remaining_amount"),
            func.count(Loan.id).label("total_loans"),
        )
        return (await session.execute(stmt)).one()

    async def status_counts(self, today: date, session: AsyncSession):
        """
        Counts of open, completed and overdue (open and past due date) loans.
        """
        stmt = select(
            func.coalesce(func.sum(case((Loan.completed.is_(False), 1), else_=0)), 0).label("active"),
            func.coalesce(func.sum(case((Loan.completed.is_(True), 1), else_=0)), 0).label("completed"),
            func.coalesce(
                func.sum(
                    case(
                        ((Loan.completed.is_(False)) & (Loan.due_date < today), 1),
                        else_=0,
                    )
                ),
                0,
            ).label("overdue"),
        )
        return (await session.execute(stmt)).one()

    async def list_due_between(
        self,
        start: date,
        end: date,
        session: AsyncSession,
    ) -> List[Loan]:
        stmt = (
            select(Loan)
            .where(
                Loan.completed.is_(False),
                Loan.due_date.is_not(None),
                Loan.due_date >= start,
                Loan.due_date <= end,
            )
            .order_by(Loan.due_date.asc(), Loan.id.asc())
        )
        return list((await session.execute(stmt)).scalars().all())

    async def delete_loan(self, loan: Loan, session: AsyncSession) -> None:
        await self.delete(loan, session)
