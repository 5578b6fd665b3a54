from datetime import date, timedelta
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, InvalidStateError, NotFoundError
from app.core.logger import logger
from app.core.settings import settings
from app.utils.tx import maybe_begin
from app.v1_0.entities import (
    LoanDTO,
    LoanPageDTO,
    LoanStatsDTO,
    LoanStatusCountsDTO,
    LoanTotalsDTO,
)
from app.v1_0.helper.ledger import derive_ledger_state
from app.v1_0.helper.mappers import loan_to_dto
from app.v1_0.helper.money import to_money
from app.v1_0.helper.sorting import LOAN_SORT_FIELDS, resolve_order_by
from app.v1_0.models import Loan, LoanStatus
from app.v1_0.models.base import utcnow
from app.v1_0.repositories import LoanRepository, PaymentRepository
from app.v1_0.schemas import LoanCreate, LoanUpdate
from .loan_ledger_service import LoanLedgerService
from .person_service import PersonService

EDITABLE_FIELDS = {
    "total_amount",
    "interest_rate",
    "loan_type",
    "status",
    "description",
    "due_date",
    "installments_agreed",
}
NULLABLE_FIELDS = {"description", "due_date"}


def _check_status_change(loan: Loan, new_status: str) -> None:
    """
    Only the ledger moves a loan into or out of ``completado``; callers may
    set ``activo``, ``cancelado`` or ``vencido`` on loans that are still open.

    Raises:
        InvalidStateError: The change would contradict the loan's balance.
    """
    if new_status == loan.status:
        return
    if new_status == LoanStatus.COMPLETED.value:
        raise InvalidStateError(
            "Status 'completado' is set only when the loan is fully paid."
        )
    if loan.completed:
        raise InvalidStateError("Status of a completed loan cannot be changed.")


class LoanService:
    def __init__(
        self,
        loan_repository: LoanRepository,
        payment_repository: PaymentRepository,
        person_service: PersonService,
        loan_ledger_service: LoanLedgerService,
    ) -> None:
        self.loan_repository = loan_repository
        self.payment_repository = payment_repository
        self.person_service = person_service
        self.loan_ledger_service = loan_ledger_service
        self.PAGE_SIZE = settings.PAGE_SIZE

    async def _require(
        self,
        loan_id: int,
        db: AsyncSession,
    ) -> Loan:
        """
        Ensure that a loan exists; otherwise raise 404.

        Args:
            loan_id: Loan identifier to fetch.
            db: Active async database session.

        Returns:
            ORM loan entity.

        Raises:
            NotFoundError: If the loan does not exist.
        """
        loan = await self.loan_repository.get_by_id(loan_id, db)
        if not loan:
            raise NotFoundError("Loan not found.")
        return loan

    async def create(
        self,
        payload: LoanCreate,
        db: AsyncSession,
    ) -> LoanDTO:
        """
        Create a new loan for an existing or an inline new borrower.

        The ledger starts empty: nothing paid, the whole amount outstanding.

        Args:
            payload: LoanCreate data with either ``person_id`` or ``person``.
            db: Active async database session.

        Returns:
            LoanDTO for the created loan.

        Raises:
            NotFoundError: ``person_id`` does not exist.
            ConflictError: The inline person clashes with an existing one.
            HTTPException: With 500 status if persistence fails.
        """
        logger.info(
            "[LoanService] Creating loan person_id=%s amount=%s",
            payload.person_id,
            payload.total_amount,
        )

        async def _run() -> LoanDTO:
            if payload.person is not None:
                person = await self.person_service.register(payload.person, db)
            else:
                person = await self.person_service.require(payload.person_id, db)

            l = await self.loan_repository.create_loan(payload, person.id, db)
            logger.info(
                "[LoanService] Loan created ID=%s person_id=%s",
                l.id,
                person.id,
            )
            return loan_to_dto(l)

        if not db.in_transaction():
            await db.begin()
        try:
            dto = await _run()
            await db.commit()
        except HTTPException:
            await db.rollback()
            raise
        except IntegrityError as e:
            await db.rollback()
            logger.warning("[LoanService] Create conflict: %s", e.orig)
            raise ConflictError("Person violates a uniqueness rule.")
        except Exception as e:
            await db.rollback()
            logger.error(
                "[LoanService] Create failed: %s",
                e,
                exc_info=True,
            )
            raise HTTPException(
                status_code=500,
                detail="Failed to create loan",
            )
        return dto

    async def get(
        self,
        loan_id: int,
        db: AsyncSession,
    ) -> LoanDTO:
        """
        Retrieve a single loan by ID.

        Raises:
            NotFoundError: If loan does not exist.
            HTTPException: 500 on unexpected errors.
        """
        logger.debug(
            "[LoanService] Get loan ID=%s",
            loan_id,
        )
        try:
            async with maybe_begin(db):
                l = await self._require(loan_id, db)
            return loan_to_dto(l)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(
                "[LoanService] Get failed ID=%s: %s",
                loan_id,
                e,
                exc_info=True,
            )
            raise HTTPException(
                status_code=500,
                detail="Failed to fetch loan",
            )

    async def list_paginated(
        self,
        page: int,
        db: AsyncSession,
        *,
        limit: Optional[int] = None,
        person_id: Optional[int] = None,
        status: Optional[str] = None,
        completed: Optional[bool] = None,
        sort_by: str = "created_at",
        order: str = "desc",
    ) -> LoanPageDTO:
        """
        List loans with pagination, filters and a whitelisted sort key.

        Raises:
            ValidationFailureError: Unknown ``sort_by`` or ``order``.
        """
        page = max(1, int(page or 1))
        page_size = min(int(limit or self.PAGE_SIZE), settings.MAX_PAGE_SIZE)
        offset = (page - 1) * page_size
        order_by = resolve_order_by(LOAN_SORT_FIELDS, sort_by, order, tiebreaker=Loan.id)

        filters = []
        if person_id is not None:
            filters.append(Loan.person_id == person_id)
        if status:
            filters.append(Loan.status == status)
        if completed is not None:
            filters.append(Loan.completed.is_(completed))

        logger.debug(
            "[LoanService] List loans page=%s size=%s sort=%s %s",
            page,
            page_size,
            sort_by,
            order,
        )
        try:
            async with maybe_begin(db):
                items, total = await self.loan_repository.list_paginated(
                    offset,
                    page_size,
                    db,
                    filters=filters,
                    order_by=order_by,
                )
            return LoanPageDTO.build([loan_to_dto(l) for l in items], page, page_size, total)
        except Exception as e:
            logger.error(
                "[LoanService] List paginated failed: %s",
                e,
                exc_info=True,
            )
            raise HTTPException(
                status_code=500,
                detail="Failed to list loans",
            )

    async def update(
        self,
        loan_id: int,
        payload: LoanUpdate,
        db: AsyncSession,
    ) -> LoanDTO:
        """
        Update the user-editable fields of a loan.

        A new ``total_amount`` re-derives remaining balance, completion and
        status from the amount already paid.

        Raises:
            NotFoundError: If the loan does not exist.
            InvalidStateError: Status change that contradicts the balance.
            HTTPException: 500 on unexpected errors.
        """
        logger.info(
            "[LoanService] Updating loan ID=%s fields=%s",
            loan_id,
            sorted(payload.model_fields_set),
        )

        async def _run() -> LoanDTO:
            loan = await self.loan_ledger_service.lock_loan(loan_id, db)
            data = {
                k: v
                for k, v in payload.model_dump(exclude_unset=True).items()
                if k in EDITABLE_FIELDS and (v is not None or k in NULLABLE_FIELDS)
            }
            if "total_amount" in data:
                data["total_amount"] = to_money(data["total_amount"])
            if "interest_rate" in data:
                data["interest_rate"] = to_money(data["interest_rate"])
            if "status" in data:
                _check_status_change(loan, data["status"])

            loan = await self.loan_repository.update_fields(loan, data, db, allow=EDITABLE_FIELDS)

            if "total_amount" in data:
                state = derive_ledger_state(
                    total_amount=loan.total_amount,
                    paid_amount=loan.paid_amount,
                    installments_paid=loan.installments_paid,
                    current_status=loan.status,
                    current_completed_at=loan.completed_at,
                    now=utcnow(),
                )
                loan = await self.loan_ledger_service.apply_state(loan, state, db)
            return loan_to_dto(loan)

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
                "[LoanService] Update failed ID=%s: %s",
                loan_id,
                e,
                exc_info=True,
            )
            raise HTTPException(
                status_code=500,
                detail="Failed to update loan",
            )

        logger.info(
            "[LoanService] Loan updated ID=%s remaining=%s completed=%s",
            dto.id,
            dto.remaining_amount,
            dto.completed,
        )
        return dto

    async def delete(
        self,
        loan_id: int,
        db: AsyncSession,
    ) -> None:
        """
        Delete a loan together with all of its payments.

        Raises:
            NotFoundError: If the loan does not exist.
            HTTPException: 500 on unexpected errors.
        """
        logger.warning(
            "[LoanService] Deleting loan ID=%s",
            loan_id,
        )

        async def _run() -> int:
            loan = await self._require(loan_id, db)
            removed = await self.payment_repository.delete_by_loan(loan_id, db)
            await self.loan_repository.delete_loan(loan, db)
            return removed

        if not db.in_transaction():
            await db.begin()
        try:
            removed = await _run()
            await db.commit()
        except HTTPException:
            await db.rollback()
            raise
        except Exception as e:
            await db.rollback()
            logger.error(
                "[LoanService] Delete failed ID=%s: %s",
                loan_id,
                e,
                exc_info=True,
            )
            raise HTTPException(
                status_code=500,
                detail="Failed to delete loan",
            )

        logger.warning(
            "[LoanService] Loan deleted ID=%s payments_removed=%s",
            loan_id,
            removed,
        )

    async def recalculate_totals(
        self,
        loan_id: int,
        db: AsyncSession,
    ) -> LoanDTO:
        """
        Rebuild the loan's balances from its payments in a transaction of its own.

        Raises:
            NotFoundError: If the loan does not exist.
        """
        logger.info("[LoanService] Recalculating totals loan ID=%s", loan_id)

        if not db.in_transaction():
            await db.begin()
        try:
            loan = await self.loan_ledger_service.recalculate(loan_id, db)
            dto = loan_to_dto(loan)
            await db.commit()
        except HTTPException:
            await db.rollback()
            raise
        except Exception as e:
            await db.rollback()
            logger.error(
                "[LoanService] Recalculate failed ID=%s: %s",
                loan_id,
                e,
                exc_info=True,
            )
            raise HTTPException(
                status_code=500,
                detail="Failed to recalculate loan",
            )
        return dto

    async def statistics(
        self,
        db: AsyncSession,
        *,
        today: Optional[date] = None,
    ) -> LoanStatsDTO:
        """Portfolio totals and counts of active, completed and overdue loans."""
        today = today or date.today()
        logger.debug("[LoanService] Statistics today=%s", today)
        try:
            async with maybe_begin(db):
                totals = await self.loan_repository.totals(db)
                counts = await self.loan_repository.status_counts(today, db)
            return LoanStatsDTO(
                totals=LoanTotalsDTO(
                    total_amount=to_money(totals.total_amount),
                    paid_amount=to_money(totals.paid_amount),
                    remaining_amount=to_money(totals.remaining_amount),
                    total_loans=int(totals.total_loans or 0),
                ),
                statuses=LoanStatusCountsDTO(
                    active=int(counts.active or 0),
                    completed=int(counts.completed or 0),
                    overdue=int(counts.overdue or 0),
                ),
            )
        except Exception as e:
            logger.error("[LoanService] Statistics failed: %s", e, exc_info=True)
            raise HTTPException(
                status_code=500,
                detail="Failed to compute loan statistics",
            )

    async def upcoming_due(
        self,
        db: AsyncSession,
        *,
        days: Optional[int] = None,
        today: Optional[date] = None,
    ) -> List[LoanDTO]:
        """Open loans whose due date falls within the next ``days`` days."""
        days = int(days or settings.UPCOMING_DUE_DAYS)
        start = today or date.today()
        end = start + timedelta(days=days)
        logger.debug("[LoanService] Upcoming due between %s and %s", start, end)
        try:
            async with maybe_begin(db):
                rows = await self.loan_repository.list_due_between(start, end, db)
            return [loan_to_dto(l) for l in rows]
        except Exception as e:
            logger.error("[LoanService] Upcoming due failed: %s", e, exc_info=True)
            raise HTTPException(
                status_code=500,
                detail="Failed to list upcoming due loans",
            )
