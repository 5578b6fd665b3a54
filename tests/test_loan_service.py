"""Tests for loan management."""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationFailureError,
)
from app.v1_0.schemas import LoanCreate, LoanUpdate, PersonCreate


class TestCreateLoan:
    async def test_new_loan_starts_with_empty_ledger(self, make_loan) -> None:
        loan = await make_loan("1500.00", interest_rate=Decimal("5.00"), loan_type="comercial")

        assert loan.total_amount == Decimal("1500.00")
        assert loan.paid_amount == Decimal("0.00")
        assert loan.remaining_amount == Decimal("1500.00")
        assert loan.completed is False
        assert loan.completed_at is None
        assert loan.status == "activo"
        assert loan.loan_type == "comercial"
        assert loan.installments_paid == 0

    async def test_inline_person_is_created_with_the_loan(
        self, loan_service, person_service, session
    ) -> None:
        loan = await loan_service.create(
            LoanCreate(
                person=PersonCreate(name="Carlos", national_id="5551234"),
                total_amount=Decimal("200.00"),
            ),
            session,
        )
        borrower = await person_service.get(loan.person_id, session)
        assert borrower.name == "Carlos"

    async def test_inline_person_conflict_rolls_back(
        self, loan_service, person, session
    ) -> None:
        with pytest.raises(ConflictError):
            await loan_service.create(
                LoanCreate(
                    person=PersonCreate(name="Otra", national_id=person.national_id),
                    total_amount=Decimal("200.00"),
                ),
                session,
            )
        page = await loan_service.list_paginated(1, session)
        assert page.total == 0

    async def test_unique_constraint_on_inline_person_maps_to_conflict(
        self, loan_service, person, session, monkeypatch
    ) -> None:
        async def _skip_checks(*args, **kwargs) -> None:
            return None

        # a concurrent request got past the lookup; only the constraint remains
        monkeypatch.setattr(loan_service.person_service, "_ensure_unique", _skip_checks)

        with pytest.raises(ConflictError):
            await loan_service.create(
                LoanCreate(
                    person=PersonCreate(name="Otra", national_id=person.national_id),
                    total_amount=Decimal("200.00"),
                ),
                session,
            )
        page = await loan_service.list_paginated(1, session)
        assert page.total == 0

    async def test_unknown_person(self, loan_service, session) -> None:
        with pytest.raises(NotFoundError):
            await loan_service.create(
                LoanCreate(person_id=999, total_amount=Decimal("10.00")), session
            )

    def test_exactly_one_borrower_required(self) -> None:
        with pytest.raises(ValidationError):
            LoanCreate(total_amount=Decimal("10.00"))
        with pytest.raises(ValidationError):
            LoanCreate(
                person_id=1,
                person=PersonCreate(name="Ana"),
                total_amount=Decimal("10.00"),
            )

    @pytest.mark.parametrize(
        "fields",
        [
            {"total_amount": Decimal("0")},
            {"total_amount": Decimal("1000000000.00")},
            {"total_amount": Decimal("10.00"), "interest_rate": Decimal("100.01")},
            {"total_amount": Decimal("10.00"), "installments_agreed": 0},
            {"total_amount": Decimal("10.00"), "due_date": date.today() - timedelta(days=1)},
        ],
    )
    def test_invalid_input_rejected(self, fields) -> None:
        with pytest.raises(ValidationError):
            LoanCreate(person_id=1, **fields)


class TestUpdateLoan:
    async def test_total_change_rederives_balance(
        self, make_loan, pay, loan_service, session
    ) -> None:
        loan = await make_loan("1000.00")
        await pay(loan.id, "400.00")

        loan = await loan_service.update(
            loan.id, LoanUpdate(total_amount=Decimal("400.00")), session
        )
        assert loan.remaining_amount == Decimal("0.00")
        assert loan.completed is True
        assert loan.status == "completado"
        assert loan.completed_at is not None

        loan = await loan_service.update(
            loan.id, LoanUpdate(total_amount=Decimal("900.00")), session
        )
        assert loan.remaining_amount == Decimal("500.00")
        assert loan.completed is False
        assert loan.completed_at is None
        assert loan.status == "activo"

    async def test_plain_fields(self, make_loan, loan_service, session) -> None:
        loan = await make_loan("1000.00")
        due = date.today() + timedelta(days=30)

        loan = await loan_service.update(
            loan.id,
            LoanUpdate(description="Mercancía", due_date=due, installments_agreed=6),
            session,
        )
        assert loan.description == "Mercancía"
        assert loan.due_date == due
        assert loan.installments_agreed == 6
        assert loan.remaining_amount == Decimal("1000.00")

    def test_derived_fields_not_accepted(self) -> None:
        update = LoanUpdate.model_validate({"description": "x", "paid_amount": "5.00"})
        assert "paid_amount" not in update.model_dump(exclude_unset=True)

    async def test_missing_loan(self, loan_service, session) -> None:
        with pytest.raises(NotFoundError):
            await loan_service.update(1, LoanUpdate(description="x"), session)


    async def test_completed_status_cannot_be_set_by_hand(
        self, make_loan, loan_service, session
    ) -> None:
        loan = await make_loan("1000.00")

        with pytest.raises(InvalidStateError):
            await loan_service.update(loan.id, LoanUpdate(status="completado"), session)

        loan = await loan_service.get(loan.id, session)
        assert loan.status == "activo"
        assert loan.completed is False

    async def test_completed_loan_status_is_locked(
        self, make_loan, pay, loan_service, session
    ) -> None:
        loan = await make_loan("100.00")
        await pay(loan.id, "100.00")

        for status in ("activo", "cancelado", "vencido"):
            with pytest.raises(InvalidStateError):
                await loan_service.update(loan.id, LoanUpdate(status=status), session)

        loan = await loan_service.get(loan.id, session)
        assert loan.status == "completado"
        assert loan.completed is True

    async def test_open_loan_accepts_manual_statuses(
        self, make_loan, loan_service, session
    ) -> None:
        loan = await make_loan("100.00")
        for status in ("vencido", "cancelado", "activo"):
            loan = await loan_service.update(loan.id, LoanUpdate(status=status), session)
            assert loan.status == status


class TestDeleteLoan:
    async def test_delete_removes_payments(
        self, make_loan, pay, loan_service, payment_service, session
    ) -> None:
        loan = await make_loan("1000.00")
        payment, _ = await pay(loan.id, "100.00")

        await loan_service.delete(loan.id, session)

        with pytest.raises(NotFoundError):
            await loan_service.get(loan.id, session)
        with pytest.raises(NotFoundError):
            await payment_service.get(payment.id, session)

    async def test_delete_missing_loan(self, loan_service, session) -> None:
        with pytest.raises(NotFoundError):
            await loan_service.delete(42, session)


class TestLoanQueries:
    async def test_list_filters_and_sort(self, make_loan, pay, loan_service, session) -> None:
        small = await make_loan("100.00")
        await make_loan("300.00")
        await make_loan("200.00")
        await pay(small.id, "100.00")

        page = await loan_service.list_paginated(
            1, session, sort_by="total_amount", order="asc"
        )
        assert [l.total_amount for l in page.items] == [
            Decimal("100.00"),
            Decimal("200.00"),
            Decimal("300.00"),
        ]

        open_only = await loan_service.list_paginated(1, session, completed=False)
        assert open_only.total == 2

        done = await loan_service.list_paginated(1, session, status="completado")
        assert [l.id for l in done.items] == [small.id]

    async def test_pagination(self, make_loan, loan_service, session) -> None:
        for _ in range(3):
            await make_loan("10.00")

        page = await loan_service.list_paginated(2, session, limit=2)
        assert page.total == 3
        assert page.total_pages == 2
        assert len(page.items) == 1
        assert page.has_prev is True
        assert page.has_next is False

    async def test_unknown_sort_key(self, loan_service, session) -> None:
        with pytest.raises(ValidationFailureError):
            await loan_service.list_paginated(1, session, sort_by="person.name")

    async def test_statistics(self, make_loan, pay, loan_service, session) -> None:
        soon = date.today() + timedelta(days=3)
        done = await make_loan("100.00")
        await make_loan("400.00", due_date=soon)
        await pay(done.id, "100.00")

        stats = await loan_service.statistics(session, today=soon + timedelta(days=1))
        assert stats.totals.total_amount == Decimal("500.00")
        assert stats.totals.paid_amount == Decimal("100.00")
        assert stats.totals.remaining_amount == Decimal("400.00")
        assert stats.totals.total_loans == 2
        assert stats.statuses.active == 1
        assert stats.statuses.completed == 1
        assert stats.statuses.overdue == 1

    async def test_upcoming_due(self, make_loan, pay, loan_service, session) -> None:
        today = date.today()
        inside = await make_loan("100.00", due_date=today + timedelta(days=2))
        await make_loan("100.00", due_date=today + timedelta(days=20))
        paid_off = await make_loan("100.00", due_date=today + timedelta(days=1))
        await make_loan("100.00")
        await pay(paid_off.id, "100.00")

        due = await loan_service.upcoming_due(session, days=7)
        assert [l.id for l in due] == [inside.id]
