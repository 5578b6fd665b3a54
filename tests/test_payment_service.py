"""Tests for payment mutations and the loan ledger they drive."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from app.core.exceptions import (
    AlreadyCompletedError,
    NotFoundError,
    PaymentExceedsDebtError,
    ValidationFailureError,
)
from app.storage.database import Database
from app.v1_0.schemas import LoanCreate, LoanUpdate, PaymentCreate, PaymentUpdate, PersonCreate

LEDGER_FIELDS = ("paid_amount", "remaining_amount", "completed", "installments_paid", "status")


def _ledger(loan) -> tuple:
    return tuple(getattr(loan, f) for f in LEDGER_FIELDS)


async def _payment_count(payment_service, session, loan_id: int) -> int:
    page = await payment_service.list_paginated(1, session, loan_id=loan_id)
    return page.total


class TestCreatePayment:
    async def test_partial_payment(self, make_loan, pay) -> None:
        loan = await make_loan("1000.00")
        payment, loan = await pay(loan.id, "400.00")

        assert payment.amount == Decimal("400.00")
        assert loan.paid_amount == Decimal("400.00")
        assert loan.remaining_amount == Decimal("600.00")
        assert loan.completed is False
        assert loan.status == "activo"

    async def test_payoff_completes_loan(self, make_loan, pay) -> None:
        loan = await make_loan("1000.00")
        await pay(loan.id, "400.00")
        _, loan = await pay(loan.id, "600.00")

        assert loan.paid_amount == Decimal("1000.00")
        assert loan.remaining_amount == Decimal("0.00")
        assert loan.completed is True
        assert loan.completed_at is not None
        assert loan.status == "completado"

    async def test_payment_on_completed_loan_is_rejected(
        self, make_loan, pay, loan_service, payment_service, session
    ) -> None:
        loan = await make_loan("100.00")
        await pay(loan.id, "100.00")
        before = await loan_service.get(loan.id, session)

        with pytest.raises(AlreadyCompletedError):
            await pay(loan.id, "50.00")

        after = await loan_service.get(loan.id, session)
        assert _ledger(after) == _ledger(before)
        assert await _payment_count(payment_service, session, loan.id) == 1

    async def test_amount_equal_to_remaining_is_accepted(self, make_loan, pay) -> None:
        loan = await make_loan("250.50")
        await pay(loan.id, "100.25")
        _, loan = await pay(loan.id, "150.25")

        assert loan.remaining_amount == Decimal("0.00")
        assert loan.completed is True

    async def test_amount_one_cent_over_remaining_is_rejected(
        self, make_loan, pay, loan_service, payment_service, session
    ) -> None:
        loan = await make_loan("1000.00")
        await pay(loan.id, "400.00")
        before = await loan_service.get(loan.id, session)

        with pytest.raises(PaymentExceedsDebtError):
            await pay(loan.id, "600.01")

        after = await loan_service.get(loan.id, session)
        assert _ledger(after) == _ledger(before)
        assert await _payment_count(payment_service, session, loan.id) == 1

    async def test_missing_loan(self, pay) -> None:
        with pytest.raises(NotFoundError):
            await pay(9999, "10.00")

    async def test_component_split_matching_amount_is_accepted(self, make_loan, pay) -> None:
        loan = await make_loan("1000.00")
        payment, _ = await pay(
            loan.id,
            "40.00",
            capital_amount=Decimal("30.00"),
            interest_amount=Decimal("10.00"),
            late_fee_amount=Decimal("0.00"),
        )
        assert payment.capital_amount == Decimal("30.00")
        assert payment.interest_amount == Decimal("10.00")

    def test_component_mismatch_rejected_by_schema(self) -> None:
        with pytest.raises(ValidationError):
            PaymentCreate(
                loan_id=1,
                amount=Decimal("45.00"),
                capital_amount=Decimal("30.00"),
                interest_amount=Decimal("10.00"),
            )

    async def test_component_mismatch_rechecked_by_service(
        self, make_loan, payment_service, session
    ) -> None:
        loan = await make_loan("1000.00")
        payload = PaymentCreate.model_construct(
            loan_id=loan.id,
            amount=Decimal("45.00"),
            capital_amount=Decimal("30.00"),
            interest_amount=Decimal("10.00"),
            late_fee_amount=Decimal("0.00"),
            method="efectivo",
            transaction_ref=None,
            description=None,
            scheduled_date=None,
            is_installment=False,
            installment_number=None,
            paid_at=None,
        )
        with pytest.raises(ValidationFailureError):
            await payment_service.create(payload, session)
        assert await _payment_count(payment_service, session, loan.id) == 0

    async def test_non_positive_amount_rechecked_by_service(
        self, make_loan, payment_service, session
    ) -> None:
        loan = await make_loan("1000.00")
        payload = PaymentCreate.model_construct(
            loan_id=loan.id,
            amount=Decimal("0.00"),
            capital_amount=Decimal("0.00"),
            interest_amount=Decimal("0.00"),
            late_fee_amount=Decimal("0.00"),
            method="efectivo",
            transaction_ref=None,
            description=None,
            scheduled_date=None,
            is_installment=False,
            installment_number=None,
            paid_at=None,
        )
        with pytest.raises(ValidationFailureError):
            await payment_service.create(payload, session)

    async def test_installment_counter(self, make_loan, pay) -> None:
        loan = await make_loan("300.00", installments_agreed=3)
        await pay(loan.id, "100.00", is_installment=True, installment_number=1)
        _, loan = await pay(loan.id, "50.00")
        assert loan.installments_paid == 1
        _, loan = await pay(loan.id, "100.00", is_installment=True, installment_number=2)
        assert loan.installments_paid == 2


class TestDeletePayment:
    async def test_delete_reopens_completed_loan(
        self, make_loan, pay, payment_service, loan_service, session
    ) -> None:
        loan = await make_loan("1000.00")
        await pay(loan.id, "400.00")
        last, _ = await pay(loan.id, "600.00")

        await payment_service.delete(last.id, session)

        loan = await loan_service.get(loan.id, session)
        assert loan.paid_amount == Decimal("400.00")
        assert loan.remaining_amount == Decimal("600.00")
        assert loan.completed is False
        assert loan.completed_at is None
        assert loan.status == "activo"

    async def test_delete_last_payment_leaves_empty_ledger(
        self, make_loan, pay, payment_service, loan_service, session
    ) -> None:
        loan = await make_loan("500.00")
        payment, _ = await pay(loan.id, "200.00", is_installment=True)

        await payment_service.delete(payment.id, session)

        loan = await loan_service.get(loan.id, session)
        assert loan.paid_amount == Decimal("0.00")
        assert loan.remaining_amount == Decimal("500.00")
        assert loan.installments_paid == 0

    async def test_delete_keeps_cancelled_status(
        self, make_loan, pay, payment_service, loan_service, session
    ) -> None:
        loan = await make_loan("500.00")
        payment, _ = await pay(loan.id, "200.00")
        await loan_service.update(loan.id, LoanUpdate(status="cancelado"), session)

        await payment_service.delete(payment.id, session)

        loan = await loan_service.get(loan.id, session)
        assert loan.status == "cancelado"

    async def test_delete_missing_payment(self, payment_service, session) -> None:
        with pytest.raises(NotFoundError):
            await payment_service.delete(12345, session)


class TestUpdatePayment:
    async def test_amount_change_recalculates_loan(
        self, make_loan, pay, payment_service, loan_service, session
    ) -> None:
        loan = await make_loan("1000.00")
        payment, _ = await pay(loan.id, "400.00")

        updated = await payment_service.update(
            payment.id, PaymentUpdate(amount=Decimal("250.00")), session
        )
        assert updated.amount == Decimal("250.00")

        loan = await loan_service.get(loan.id, session)
        assert loan.paid_amount == Decimal("250.00")
        assert loan.remaining_amount == Decimal("750.00")

    async def test_amount_raised_past_total_completes_loan(
        self, make_loan, pay, payment_service, loan_service, session
    ) -> None:
        loan = await make_loan("100.00")
        payment, _ = await pay(loan.id, "60.00")

        await payment_service.update(payment.id, PaymentUpdate(amount=Decimal("120.00")), session)

        loan = await loan_service.get(loan.id, session)
        assert loan.paid_amount == Decimal("120.00")
        assert loan.remaining_amount == Decimal("0.00")
        assert loan.completed is True
        assert loan.status == "completado"

    async def test_installment_flag_change_recounts(
        self, make_loan, pay, payment_service, loan_service, session
    ) -> None:
        loan = await make_loan("1000.00")
        payment, _ = await pay(loan.id, "100.00")

        await payment_service.update(payment.id, PaymentUpdate(is_installment=True), session)

        loan = await loan_service.get(loan.id, session)
        assert loan.installments_paid == 1

    async def test_metadata_change_keeps_ledger(
        self, make_loan, pay, payment_service, loan_service, session
    ) -> None:
        loan = await make_loan("1000.00")
        payment, _ = await pay(loan.id, "100.00")
        before = await loan_service.get(loan.id, session)

        updated = await payment_service.update(
            payment.id,
            PaymentUpdate(method="transferencia", transaction_ref="TRX-1"),
            session,
        )
        assert updated.method == "transferencia"
        assert updated.transaction_ref == "TRX-1"

        after = await loan_service.get(loan.id, session)
        assert _ledger(after) == _ledger(before)

    async def test_components_must_match_new_amount(
        self, make_loan, pay, payment_service, session
    ) -> None:
        loan = await make_loan("1000.00")
        payment, _ = await pay(
            loan.id,
            "40.00",
            capital_amount=Decimal("30.00"),
            interest_amount=Decimal("10.00"),
        )
        with pytest.raises(ValidationFailureError):
            await payment_service.update(payment.id, PaymentUpdate(amount=Decimal("50.00")), session)

        unchanged = await payment_service.get(payment.id, session)
        assert unchanged.amount == Decimal("40.00")

    async def test_update_missing_payment(self, payment_service, session) -> None:
        with pytest.raises(NotFoundError):
            await payment_service.update(777, PaymentUpdate(description="x"), session)


class TestLedgerProperties:
    async def test_incremental_path_matches_full_recalculation(
        self, make_loan, pay, loan_service, session
    ) -> None:
        loan = await make_loan("900.00")
        await pay(loan.id, "123.45", is_installment=True)
        await pay(loan.id, "0.10")
        await pay(loan.id, "0.20", is_installment=True)
        _, incremental = await pay(loan.id, "776.25")

        full = await loan_service.recalculate_totals(loan.id, session)

        assert _ledger(full) == _ledger(incremental)
        assert full.completed is True
        assert full.completed_at is not None

    async def test_recalculation_is_idempotent(
        self, make_loan, pay, loan_service, session
    ) -> None:
        loan = await make_loan("500.00")
        await pay(loan.id, "120.00")
        await pay(loan.id, "30.55", is_installment=True)

        first = await loan_service.recalculate_totals(loan.id, session)
        second = await loan_service.recalculate_totals(loan.id, session)

        assert first == second

    async def test_paid_amount_matches_surviving_payments(
        self, make_loan, pay, payment_service, loan_service, session
    ) -> None:
        loan = await make_loan("1000.00")
        a, _ = await pay(loan.id, "100.00")
        await pay(loan.id, "250.50")
        c, _ = await pay(loan.id, "49.50")
        await payment_service.delete(a.id, session)
        await payment_service.update(c.id, PaymentUpdate(amount=Decimal("10.00")), session)

        page = await payment_service.list_paginated(1, session, loan_id=loan.id)
        surviving = sum((p.amount for p in page.items), Decimal("0.00"))

        loan = await loan_service.get(loan.id, session)
        assert loan.paid_amount == surviving == Decimal("260.50")
        assert loan.remaining_amount == max(Decimal("0.00"), loan.total_amount - loan.paid_amount)
        assert loan.completed == (loan.remaining_amount <= 0)

    async def test_recalculate_missing_loan(self, loan_service, session) -> None:
        with pytest.raises(NotFoundError):
            await loan_service.recalculate_totals(404, session)


class TestPaymentQueries:
    async def test_list_sorted_by_amount(self, make_loan, pay, payment_service, session) -> None:
        loan = await make_loan("1000.00")
        for amount in ("30.00", "10.00", "20.00"):
            await pay(loan.id, amount)

        page = await payment_service.list_paginated(
            1, session, loan_id=loan.id, sort_by="amount", order="asc"
        )
        assert [p.amount for p in page.items] == [
            Decimal("10.00"),
            Decimal("20.00"),
            Decimal("30.00"),
        ]

    async def test_list_rejects_unknown_sort(self, payment_service, session) -> None:
        with pytest.raises(ValidationFailureError):
            await payment_service.list_paginated(1, session, sort_by="loan_id")

    async def test_filter_by_method_and_person(
        self, make_loan, pay, person, payment_service, session
    ) -> None:
        loan = await make_loan("1000.00")
        await pay(loan.id, "10.00", method="tarjeta")
        await pay(loan.id, "20.00")

        page = await payment_service.list_paginated(
            1, session, person_id=person.id, method="tarjeta"
        )
        assert page.total == 1
        assert page.items[0].amount == Decimal("10.00")

    async def test_statistics_by_method(self, make_loan, pay, payment_service, session) -> None:
        loan = await make_loan("1000.00")
        await pay(loan.id, "10.00", method="tarjeta")
        await pay(loan.id, "15.50", method="tarjeta")
        await pay(loan.id, "20.00")

        stats = {s.method: s for s in await payment_service.statistics_by_method(session)}
        assert stats["tarjeta"].payment_count == 2
        assert stats["tarjeta"].total_amount == Decimal("25.50")
        assert stats["efectivo"].total_amount == Decimal("20.00")

    async def test_by_period(self, make_loan, pay, payment_service, session) -> None:
        loan = await make_loan("1000.00")
        inside = datetime(2026, 3, 10, 10, 0, tzinfo=timezone.utc)
        outside = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)
        await pay(loan.id, "10.00", paid_at=inside)
        await pay(loan.id, "99.00", paid_at=outside)

        result = await payment_service.by_period(
            inside - timedelta(days=1), inside + timedelta(days=1), session
        )
        assert result.summary.total_payments == 1
        assert result.summary.total_amount == Decimal("10.00")

    async def test_by_period_rejects_inverted_range(self, payment_service, session) -> None:
        now = datetime.now(timezone.utc)
        with pytest.raises(ValidationFailureError):
            await payment_service.by_period(now, now - timedelta(days=1), session)

    async def test_person_history_newest_first(
        self, make_loan, pay, person, payment_service, session
    ) -> None:
        first = await make_loan("1000.00")
        second = await make_loan("500.00")
        base = datetime(2026, 2, 1, tzinfo=timezone.utc)
        await pay(first.id, "10.00", paid_at=base)
        await pay(second.id, "20.00", paid_at=base + timedelta(days=1))
        await pay(first.id, "30.00", paid_at=base + timedelta(days=2))

        history = await payment_service.person_history(person.id, session, limit=2)
        assert [p.amount for p in history] == [Decimal("30.00"), Decimal("20.00")]


@pytest.fixture
async def file_database(tmp_path):
    """File-backed database so each session gets its own connection."""
    db = Database(f"sqlite:///{tmp_path / 'ledger.db'}")
    db.connect()
    await db.create_all()
    yield db
    await db.disconnect()


class TestConcurrentPayments:
    async def test_parallel_payoffs_do_not_overpay(
        self, file_database, loan_service, payment_service
    ) -> None:
        async with file_database.session() as s:
            loan = await loan_service.create(
                LoanCreate(
                    person=PersonCreate(name="Rosa", national_id="7788990011"),
                    total_amount=Decimal("100.00"),
                ),
                s,
            )

        async def _pay_in_own_session():
            async with file_database.session() as s:
                return await payment_service.create(
                    PaymentCreate(loan_id=loan.id, amount=Decimal("100.00")), s
                )

        results = await asyncio.gather(
            _pay_in_own_session(), _pay_in_own_session(), return_exceptions=True
        )

        accepted = [r for r in results if not isinstance(r, BaseException)]
        rejected = [r for r in results if isinstance(r, BaseException)]
        assert len(accepted) == 1
        assert len(rejected) == 1
        assert isinstance(rejected[0], (AlreadyCompletedError, PaymentExceedsDebtError))

        async with file_database.session() as s:
            page = await payment_service.list_paginated(1, s, loan_id=loan.id)
            stored = await loan_service.get(loan.id, s)
        assert page.total == 1
        assert stored.paid_amount == sum((p.amount for p in page.items), Decimal("0.00"))
        assert stored.paid_amount == Decimal("100.00")
        assert stored.completed is True
