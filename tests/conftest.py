"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from decimal import Decimal

import pytest

from app.storage.database import Database
from app.v1_0.repositories import LoanRepository, PaymentRepository, PersonRepository
from app.v1_0.schemas import LoanCreate, PaymentCreate, PersonCreate
from app.v1_0.services import LoanLedgerService, LoanService, PaymentService, PersonService


@pytest.fixture
async def database():
    """Fresh in-memory database per test."""
    db = Database("sqlite+aiosqlite:///:memory:")
    db.connect()
    await db.create_all()
    yield db
    await db.disconnect()


@pytest.fixture
async def session(database):
    s = database.session()
    yield s
    await s.close()


@pytest.fixture
def person_service() -> PersonService:
    return PersonService(person_repository=PersonRepository())


@pytest.fixture
def ledger_service() -> LoanLedgerService:
    return LoanLedgerService(
        loan_repository=LoanRepository(),
        payment_repository=PaymentRepository(),
    )


@pytest.fixture
def loan_service(person_service, ledger_service) -> LoanService:
    return LoanService(
        loan_repository=LoanRepository(),
        payment_repository=PaymentRepository(),
        person_service=person_service,
        loan_ledger_service=ledger_service,
    )


@pytest.fixture
def payment_service(ledger_service) -> PaymentService:
    return PaymentService(
        payment_repository=PaymentRepository(),
        loan_ledger_service=ledger_service,
    )


@pytest.fixture
async def person(person_service, session):
    """A registered borrower."""
    return await person_service.create(
        PersonCreate(name="María", surname="Gómez", national_id="1032456789"),
        session,
    )


@pytest.fixture
def make_loan(loan_service, session, person):
    """Factory for loans owned by the ``person`` fixture."""

    async def _make(total: str = "1000.00", **kwargs):
        payload = LoanCreate(person_id=person.id, total_amount=Decimal(total), **kwargs)
        return await loan_service.create(payload, session)

    return _make


@pytest.fixture
def pay(payment_service, session):
    """Register a payment and return ``(payment, loan)``."""

    async def _pay(loan_id: int, amount: str, **kwargs):
        created = await payment_service.create(
            PaymentCreate(loan_id=loan_id, amount=Decimal(amount), **kwargs),
            session,
        )
        return created.payment, created.loan

    return _pay
