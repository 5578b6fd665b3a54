from dependency_injector import containers, providers
from app.v1_0.repositories import (
    PersonRepository,
    LoanRepository,
    PaymentRepository,
    )
from app.v1_0.services import (
    LoanLedgerService,
    PersonService,
    LoanService,
    PaymentService,
    )

class APIContainer(containers.DeclarativeContainer):
    person_repository = providers.Singleton(PersonRepository)
    loan_repository = providers.Singleton(LoanRepository)
    payment_repository = providers.Singleton(PaymentRepository)

    loan_ledger_service = providers.Singleton(
        LoanLedgerService,
        loan_repository = loan_repository,
        payment_repository = payment_repository
    )
    person_service = providers.Singleton(
        PersonService,
        person_repository = person_repository
    )
    loan_service = providers.Singleton(
        LoanService,
        loan_repository = loan_repository,
        payment_repository = payment_repository,
        person_service = person_service,
        loan_ledger_service = loan_ledger_service
    )
    payment_service = providers.Singleton(
        PaymentService,
        payment_repository = payment_repository,
        loan_ledger_service = loan_ledger_service
    )
