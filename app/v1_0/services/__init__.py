from .loan_ledger_service import LoanLedgerService
from .person_service import PersonService
from .loan_service import LoanService
from .payment_service import PaymentService
__all__=[
    "LoanLedgerService",
    "PersonService",
    "LoanService",
    "PaymentService",
    ]
