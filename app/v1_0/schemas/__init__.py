from .person_schema import PersonCreate, PersonUpdate
from .loan_schema import LoanCreate, LoanUpdate
from .payment_schema import PaymentCreate, PaymentUpdate
__all__ = [
    "PersonCreate", "PersonUpdate",
    "LoanCreate", "LoanUpdate",
    "PaymentCreate", "PaymentUpdate",
]
