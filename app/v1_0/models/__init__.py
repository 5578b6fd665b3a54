
from .base import Base
from .enums import LoanStatus, LoanType, PaymentMethod
from .person import Person
from .loan import Loan
from .payment import Payment
__all__ = [
    "Base",
    "LoanStatus",
    "LoanType",
    "PaymentMethod",
    "Person",
    "Loan",
    "Payment",
]
