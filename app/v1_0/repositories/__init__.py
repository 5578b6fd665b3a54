from .base_repository import BaseRepository
from .person_repository import PersonRepository
from .loan_repository import LoanRepository
from .payment_repository import PaymentRepository
__all__ = [
    "BaseRepository",
    "PersonRepository",
    "LoanRepository",
    "PaymentRepository",
]
