from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from .page import PageDTO

@dataclass(slots=True)
class PersonDTO:
    """Borrower response DTO."""
    id: int
    name: str
    surname: Optional[str]
    national_id: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    address: Optional[str]
    notes: Optional[str]
    active: bool
    created_at: datetime

@dataclass(slots=True)
class PersonStatsDTO:
    person: PersonDTO
    total_loans: int
    completed_loans: int
    active_loans: int
    total_lent: Decimal
    total_outstanding: Decimal

PersonPageDTO = PageDTO[PersonDTO]
