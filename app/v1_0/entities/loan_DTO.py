from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from .page import PageDTO

@dataclass(slots=True)
class LoanDTO:
    """Loan response DTO, derived balances included."""
    id: int
    person_id: int
    total_amount: Decimal
    interest_rate: Decimal
    loan_type: str
    description: Optional[str]
    due_date: Optional[date]
    installments_agreed: int
    installments_paid: int
    paid_amount: Decimal
    remaining_amount: Decimal
    completed: bool
    status: str
    created_at: datetime
    completed_at: Optional[datetime]

@dataclass(slots=True)
class LoanTotalsDTO:
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    total_loans: int

@dataclass(slots=True)
class LoanStatusCountsDTO:
    active: int
    completed: int
    overdue: int

@dataclass(slots=True)
class LoanStatsDTO:
    totals: LoanTotalsDTO
    statuses: LoanStatusCountsDTO

LoanPageDTO = PageDTO[LoanDTO]
