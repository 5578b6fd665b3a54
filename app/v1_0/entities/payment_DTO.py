from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from .loan_DTO import LoanDTO
from .page import PageDTO

@dataclass(slots=True)
class PaymentDTO:
    id: int
    loan_id: int
    amount: Decimal
    capital_amount: Decimal
    interest_amount: Decimal
    late_fee_amount: Decimal
    method: str
    transaction_ref: Optional[str]
    description: Optional[str]
    scheduled_date: Optional[date]
    is_installment: bool
    installment_number: Optional[int]
    paid_at: datetime
    created_at: datetime

@dataclass(slots=True)
class PaymentCreatedDTO:
    """Created payment together with the loan as left by the same transaction."""
    payment: PaymentDTO
    loan: LoanDTO

@dataclass(slots=True)
class PaymentMethodStatsDTO:
    method: str
    total_amount: Decimal
    payment_count: int

@dataclass(slots=True)
class PaymentPeriodSummaryDTO:
    total_payments: int
    total_amount: Decimal
    date_from: datetime
    date_to: datetime

@dataclass(slots=True)
class PaymentPeriodDTO:
    payments: List[PaymentDTO]
    summary: PaymentPeriodSummaryDTO

PaymentPageDTO = PageDTO[PaymentDTO]
