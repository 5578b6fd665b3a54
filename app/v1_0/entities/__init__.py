from .page import PageDTO
from .person_DTO import PersonDTO, PersonStatsDTO, PersonPageDTO
from .loan_DTO import (
    LoanDTO,
    LoanPageDTO,
    LoanStatsDTO,
    LoanStatusCountsDTO,
    LoanTotalsDTO,
)
from .payment_DTO import (
    PaymentDTO,
    PaymentCreatedDTO,
    PaymentMethodStatsDTO,
    PaymentPageDTO,
    PaymentPeriodDTO,
    PaymentPeriodSummaryDTO,
)


__all__ = [
    "PageDTO",
    "PersonDTO", "PersonStatsDTO", "PersonPageDTO",
    "LoanDTO", "LoanPageDTO", "LoanStatsDTO", "LoanStatusCountsDTO", "LoanTotalsDTO",
    "PaymentDTO", "PaymentCreatedDTO", "PaymentMethodStatsDTO", "PaymentPageDTO",
    "PaymentPeriodDTO", "PaymentPeriodSummaryDTO",
]
