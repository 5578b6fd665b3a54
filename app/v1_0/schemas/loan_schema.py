from datetime import date
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.settings import settings
from app.v1_0.models.enums import LoanStatus, LoanType
from .person_schema import PersonCreate

class LoanCreate(BaseModel):
    """Create schema for a loan. Pass either ``person_id`` or an inline ``person``."""
    person_id: Optional[int] = Field(None, ge=1, description="Existing borrower")
    person: Optional[PersonCreate] = Field(None, description="New borrower created with the loan")
    total_amount: Decimal = Field(
        ..., gt=0, le=settings.LOAN_MAX_AMOUNT, max_digits=14, decimal_places=2,
        description="Principal amount",
    )
    interest_rate: Decimal = Field(
        Decimal("0"), ge=0, le=100, max_digits=5, decimal_places=2,
        description="Annual interest rate (%)",
    )
    loan_type: LoanType = LoanType.PERSONAL
    description: Optional[str] = Field(None, max_length=1000)
    due_date: Optional[date] = None
    installments_agreed: int = Field(1, ge=1)

    model_config = {
        "use_enum_values": True,
        "json_schema_extra": {
            "example": {
                "person_id": 3,
                "total_amount": "1000.00",
                "interest_rate": "5.00",
                "loan_type": "personal",
                "description": "Préstamo para mercancía",
                "due_date": "2026-12-31",
                "installments_agreed": 4,
            }
        },
    }

    @field_validator("due_date")
    @classmethod
    def _due_date_in_future(cls, v: Optional[date]):
        if v is not None and v < date.today():
            raise ValueError("due_date must not be in the past")
        return v

    @model_validator(mode="after")
    def _one_borrower(self):
        if (self.person_id is None) == (self.person is None):
            raise ValueError("provide exactly one of person_id or person")
        return self

class LoanUpdate(BaseModel):
    """User-editable loan fields. Derived balances are never accepted here."""
    total_amount: Optional[Decimal] = Field(
        None, gt=0, le=settings.LOAN_MAX_AMOUNT, max_digits=14, decimal_places=2
    )
    interest_rate: Optional[Decimal] = Field(None, ge=0, le=100, max_digits=5, decimal_places=2)
    loan_type: Optional[LoanType] = None
    status: Optional[LoanStatus] = None
    description: Optional[str] = Field(None, max_length=1000)
    due_date: Optional[date] = None
    installments_agreed: Optional[int] = Field(None, ge=1)

    model_config = {
        "use_enum_values": True,
        "json_schema_extra": {
            "example": {"total_amount": "1200.00", "due_date": "2027-01-31"}
        },
    }

    @model_validator(mode="after")
    def _at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError("at least one field is required")
        return self
