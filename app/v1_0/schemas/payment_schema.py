from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from app.core.settings import settings
from app.v1_0.helper.ledger import components_match
from app.v1_0.models.enums import PaymentMethod

COMPONENT_MISMATCH = "capital_amount + interest_amount + late_fee_amount must equal amount"

class PaymentCreate(BaseModel):
    """Input schema to register a payment against a loan."""
    loan_id: int = Field(..., ge=1)
    amount: Decimal = Field(
        ..., gt=0, le=settings.PAYMENT_MAX_AMOUNT, max_digits=14, decimal_places=2
    )
    capital_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=14, decimal_places=2)
    interest_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=14, decimal_places=2)
    late_fee_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=14, decimal_places=2)
    method: PaymentMethod = PaymentMethod.CASH
    transaction_ref: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    scheduled_date: Optional[date] = None
    is_installment: bool = False
    installment_number: Optional[int] = Field(None, ge=1)
    paid_at: Optional[datetime] = None

    model_config = {
        "use_enum_values": True,
        "json_schema_extra": {
            "example": {
                "loan_id": 12,
                "amount": "40.00",
                "capital_amount": "30.00",
                "interest_amount": "10.00",
                "method": "transferencia",
                "transaction_ref": "TRX-2291",
                "is_installment": True,
                "installment_number": 1,
            }
        },
    }

    @model_validator(mode="after")
    def _components_sum_to_amount(self):
        if not components_match(
            self.amount, self.capital_amount, self.interest_amount, self.late_fee_amount
        ):
            raise ValueError(COMPONENT_MISMATCH)
        return self

class PaymentUpdate(BaseModel):
    """Partial update for a payment. The loan it belongs to cannot change."""
    amount: Optional[Decimal] = Field(
        None, gt=0, le=settings.PAYMENT_MAX_AMOUNT, max_digits=14, decimal_places=2
    )
    capital_amount: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)
    interest_amount: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)
    late_fee_amount: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)
    method: Optional[PaymentMethod] = None
    transaction_ref: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    scheduled_date: Optional[date] = None
    is_installment: Optional[bool] = None
    installment_number: Optional[int] = Field(None, ge=1)
    paid_at: Optional[datetime] = None

    model_config = {"use_enum_values": True}

    @model_validator(mode="after")
    def _at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError("at least one field is required")
        return self
