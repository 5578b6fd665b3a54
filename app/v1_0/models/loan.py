from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import (
    String,
    Text,
    Integer,
    Numeric,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    CheckConstraint,
    func,
    text,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from .base import Base, utcnow
from .enums import LoanStatus, LoanType

class Loan(Base):
    __tablename__ = "loan"
    __table_args__ = (
        CheckConstraint("total_amount > 0", name="loan_total_amount_positive"),
        CheckConstraint("interest_rate >= 0 AND interest_rate <= 100", name="loan_interest_rate_range"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    person_id: Mapped[int] = mapped_column(
        ForeignKey("person.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    interest_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0.00"), server_default=text("0")
    )
    loan_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LoanType.PERSONAL.value
    )
    description: Mapped[str | None] = mapped_column(Text)
    due_date: Mapped[date | None] = mapped_column(Date, index=True)
    installments_agreed: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    installments_paid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # derivados: solo los escribe el ledger
    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0.00"), server_default=text("0")
    )
    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(), index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LoanStatus.ACTIVE.value, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    person = relationship("Person", back_populates="loans")
    payments = relationship(
        "Payment",
        back_populates="loan",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
