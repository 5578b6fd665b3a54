from app.v1_0.entities import LoanDTO, PaymentDTO, PersonDTO
from app.v1_0.models import Loan, Payment, Person
from .money import to_money


def person_to_dto(p: Person) -> PersonDTO:
    return PersonDTO(
        id=p.id,
        name=p.name,
        surname=p.surname,
        national_id=p.national_id,
        phone=p.phone,
        email=p.email,
        address=p.address,
        notes=p.notes,
        active=bool(p.active),
        created_at=p.created_at,
    )


def loan_to_dto(l: Loan) -> LoanDTO:
    return LoanDTO(
        id=l.id,
        person_id=l.person_id,
        total_amount=to_money(l.total_amount),
        interest_rate=to_money(l.interest_rate),
        loan_type=l.loan_type,
        description=l.description,
        due_date=l.due_date,
        installments_agreed=int(l.installments_agreed or 0),
        installments_paid=int(l.installments_paid or 0),
        paid_amount=to_money(l.paid_amount),
        remaining_amount=to_money(l.remaining_amount),
        completed=bool(l.completed),
        status=l.status,
        created_at=l.created_at,
        completed_at=l.completed_at,
    )


def payment_to_dto(p: Payment) -> PaymentDTO:
    return PaymentDTO(
        id=p.id,
        loan_id=p.loan_id,
        amount=to_money(p.amount),
        capital_amount=to_money(p.capital_amount),
        interest_amount=to_money(p.interest_amount),
        late_fee_amount=to_money(p.late_fee_amount),
        method=p.method,
        transaction_ref=p.transaction_ref,
        description=p.description,
        scheduled_date=p.scheduled_date,
        is_installment=bool(p.is_installment),
        installment_number=p.installment_number,
        paid_at=p.paid_at,
        created_at=p.created_at,
    )
