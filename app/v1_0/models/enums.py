from enum import Enum


class LoanStatus(str, Enum):
    ACTIVE = "activo"
    COMPLETED = "completado"
    CANCELLED = "cancelado"
    OVERDUE = "vencido"


class LoanType(str, Enum):
    PERSONAL = "personal"
    COMMERCIAL = "comercial"
    EMERGENCY = "emergencia"
    OTHER = "otro"


class PaymentMethod(str, Enum):
    CASH = "efectivo"
    TRANSFER = "transferencia"
    CARD = "tarjeta"
    CHECK = "cheque"
    OTHER = "otro"
