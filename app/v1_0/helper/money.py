from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# tolerancia para capital + interés + mora vs monto
COMPONENT_TOLERANCE = Decimal("0.01")

def to_money(v: Any) -> Decimal:
    """Coerce any numeric input to a two-decimal ``Decimal`` (``None`` -> 0.00)."""
    if v is None: return ZERO
    if isinstance(v, Decimal): d = v
    elif isinstance(v, float): d = Decimal(str(v))
    else:
        try:
            d = Decimal(str(v).strip().replace(",", "."))
        except InvalidOperation:
            raise ValueError(f"invalid amount: {v!r}") from None
    return d.quantize(CENT, rounding=ROUND_HALF_UP)

def sum_money(values: Iterable[Any]) -> Decimal:
    total = ZERO
    for v in values:
        total += to_money(v)
    return total.quantize(CENT, rounding=ROUND_HALF_UP)

def clamp_zero(v: Decimal) -> Decimal:
    return v if v > ZERO else ZERO
