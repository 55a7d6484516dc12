"""Fixed-point money helpers. Amounts are INR with two decimal places."""

from decimal import ROUND_HALF_UP, Decimal

MONEY_QUANTUM = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(val) -> Decimal:
    """Coerce ``val`` to a two-place Decimal. Floats are routed through ``str`` so
    binary fractions never leak into ledger arithmetic."""
    if val is None:
        return ZERO
    if not isinstance(val, Decimal):
        val = Decimal(str(val))
    return val.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def format_amount(val) -> str:
    return str(to_money(val))
