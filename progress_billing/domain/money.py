"""
Fixed-point money helpers.

All monetary values in the domain are Decimals quantized to cents.
Persistence stores integer cents; retainage percents are stored as
integer basis points (10.00% == 1000).
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Union

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")

# Largest amount whose cents fit a signed 64-bit INTEGER column
MAX_CENTS = 2 ** 63 - 1
MAX_AMOUNT = (Decimal(MAX_CENTS) / 100).quantize(CENT)

Number = Union[Decimal, int, str]


def to_money(value: Number, field_name: str = "amount") -> Decimal:
    """
    Coerce a value to a 2-place Decimal.

    Floats are rejected; binary floating point cannot carry exact cents.

    Raises:
        TypeError: If value is a float or bool
        ValueError: If value is not a finite number or exceeds MAX_AMOUNT in magnitude
    """
    if isinstance(value, (float, bool)):
        raise TypeError(f"{field_name} must be Decimal, int or str, not {type(value).__name__}")
    try:
        amount = Decimal(value) if not isinstance(value, Decimal) else value
    except InvalidOperation:
        raise ValueError(f"{field_name} is not a number: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"{field_name} must be finite: {value!r}")
    if abs(amount) > MAX_AMOUNT:
        raise ValueError(f"{field_name} exceeds the largest storable amount {MAX_AMOUNT}")
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"{field_name} cannot be represented to the cent: {value!r}")


def to_percent(value: Number, field_name: str = "percent") -> Decimal:
    """Coerce a percent to a 2-place Decimal (10 -> Decimal('10.00'))."""
    return to_money(value, field_name)


def percent_of(percent: Decimal, amount: Decimal) -> Decimal:
    """percent/100 * amount, rounded half-up to the cent."""
    return (percent / HUNDRED * amount).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


def money_to_cents(amount: Decimal) -> int:
    # Unbounded: totals across lines may exceed a single stored amount
    return int(Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP) * 100)


def cents_to_money(cents: int) -> Decimal:
    return (Decimal(cents or 0) / 100).quantize(CENT)


def percent_to_basis_points(percent: Decimal) -> int:
    return int(to_percent(percent) * 100)


def basis_points_to_percent(basis_points: int) -> Decimal:
    return (Decimal(basis_points or 0) / 100).quantize(CENT)


def format_money(amount: Decimal, symbol: str = "$", thousands_separator: str = ",") -> str:
    """Format for display: Decimal('-1234.5') -> '-$1,234.50'."""
    amount = Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    body = f"{abs(amount):,.2f}"
    if thousands_separator != ",":
        body = body.replace(",", thousands_separator)
    return f"{sign}{symbol}{body}"
