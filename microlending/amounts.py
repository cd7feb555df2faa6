"""
Monetary Amount Module

Decimal helpers for the single currency the engine works in. Amounts are
always Decimal quantized to cents; floats are converted through ``str`` so
binary rounding noise never reaches a balance.
"""

from decimal import Decimal, InvalidOperation, ROUND_CEILING, ROUND_HALF_UP, getcontext
from typing import Any, Iterable, Union

from .exceptions import InvalidAmountError

# High precision for intermediate results, rounding only at the cent boundary
getcontext().prec = 28

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Any) -> Decimal:
    """
    Convert a numeric input to Decimal.

    Raises:
        InvalidAmountError: If the value is not a finite number
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError(f"Amount must be numeric, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise InvalidAmountError(f"Amount must be numeric, got {value!r}") from e
    if not result.is_finite():
        raise InvalidAmountError(f"Amount must be finite, got {value!r}")
    return result


def positive_amount(value: Any) -> Decimal:
    """Parse an amount that must be strictly greater than zero"""
    amount = quantize(to_decimal(value))
    if amount <= 0:
        raise InvalidAmountError(f"Amount must be greater than zero, got {value!r}")
    return amount


def quantize(value: Decimal) -> Decimal:
    """Round half-up to cents"""
    return _to_cents(value, ROUND_HALF_UP)


def round_up(value: Decimal) -> Decimal:
    """Round up to the next cent"""
    return _to_cents(value, ROUND_CEILING)


def _to_cents(value: Decimal, rounding: str) -> Decimal:
    try:
        return value.quantize(CENT, rounding=rounding)
    except InvalidOperation as e:
        # More digits than the context precision can hold at cent scale
        raise InvalidAmountError(f"Amount out of range: {value}") from e


def total(values: Iterable[Decimal]) -> Decimal:
    """Sum amounts, returning cents even for an empty input"""
    return quantize(sum(values, ZERO))


def format_amount(value: Decimal) -> str:
    """Two-decimal string used for storage and display"""
    return f"{quantize(value):.2f}"
