"""Currency helpers.

All amounts are stored as integer minor units (paise) so that sums over many
payments stay exact. The API speaks decimal strings with two fractional digits.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from institute_compass.errors import invalid_input


_MINOR_PER_MAJOR = 100
_QUANTUM = Decimal("0.01")
# Largest single amount accepted. Sums of many such amounts still fit a signed
# 64-bit minor-unit column.
MAX_AMOUNT = Decimal("1000000000000")


def to_minor(value: Any, *, field: str = "amount", allow_zero: bool = False) -> int:
    """Parse a decimal amount into minor units.

    Accepts Decimal, int, str, or float (floats go through `str()` so that
    `100.1` means 100.10, not its binary approximation). Rejects NaN/inf,
    negatives, zero unless `allow_zero`, anything above MAX_AMOUNT, and more
    than two fractional digits.
    """
    if value is None or isinstance(value, bool):
        raise invalid_input(f"{field}_required")
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise invalid_input(f"{field}_not_numeric")
    if not d.is_finite():
        raise invalid_input(f"{field}_not_numeric")
    if d < 0 or (d == 0 and not allow_zero):
        raise invalid_input(f"{field}_not_positive")
    if d > MAX_AMOUNT:
        raise invalid_input(f"{field}_too_large")
    try:
        exact = d == d.quantize(_QUANTUM)
    except InvalidOperation:
        raise invalid_input(f"{field}_too_precise")
    if not exact:
        raise invalid_input(f"{field}_too_precise")
    return int(d * _MINOR_PER_MAJOR)


def from_minor(minor: int | None) -> str:
    """Format minor units as a decimal string, e.g. 500000 -> '5000.00'."""
    m = int(minor or 0)
    return str((Decimal(m) / _MINOR_PER_MAJOR).quantize(_QUANTUM))
