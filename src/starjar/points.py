"""Utilities for working with point values and interest rates in StarJar."""

from __future__ import annotations

from decimal import Decimal, ROUND_UP
from typing import Union

PointsLike = Union[int, float, str, Decimal]
RateLike = Union[Decimal, int, float, str]


def to_points(value: PointsLike) -> int:
    """Convert ``value`` to a whole number of points."""

    if isinstance(value, bool):
        raise TypeError("Points cannot be a boolean.")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"Points must be whole numbers, got {value!r}.")
        return int(value)
    if isinstance(value, (str, Decimal)):
        result = Decimal(value)
        if result != result.to_integral_value():
            raise ValueError(f"Points must be whole numbers, got {value!r}.")
        return int(result)
    raise TypeError(f"Unsupported points type: {type(value)!r}")


def require_positive(points: int, *, allow_zero: bool = False) -> int:
    """Ensure ``points`` is positive (or non-negative when ``allow_zero`` is true)."""

    if allow_zero:
        if points < 0:
            raise ValueError("Points must be zero or greater.")
    else:
        if points <= 0:
            raise ValueError("Points must be greater than zero.")
    return points


def to_rate(value: RateLike) -> Decimal:
    """Convert an annual percentage rate to a :class:`~decimal.Decimal` at full precision."""

    if isinstance(value, bool):
        raise TypeError("Rate cannot be a boolean.")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        result = Decimal(value.strip().rstrip("%"))
    else:
        raise TypeError(f"Unsupported rate type: {type(value)!r}")
    if not result.is_finite():
        raise ValueError("Rate must be a finite number.")
    return result


def simple_interest(principal: int, rate: RateLike, months: int) -> int:
    """Return ``principal * rate% * months/12`` rounded up to the next whole point."""

    interest = Decimal(principal) * to_rate(rate) * Decimal(months) / Decimal(1200)
    return int(interest.to_integral_value(rounding=ROUND_UP))

