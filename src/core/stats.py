"""Descriptive statistics over small numeric sequences.

Empty input is a normal state (a brand new user has no history), so every
function here returns 0.0 for it instead of raising.
"""

from __future__ import annotations

import math
from typing import Sequence

from src.core.errors import InvalidInputError


def _finite(xs: Sequence[float]) -> list[float]:
    values = [float(x) for x in xs]
    for v in values:
        if not math.isfinite(v):
            raise InvalidInputError("value", v, "must be finite")
    return values


def mean(xs: Sequence[float]) -> float:
    """Arithmetic mean. Returns 0.0 for an empty sequence."""
    values = _finite(xs)
    if not values:
        return 0.0
    return sum(values) / len(values)


def stddev(xs: Sequence[float]) -> float:
    """Population standard deviation (divisor N, not N-1)."""
    values = _finite(xs)
    if not values:
        return 0.0
    # Rounding in the mean would otherwise leave a tiny residue for a flat series
    if all(v == values[0] for v in values):
        return 0.0
    avg = sum(values) / len(values)
    variance = sum((v - avg) ** 2 for v in values) / len(values)
    return math.sqrt(variance)


def linear_trend_ratio(xs: Sequence[float]) -> float:
    """OLS slope of *xs* against its index, divided by the mean of *xs*.

    A unitless growth-rate proxy: 0.1 means the series grows by roughly 10%
    of its average per step. Returns 0 for fewer than two points and when
    the mean is not positive.
    """
    values = _finite(xs)
    n = len(values)
    if n < 2:
        return 0.0

    sum_x = sum_y = sum_xy = sum_x2 = 0.0
    for i, y in enumerate(values):
        sum_x += i
        sum_y += y
        sum_xy += i * y
        sum_x2 += i * i

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    avg_y = sum_y / n
    return slope / avg_y if avg_y > 0 else 0.0
