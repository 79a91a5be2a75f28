"""Small numeric helpers shared by the analyzers.

Readings may be any finite float, so sums divide before adding and squares
are taken on values scaled into [-1, 1]. Results that genuinely exceed the
float range come back as ``inf`` rather than raising.
"""

from __future__ import annotations

import math
from datetime import datetime
from statistics import median
from typing import Optional, Sequence


def round_to(value: float, digits: int) -> float:
    # Adding 0.0 folds negative zero into positive zero.
    return round(value, digits) + 0.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def mean(values: Sequence[float]) -> float:
    count = len(values)
    return math.fsum(value / count for value in values)


def magnitude(values: Sequence[float]) -> float:
    """Largest absolute value, 0.0 for an empty sequence."""
    return max((abs(value) for value in values), default=0.0)


def spread_about(values: Sequence[float], center: Optional[float] = None) -> float:
    """Root-mean-square distance of ``values`` from ``center``.

    ``center`` defaults to the mean, which makes this the population
    standard deviation.
    """
    scale = max(magnitude(values), abs(center) if center is not None else 0.0)
    if scale == 0.0:
        return 0.0
    scaled = [value / scale for value in values]
    middle = mean(scaled) if center is None else center / scale
    squares = math.fsum((value - middle) * (value - middle) for value in scaled)
    return scale * math.sqrt(squares / len(scaled))


def population_std(values: Sequence[float]) -> float:
    return spread_about(values)


def median_absolute_deviation(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    center = median(values)
    return median([abs(value - center) for value in values])


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600.0
