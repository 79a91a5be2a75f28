"""Linear trend estimation over a window of readings."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from models.records import Reading
from models.stats import DriftStatus
from services.numeric import hours_between, magnitude, mean

# Slopes within +/- this many units per hour are treated as noise.
DRIFT_DEADBAND = 0.1


@dataclass(frozen=True)
class DriftEstimate:
    slope: float
    status: DriftStatus


def classify_drift(slope: float) -> DriftStatus:
    if slope > DRIFT_DEADBAND:
        return DriftStatus.rising
    if slope < -DRIFT_DEADBAND:
        return DriftStatus.falling
    return DriftStatus.stable


def estimate_drift(samples: Sequence[Reading]) -> Optional[DriftEstimate]:
    """Least-squares slope of value against elapsed hours, in units/hour.

    Returns ``None`` for fewer than two samples. When every sample shares
    the same timestamp the slope is undefined and reported as a flat 0.
    """
    if len(samples) < 2:
        return None

    origin = samples[0].timestamp
    xs = [hours_between(origin, reading.timestamp) for reading in samples]
    # Fit on values scaled into [-1, 1] so the cross products stay finite.
    scale = magnitude([reading.value for reading in samples]) or 1.0
    ys = [reading.value / scale for reading in samples]
    mean_x = mean(xs)
    mean_y = mean(ys)

    sxx = math.fsum((x - mean_x) ** 2 for x in xs)
    if sxx <= 1e-12:
        return DriftEstimate(slope=0.0, status=DriftStatus.stable)

    sxy = math.fsum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    slope = scale * (sxy / sxx)
    return DriftEstimate(slope=slope, status=classify_drift(slope))
