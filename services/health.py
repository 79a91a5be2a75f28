"""Data reliability of a sensor window: sampling gaps and noisy jumps."""

from __future__ import annotations

import math
from statistics import median
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from models.records import Reading, SensorType
from models.stats import HealthStats
from services.deviation import by_source
from services.numeric import hours_between, mean, median_absolute_deviation, round_half_up

# A spacing more than GAP_FACTOR times the usual one means samples were missed.
GAP_FACTOR = 1.5
NOISE_MAD_MULTIPLIER = 3.0
RELIABILITY_WEIGHT = 0.6
QUALITY_WEIGHT = 0.4

# Minimum jump between consecutive samples, in sensor units, that can count as
# noise. Keeps a flat series with a tiny MAD from flagging every wobble.
NOISE_FLOORS: Dict[SensorType, float] = {
    SensorType.temperature: 5.0,
    SensorType.humidity: 20.0,
    SensorType.co2: 1000.0,
    SensorType.light: 500.0,
    SensorType.soil_moisture: 15.0,
}


def _spacings(readings: Sequence[Reading]) -> List[float]:
    return [
        hours_between(previous.timestamp, current.timestamp)
        for previous, current in zip(readings, readings[1:])
    ]


def count_gaps(spacings: Sequence[float], expected: float) -> int:
    """Number of samples missing from a sequence sampled every ``expected`` hours."""
    if expected <= 0:
        return 0
    missed = 0
    for spacing in spacings:
        if spacing > GAP_FACTOR * expected:
            missed += max(0, math.floor(spacing / expected) - 1)
    return missed


def count_noise(values: Sequence[float], threshold: float) -> int:
    return sum(
        1 for previous, current in zip(values, values[1:]) if abs(current - previous) > threshold
    )


def noise_threshold(sensor_type: SensorType, values: Sequence[float]) -> float:
    return max(NOISE_MAD_MULTIPLIER * median_absolute_deviation(values), NOISE_FLOORS[sensor_type])


def _gaps_and_noise(
    sensor_type: SensorType, samples: Sequence[Reading]
) -> Tuple[int, int]:
    threshold = noise_threshold(sensor_type, [reading.value for reading in samples])
    gaps = 0
    noise = 0
    for readings in by_source(samples).values():
        spacings = _spacings(readings)
        positive = [spacing for spacing in spacings if spacing > 0]
        if positive:
            gaps += count_gaps(positive, median(positive))
        noise += count_noise([reading.value for reading in readings], threshold)
    return gaps, noise


def assess_health(
    sensor_type: SensorType, samples: Sequence[Reading]
) -> Optional[HealthStats]:
    """Reliability, quality and trust for one window, ``None`` under 2 samples.

    Gaps are measured against each source's own median sampling interval;
    noise is a jump between consecutive samples larger than three MADs of
    the window (or the sensor's noise floor, whichever is larger).
    """
    total = len(samples)
    if total < 2:
        return None

    gaps, noise = _gaps_and_noise(sensor_type, samples)
    reliability = round_half_up(100.0 * total / (total + gaps))
    quality = max(0, round_half_up(100.0 * (total - noise) / total))
    trust = round_half_up(RELIABILITY_WEIGHT * reliability + QUALITY_WEIGHT * quality)
    return HealthStats(
        reliability=reliability,
        quality=quality,
        trust=trust,
        gaps=gaps,
        noise=noise,
        sample_count=total,
    )


def system_confidence(health: Mapping[SensorType, HealthStats]) -> Optional[int]:
    """Mean trust across sensors with a health profile."""
    trusts = [float(stats.trust) for stats in health.values()]
    if not trusts:
        return None
    return round_half_up(mean(trusts))
