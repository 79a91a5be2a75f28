"""Stability scoring: band adherence, fluctuation and run lengths."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

from models.records import Reading, SetpointConfig
from models.stats import StabilityStats
from services.numeric import (
    clamp,
    hours_between,
    mean,
    population_std,
    round_half_up,
    round_to,
    spread_about,
)

# score = 100 - FLUCTUATION_WEIGHT * min(1, fluctuation / FLUCTUATION_CEILING)
#             - UNSTABLE_WEIGHT * unstable_percent / 100
# The weights sum to 100, so a series fully outside the band cannot score
# above 100 - UNSTABLE_WEIGHT = 20.
FLUCTUATION_WEIGHT = 20.0
UNSTABLE_WEIGHT = 80.0
FLUCTUATION_CEILING = 25.0
ZERO_MEAN_EPSILON = 1e-9


def fluctuation_index(values: Sequence[float]) -> float:
    """Coefficient of variation in percent; bare stddev when the mean is ~0."""
    spread = population_std(values)
    center = mean(values)
    if abs(center) < ZERO_MEAN_EPSILON:
        return spread
    return 100.0 * spread / abs(center)


def reconcile_percentages(stable: int, total: int) -> Tuple[int, int]:
    """Integer stable/unstable percentages that always sum to 100.

    Any rounding remainder goes to the majority class (stable on ties).
    """
    unstable = total - stable
    stable_pct = round_half_up(100.0 * stable / total)
    unstable_pct = round_half_up(100.0 * unstable / total)
    remainder = 100 - stable_pct - unstable_pct
    if remainder:
        if stable >= unstable:
            stable_pct += remainder
        else:
            unstable_pct += remainder
    return stable_pct, unstable_pct


def longest_runs(samples: Sequence[Reading], setpoint: SetpointConfig) -> Tuple[float, float]:
    """Longest in-band and out-of-band run durations, in hours."""
    longest = {True: 0.0, False: 0.0}
    run_start = samples[0]
    run_state = setpoint.contains(run_start.value)
    previous = run_start

    for reading in samples[1:]:
        state = setpoint.contains(reading.value)
        if state != run_state:
            duration = hours_between(run_start.timestamp, previous.timestamp)
            longest[run_state] = max(longest[run_state], duration)
            run_start = reading
            run_state = state
        previous = reading

    duration = hours_between(run_start.timestamp, previous.timestamp)
    longest[run_state] = max(longest[run_state], duration)
    return longest[True], longest[False]


def stability_label(score: int) -> str:
    if score >= 90:
        return "very stable"
    if score >= 70:
        return "stable"
    return "unstable"


def score_stability(
    samples: Sequence[Reading], setpoint: SetpointConfig
) -> Optional[StabilityStats]:
    if len(samples) < 2:
        return None

    values = [reading.value for reading in samples]
    count = len(values)
    fluctuation = fluctuation_index(values)
    std_dev_ideal = spread_about(values, setpoint.ideal)
    stable = sum(1 for value in values if setpoint.contains(value))
    stable_pct, unstable_pct = reconcile_percentages(stable, count)
    max_stable, max_unstable = longest_runs(samples, setpoint)

    normalized = min(1.0, fluctuation / FLUCTUATION_CEILING)
    raw_score = 100.0 - FLUCTUATION_WEIGHT * normalized - UNSTABLE_WEIGHT * unstable_pct / 100.0
    score = round_half_up(clamp(raw_score))

    return StabilityStats(
        score=score,
        fluctuation=round_to(fluctuation, 2),
        std_dev_ideal=round_to(std_dev_ideal, setpoint.precision),
        max_stable=round_to(max_stable, 2),
        max_unstable=round_to(max_unstable, 2),
        stable_percent=stable_pct,
        unstable_percent=unstable_pct,
        sample_count=count,
    )
