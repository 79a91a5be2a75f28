"""Deviation from ideal, worst rate of change and spike detection."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from models.records import Reading, SetpointConfig
from models.stats import DeviationStats
from services.drift import estimate_drift
from services.numeric import hours_between, mean, round_to


def pair_rates(samples: Sequence[Reading]) -> Iterator[float]:
    """Signed per-hour rate of change for each consecutive pair.

    Pairs sharing a timestamp carry no rate information and are skipped.
    """
    for previous, current in zip(samples, samples[1:]):
        elapsed = hours_between(previous.timestamp, current.timestamp)
        if elapsed <= 0:
            continue
        yield (current.value - previous.value) / elapsed


def count_spikes(rates: Iterable[float], threshold: float) -> int:
    """Count excursions whose rate exceeds ``threshold``.

    A qualifying pair that reverses the previously counted one is the
    return leg of the same spike and is not counted again.
    """
    count = 0
    open_sign = 0
    for rate in rates:
        if abs(rate) <= threshold:
            open_sign = 0
            continue
        sign = 1 if rate > 0 else -1
        if open_sign and sign == -open_sign:
            open_sign = 0
            continue
        count += 1
        open_sign = sign
    return count


def by_source(samples: Sequence[Reading]) -> Dict[str, List[Reading]]:
    grouped: Dict[str, List[Reading]] = defaultdict(list)
    for reading in samples:
        grouped[reading.source_id].append(reading)
    return grouped


def _rate_profile(samples: Sequence[Reading], threshold: float) -> Tuple[float, int]:
    max_rate = 0.0
    spikes = 0
    # Pairs only make sense within one device's own sequence.
    for readings in by_source(samples).values():
        rates = list(pair_rates(readings))
        if rates:
            max_rate = max(max_rate, max(abs(rate) for rate in rates))
        spikes += count_spikes(rates, threshold)
    return max_rate, spikes


def analyze_deviation(
    samples: Sequence[Reading], setpoint: SetpointConfig
) -> Optional[DeviationStats]:
    """Deviation stats for one window, or ``None`` with fewer than 2 samples."""
    drift = estimate_drift(samples)
    if drift is None:
        return None

    ideal = setpoint.ideal
    count = len(samples)
    avg_dev = mean([abs(reading.value - ideal) for reading in samples])
    bias = mean([reading.value - ideal for reading in samples])
    max_rate, spikes = _rate_profile(samples, setpoint.spike_threshold)

    return DeviationStats(
        drift=round_to(drift.slope, 2),
        drift_status=drift.status,
        avg_dev=round_to(avg_dev, setpoint.precision),
        max_delta=round_to(max_rate, setpoint.precision),
        spike_count=spikes,
        bias=round_to(bias, setpoint.precision),
        sample_count=count,
    )
