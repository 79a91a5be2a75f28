from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Sequence

from models.records import Reading, SensorType
from models.stats import HealthStats
from services.health import assess_health, count_gaps, noise_threshold, system_confidence
from services.numeric import median_absolute_deviation

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _at_hours(
    hours: Sequence[float],
    values: Sequence[float],
    sensor_type: SensorType = SensorType.temperature,
    source_id: str = "room-1",
) -> List[Reading]:
    return [
        Reading(sensor_type, value, START + timedelta(hours=hour), source_id)
        for hour, value in zip(hours, values)
    ]


def _health(trust: int) -> HealthStats:
    return HealthStats(
        reliability=trust, quality=trust, trust=trust, gaps=0, noise=0, sample_count=5
    )


def test_median_absolute_deviation() -> None:
    assert median_absolute_deviation([22.0, 23.0, 30.0, 23.0]) == 0.5
    assert median_absolute_deviation([]) == 0.0


def test_noise_threshold_never_drops_below_floor() -> None:
    assert noise_threshold(SensorType.temperature, [23.0] * 5) == 5.0
    assert noise_threshold(SensorType.co2, [400.0, 2000.0, 400.0, 2000.0]) == 2400.0


def test_count_gaps_uses_expected_spacing() -> None:
    assert count_gaps([1.0, 1.0, 1.4], expected=1.0) == 0
    assert count_gaps([1.0, 4.0, 1.0], expected=1.0) == 3
    assert count_gaps([0.25, 0.75], expected=0.25) == 2


def test_regular_clean_stream_is_fully_trusted() -> None:
    stats = assess_health(SensorType.humidity, _at_hours(range(6), [90.0] * 6, SensorType.humidity))

    assert (stats.reliability, stats.quality, stats.trust) == (100, 100, 100)
    assert (stats.gaps, stats.noise) == (0, 0)


def test_missed_samples_lower_reliability() -> None:
    stats = assess_health(SensorType.temperature, _at_hours([0, 1, 2, 3, 7, 8], [23.0] * 6))

    assert stats.gaps == 3
    assert stats.reliability == 67
    assert stats.quality == 100
    assert stats.trust == 80


def test_jumps_above_threshold_lower_quality() -> None:
    stats = assess_health(SensorType.temperature, _at_hours(range(4), [22.0, 23.0, 30.0, 23.0]))

    assert stats.noise == 2
    assert stats.quality == 50
    assert stats.trust == 80


def test_sources_are_assessed_separately() -> None:
    readings = sorted(
        _at_hours(range(3), [22.0, 22.0, 22.0], source_id="room-1")
        + _at_hours(range(3), [27.0, 27.0, 27.0], source_id="room-2"),
        key=lambda reading: (reading.timestamp, reading.source_id),
    )

    stats = assess_health(SensorType.temperature, readings)

    assert (stats.gaps, stats.noise) == (0, 0)


def test_health_needs_two_samples() -> None:
    assert assess_health(SensorType.temperature, _at_hours([0], [23.0])) is None


def test_system_confidence_is_mean_trust() -> None:
    assert system_confidence({}) is None
    assert system_confidence(
        {SensorType.temperature: _health(80), SensorType.co2: _health(95)}
    ) == 88
