from __future__ import annotations

from models.records import SensorType
from models.stats import DeviationStats, DriftStatus, StabilityStats, SubsystemEfficiency
from services.efficiency import (
    INSUFFICIENT_DATA,
    drifting_away,
    overall_score,
    score_efficiency,
    status_for,
)


def _deviation(
    drift_status: DriftStatus = DriftStatus.stable,
    bias: float = 0.0,
    spike_count: int = 0,
) -> DeviationStats:
    drift = {DriftStatus.rising: 1.0, DriftStatus.falling: -1.0}.get(drift_status, 0.0)
    return DeviationStats(
        drift=drift,
        drift_status=drift_status,
        avg_dev=abs(bias),
        max_delta=0.0,
        spike_count=spike_count,
        bias=bias,
        sample_count=10,
    )


def _stability(score: int = 100, unstable_percent: int = 0) -> StabilityStats:
    return StabilityStats(
        score=score,
        fluctuation=0.0,
        std_dev_ideal=0.0,
        max_stable=9.0,
        max_unstable=0.0,
        stable_percent=100 - unstable_percent,
        unstable_percent=unstable_percent,
        sample_count=10,
    )


def test_status_bands() -> None:
    assert status_for(95) == "optimal"
    assert status_for(90) == "optimal"
    assert status_for(75) == "good"
    assert status_for(50) == "needs attention"
    assert status_for(49) == "critical"


def test_drift_towards_ideal_is_not_penalized() -> None:
    assert drifting_away(_deviation(DriftStatus.rising, bias=2.0))
    assert drifting_away(_deviation(DriftStatus.falling, bias=-2.0))
    assert not drifting_away(_deviation(DriftStatus.rising, bias=-2.0))
    assert not drifting_away(_deviation(DriftStatus.stable, bias=5.0))


def test_perfect_climate_scores_optimal() -> None:
    deviation = {sensor: _deviation() for sensor in SensorType}
    stability = {sensor: _stability() for sensor in SensorType}

    profile = score_efficiency(deviation, stability)

    for subsystem in (profile.ventilation, profile.water, profile.energy):
        assert subsystem.score == 100
        assert subsystem.status == "optimal"
        assert subsystem.issue is None
    assert profile.overall_score == 100


def test_rising_co2_blames_ventilation() -> None:
    deviation = {
        SensorType.temperature: _deviation(),
        SensorType.co2: _deviation(DriftStatus.rising, bias=250.0, spike_count=1),
    }
    stability = {
        SensorType.temperature: _stability(),
        SensorType.co2: _stability(score=80, unstable_percent=20),
    }

    profile = score_efficiency(deviation, stability)

    # stability deficit mean(0, 10) + one spike + one drifting sensor
    assert profile.ventilation.score == 75
    assert profile.ventilation.status == "good"
    assert profile.ventilation.issue == "CO₂ trending up, ventilation lagging"


def test_subsystem_without_data_is_reported_and_excluded() -> None:
    deviation = {SensorType.temperature: _deviation()}
    stability = {SensorType.temperature: _stability()}

    profile = score_efficiency(deviation, stability)

    assert profile.water.score == 0
    assert profile.water.status == INSUFFICIENT_DATA
    assert "Soil moisture" in profile.water.issue
    assert profile.overall_score == 100


def test_energy_tracks_time_outside_band() -> None:
    stability = {SensorType.light: _stability(score=70, unstable_percent=25)}

    profile = score_efficiency({}, stability)

    assert profile.energy.score == 78
    assert profile.energy.issue is None
    assert profile.ventilation.status == INSUFFICIENT_DATA


def test_overall_score_uses_weights() -> None:
    subsystems = {
        "ventilation": SubsystemEfficiency(score=100, status="optimal"),
        "water": SubsystemEfficiency(score=50, status="needs attention"),
        "energy": None,
    }

    assert overall_score(subsystems) == 75
    assert overall_score(subsystems, {"ventilation": 3.0, "water": 1.0}) == 88
    assert overall_score({"energy": None}) == 0
