"""Resource-efficiency scoring for ventilation, water and energy.

Each subsystem starts at 100 and loses points for the sensors it is
responsible for:

* ventilation <- temperature, CO2
* water       <- soil moisture, humidity
* energy      <- every sensor; time spent outside the setpoint band is the
  proxy for conditioning effort that was wasted.

Climate subsystems (ventilation, water) are penalised for the stability
deficit of their sensors, for spikes (fixed cost per spike, saturating) and
for drift heading away from the ideal. A subsystem without any scored sensor
reports ``insufficient data`` and is left out of the overall score.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from models.records import SENSOR_LABELS, SensorType
from models.stats import (
    DeviationStats,
    DriftStatus,
    EfficiencyProfile,
    StabilityStats,
    SubsystemEfficiency,
)
from services.numeric import clamp, mean, round_half_up

SUBSYSTEM_SENSORS: Dict[str, Tuple[SensorType, ...]] = {
    "ventilation": (SensorType.temperature, SensorType.co2),
    "water": (SensorType.soil_moisture, SensorType.humidity),
    "energy": tuple(SensorType),
}

ISSUE_THRESHOLDS = {"ventilation": 80, "water": 80, "energy": 75}

LAG_PHRASES = {
    "ventilation": "ventilation lagging",
    "water": "irrigation lagging",
    "energy": "conditioning running outside setpoint",
}

STABILITY_DEFICIT_WEIGHT = 0.5
SPIKE_PENALTY = 5.0
SPIKE_PENALTY_CAP = 25.0
DRIFT_PENALTY = 15.0
DRIFT_PENALTY_CAP = 30.0
ENERGY_OUTSIDE_WEIGHT = 0.6
ENERGY_DEFICIT_WEIGHT = 0.25

INSUFFICIENT_DATA = "insufficient data"


@dataclass(frozen=True)
class _SensorPenalty:
    sensor_type: SensorType
    stability: float
    spikes: float
    drift: float

    @property
    def total(self) -> float:
        return self.stability + self.spikes + self.drift


def status_for(score: int) -> str:
    if score >= 90:
        return "optimal"
    if score >= 75:
        return "good"
    if score >= 50:
        return "needs attention"
    return "critical"


def drifting_away(stats: DeviationStats) -> bool:
    """True when the trend moves the sensor further from its ideal."""
    if stats.drift_status is DriftStatus.rising:
        return stats.bias >= 0
    if stats.drift_status is DriftStatus.falling:
        return stats.bias <= 0
    return False


def _sensor_penalty(
    sensor_type: SensorType, deviation: DeviationStats, stability: StabilityStats
) -> _SensorPenalty:
    return _SensorPenalty(
        sensor_type=sensor_type,
        stability=STABILITY_DEFICIT_WEIGHT * (100 - stability.score),
        spikes=SPIKE_PENALTY * deviation.spike_count,
        drift=DRIFT_PENALTY if drifting_away(deviation) else 0.0,
    )


def _insufficient(subsystem: str) -> SubsystemEfficiency:
    labels = " / ".join(SENSOR_LABELS[sensor] for sensor in SUBSYSTEM_SENSORS[subsystem])
    return SubsystemEfficiency(
        score=0,
        status=INSUFFICIENT_DATA,
        issue=f"Not enough {labels} samples for {subsystem} efficiency analysis.",
    )


def _describe_climate_issue(
    subsystem: str,
    penalty: _SensorPenalty,
    deviation: DeviationStats,
    stability: StabilityStats,
) -> str:
    label = SENSOR_LABELS[penalty.sensor_type]
    lag = LAG_PHRASES[subsystem]
    if penalty.drift and penalty.drift >= max(penalty.spikes, penalty.stability):
        direction = "up" if deviation.drift_status is DriftStatus.rising else "down"
        return f"{label} trending {direction}, {lag}"
    if penalty.spikes and penalty.spikes >= penalty.stability:
        noun = "spike" if deviation.spike_count == 1 else "spikes"
        return f"{label} spiking ({deviation.spike_count} {noun}), {lag}"
    if stability.unstable_percent:
        return f"{label} outside setpoint {stability.unstable_percent}% of the time, {lag}"
    return f"{label} fluctuating ({stability.fluctuation}% variation), {lag}"


def _score_climate(
    subsystem: str,
    deviation: Mapping[SensorType, DeviationStats],
    stability: Mapping[SensorType, StabilityStats],
) -> Optional[SubsystemEfficiency]:
    sensors = [
        sensor
        for sensor in SUBSYSTEM_SENSORS[subsystem]
        if sensor in deviation and sensor in stability
    ]
    if not sensors:
        return None

    penalties = [_sensor_penalty(sensor, deviation[sensor], stability[sensor]) for sensor in sensors]
    total = (
        mean([penalty.stability for penalty in penalties])
        + min(SPIKE_PENALTY_CAP, sum(penalty.spikes for penalty in penalties))
        + min(DRIFT_PENALTY_CAP, sum(penalty.drift for penalty in penalties))
    )
    score = round_half_up(clamp(100.0 - total))

    issue = None
    if score < ISSUE_THRESHOLDS[subsystem]:
        dominant = max(penalties, key=lambda penalty: penalty.total)
        issue = _describe_climate_issue(
            subsystem,
            dominant,
            deviation[dominant.sensor_type],
            stability[dominant.sensor_type],
        )
    return SubsystemEfficiency(score=score, status=status_for(score), issue=issue)


def _score_energy(stability: Mapping[SensorType, StabilityStats]) -> Optional[SubsystemEfficiency]:
    sensors = [sensor for sensor in SUBSYSTEM_SENSORS["energy"] if sensor in stability]
    if not sensors:
        return None

    outside = mean([float(stability[sensor].unstable_percent) for sensor in sensors])
    deficit = mean([float(100 - stability[sensor].score) for sensor in sensors])
    total = ENERGY_OUTSIDE_WEIGHT * outside + ENERGY_DEFICIT_WEIGHT * deficit
    score = round_half_up(clamp(100.0 - total))

    issue = None
    if score < ISSUE_THRESHOLDS["energy"]:
        worst = max(sensors, key=lambda sensor: stability[sensor].unstable_percent)
        issue = (
            f"{SENSOR_LABELS[worst]} outside setpoint "
            f"{stability[worst].unstable_percent}% of the time, {LAG_PHRASES['energy']}"
        )
    return SubsystemEfficiency(score=score, status=status_for(score), issue=issue)


def overall_score(
    subsystems: Mapping[str, Optional[SubsystemEfficiency]],
    weights: Optional[Mapping[str, float]] = None,
) -> int:
    """Weighted mean of the subsystems that have data; 0 when none do."""
    weighted = 0.0
    total_weight = 0.0
    for name, result in subsystems.items():
        if result is None:
            continue
        weight = 1.0 if weights is None else float(weights.get(name, 1.0))
        weighted += weight * result.score
        total_weight += weight
    if total_weight <= 0:
        return 0
    return round_half_up(clamp(weighted / total_weight))


def score_efficiency(
    deviation: Mapping[SensorType, DeviationStats],
    stability: Mapping[SensorType, StabilityStats],
    weights: Optional[Mapping[str, float]] = None,
) -> EfficiencyProfile:
    scored: Dict[str, Optional[SubsystemEfficiency]] = {
        "ventilation": _score_climate("ventilation", deviation, stability),
        "water": _score_climate("water", deviation, stability),
        "energy": _score_energy(stability),
    }
    return EfficiencyProfile(
        ventilation=scored["ventilation"] or _insufficient("ventilation"),
        water=scored["water"] or _insufficient("water"),
        energy=scored["energy"] or _insufficient("energy"),
        overall_score=overall_score(scored, weights),
    )

