"""Derived statistics produced by the analytics services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from models.records import SensorType


class DriftStatus(str, Enum):
    rising = "rising"
    falling = "falling"
    stable = "stable"


@dataclass(frozen=True)
class DeviationStats:
    """Drift, deviation from ideal and spike counts for one sensor window."""

    drift: float
    drift_status: DriftStatus
    avg_dev: float
    max_delta: float
    spike_count: int
    bias: float
    sample_count: int


@dataclass(frozen=True)
class StabilityStats:
    """Band adherence and fluctuation for one sensor window."""

    score: int
    fluctuation: float
    std_dev_ideal: float
    max_stable: float
    max_unstable: float
    stable_percent: int
    unstable_percent: int
    sample_count: int


@dataclass(frozen=True)
class SubsystemEfficiency:
    score: int
    status: str
    issue: Optional[str] = None


@dataclass(frozen=True)
class EfficiencyProfile:
    ventilation: SubsystemEfficiency
    water: SubsystemEfficiency
    energy: SubsystemEfficiency
    overall_score: int


@dataclass(frozen=True)
class HealthStats:
    """Sampling reliability and signal quality for one sensor window."""

    reliability: int
    quality: int
    trust: int
    gaps: int
    noise: int
    sample_count: int


@dataclass(frozen=True)
class WindowSummary:
    """Basic min/max/mean of the readings inside a window."""

    count: int
    min: float
    max: float
    mean: float


@dataclass(frozen=True)
class Snapshot:
    """Immutable bundle of every derived view for one timeframe/sensor set.

    ``valid_until`` is the moment the oldest included reading leaves the
    window; after that the bundle no longer describes the window.
    """

    timeframe: str
    sensor_types: Tuple[SensorType, ...]
    computed_at: datetime
    deviation: Mapping[SensorType, DeviationStats]
    stability: Mapping[SensorType, StabilityStats]
    efficiency: EfficiencyProfile
    summary: Mapping[SensorType, WindowSummary]
    valid_until: Optional[datetime] = None
    health: Mapping[SensorType, HealthStats] = field(default_factory=dict)
    system_confidence: Optional[int] = None

    def __post_init__(self) -> None:
        for name in ("deviation", "stability", "summary", "health"):
            value = getattr(self, name)
            if not isinstance(value, MappingProxyType):
                object.__setattr__(self, name, MappingProxyType(dict(value)))

    def is_expired(self, now: datetime) -> bool:
        return self.valid_until is not None and now >= self.valid_until
