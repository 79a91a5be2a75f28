"""Pydantic schemas for the ingestion and output contracts."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models.records import SensorType
from models.stats import (
    DeviationStats,
    DriftStatus,
    EfficiencyProfile,
    HealthStats,
    Snapshot,
    StabilityStats,
    SubsystemEfficiency,
    WindowSummary,
)


class WireModel(BaseModel):
    """Base model exposing camelCase names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReadingEvent(WireModel):
    """A reading event as delivered by the ingestion collaborator."""

    model_config = ConfigDict(str_strip_whitespace=True)

    sensor_type: SensorType
    value: float
    timestamp: datetime
    source_id: str = Field(..., min_length=1)

    @field_validator("value")
    @classmethod
    def _require_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("value must be a finite number")
        return value

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class SetpointEntry(WireModel):
    """Configured band for one sensor type."""

    min: float
    max: float
    ideal: Optional[float] = None
    spike_threshold: Optional[float] = None
    precision: Optional[int] = Field(default=None, ge=0)


class SetpointFile(BaseModel):
    """Top-level setpoint configuration keyed by sensor type."""

    setpoints: Dict[SensorType, SetpointEntry]


class DeviationStatsModel(WireModel):
    drift: float
    drift_status: DriftStatus
    avg_dev: float
    max_delta: float
    spike_count: int = Field(..., ge=0)
    bias: float
    sample_count: int = Field(..., ge=2)

    @classmethod
    def from_stats(cls, stats: DeviationStats) -> "DeviationStatsModel":
        return cls(
            drift=stats.drift,
            drift_status=stats.drift_status,
            avg_dev=stats.avg_dev,
            max_delta=stats.max_delta,
            spike_count=stats.spike_count,
            bias=stats.bias,
            sample_count=stats.sample_count,
        )


class StabilityStatsModel(WireModel):
    score: int = Field(..., ge=0, le=100)
    fluctuation: float
    std_dev_ideal: float
    max_stable: float
    max_unstable: float
    stable_percent: int = Field(..., ge=0, le=100)
    unstable_percent: int = Field(..., ge=0, le=100)
    sample_count: int = Field(..., ge=2)

    @classmethod
    def from_stats(cls, stats: StabilityStats) -> "StabilityStatsModel":
        return cls(
            score=stats.score,
            fluctuation=stats.fluctuation,
            std_dev_ideal=stats.std_dev_ideal,
            max_stable=stats.max_stable,
            max_unstable=stats.max_unstable,
            stable_percent=stats.stable_percent,
            unstable_percent=stats.unstable_percent,
            sample_count=stats.sample_count,
        )


class SubsystemEfficiencyModel(WireModel):
    score: int = Field(..., ge=0, le=100)
    status: str
    issue: Optional[str] = None

    @classmethod
    def from_stats(cls, stats: SubsystemEfficiency) -> "SubsystemEfficiencyModel":
        return cls(score=stats.score, status=stats.status, issue=stats.issue)


class EfficiencyProfileModel(WireModel):
    ventilation: SubsystemEfficiencyModel
    water: SubsystemEfficiencyModel
    energy: SubsystemEfficiencyModel
    overall_score: int = Field(..., ge=0, le=100)

    @classmethod
    def from_stats(cls, profile: EfficiencyProfile) -> "EfficiencyProfileModel":
        return cls(
            ventilation=SubsystemEfficiencyModel.from_stats(profile.ventilation),
            water=SubsystemEfficiencyModel.from_stats(profile.water),
            energy=SubsystemEfficiencyModel.from_stats(profile.energy),
            overall_score=profile.overall_score,
        )


class WindowSummaryModel(WireModel):
    count: int = Field(..., ge=1)
    min: float
    max: float
    mean: float

    @classmethod
    def from_stats(cls, summary: WindowSummary) -> "WindowSummaryModel":
        return cls(count=summary.count, min=summary.min, max=summary.max, mean=summary.mean)


class HealthStatsModel(WireModel):
    reliability: int = Field(..., ge=0, le=100)
    quality: int = Field(..., ge=0, le=100)
    trust: int = Field(..., ge=0, le=100)
    gaps: int = Field(..., ge=0)
    noise: int = Field(..., ge=0)
    sample_count: int = Field(..., ge=2)

    @classmethod
    def from_stats(cls, stats: HealthStats) -> "HealthStatsModel":
        return cls(
            reliability=stats.reliability,
            quality=stats.quality,
            trust=stats.trust,
            gaps=stats.gaps,
            noise=stats.noise,
            sample_count=stats.sample_count,
        )


class SnapshotPayload(WireModel):
    """Serializable view of a :class:`models.stats.Snapshot`."""

    timeframe: str
    sensor_types: List[SensorType]
    computed_at: datetime
    valid_until: Optional[datetime] = None
    deviation: Dict[SensorType, DeviationStatsModel] = Field(default_factory=dict)
    stability: Dict[SensorType, StabilityStatsModel] = Field(default_factory=dict)
    efficiency: EfficiencyProfileModel
    summary: Dict[SensorType, WindowSummaryModel] = Field(default_factory=dict)
    health: Dict[SensorType, HealthStatsModel] = Field(default_factory=dict)
    system_confidence: Optional[int] = Field(default=None, ge=0, le=100)

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "SnapshotPayload":
        return cls(
            timeframe=snapshot.timeframe,
            sensor_types=list(snapshot.sensor_types),
            computed_at=snapshot.computed_at,
            valid_until=snapshot.valid_until,
            deviation={
                sensor: DeviationStatsModel.from_stats(stats)
                for sensor, stats in snapshot.deviation.items()
            },
            stability={
                sensor: StabilityStatsModel.from_stats(stats)
                for sensor, stats in snapshot.stability.items()
            },
            efficiency=EfficiencyProfileModel.from_stats(snapshot.efficiency),
            summary={
                sensor: WindowSummaryModel.from_stats(summary)
                for sensor, summary in snapshot.summary.items()
            },
            health={
                sensor: HealthStatsModel.from_stats(stats)
                for sensor, stats in snapshot.health.items()
            },
            system_confidence=snapshot.system_confidence,
        )
