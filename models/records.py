"""Domain models shared across services."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from models.errors import InvalidConfigError


class SensorType(str, Enum):
    """Environmental sensor kinds reported by farm devices."""

    temperature = "temperature"
    humidity = "humidity"
    co2 = "co2"
    light = "light"
    soil_moisture = "soilMoisture"


SENSOR_LABELS = {
    SensorType.temperature: "Temperature",
    SensorType.humidity: "Humidity",
    SensorType.co2: "CO₂",
    SensorType.light: "Light",
    SensorType.soil_moisture: "Soil moisture",
}


@dataclass(frozen=True, slots=True)
class Reading:
    """A single timestamped sensor reading. Timestamps are UTC-aware."""

    sensor_type: SensorType
    value: float
    timestamp: datetime
    source_id: str

    @property
    def dedupe_key(self) -> tuple[datetime, str]:
        return (self.timestamp, self.source_id)


@dataclass(frozen=True, slots=True)
class SetpointConfig:
    """Acceptable band and ideal target for one sensor type."""

    min: float
    max: float
    ideal: float
    spike_threshold: float
    precision: int = 1

    def __post_init__(self) -> None:
        if not self.min < self.max:
            raise InvalidConfigError(
                f"Setpoint min ({self.min}) must be lower than max ({self.max})."
            )
        if not self.min < self.ideal < self.max:
            raise InvalidConfigError(
                f"Setpoint ideal ({self.ideal}) must lie strictly between "
                f"{self.min} and {self.max}."
            )
        if not self.spike_threshold > 0:
            raise InvalidConfigError(
                f"Spike threshold must be positive, got {self.spike_threshold}."
            )
        if self.precision < 0:
            raise InvalidConfigError(f"Precision must be >= 0, got {self.precision}.")

    @classmethod
    def build(
        cls,
        min: float,
        max: float,
        spike_threshold: float,
        ideal: Optional[float] = None,
        precision: int = 1,
    ) -> "SetpointConfig":
        """Create a setpoint, defaulting ``ideal`` to the band midpoint."""
        target = (min + max) / 2 if ideal is None else ideal
        return cls(
            min=min,
            max=max,
            ideal=target,
            spike_threshold=spike_threshold,
            precision=precision,
        )

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhdw])\s*$", re.IGNORECASE)
_DURATION_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def parse_duration(value: str) -> timedelta:
    """Parse compact durations such as ``1h``, ``24h`` or ``7d``."""
    match = _DURATION_PATTERN.match(value)
    if match is None:
        raise ValueError(f"Invalid duration {value!r}.")
    amount = int(match.group(1))
    if amount <= 0:
        raise ValueError(f"Duration must be positive, got {value!r}.")
    unit = _DURATION_UNITS[match.group(2).lower()]
    return timedelta(**{unit: amount})


@dataclass(frozen=True, slots=True)
class Window:
    """A named sliding timeframe such as ``24h``."""

    timeframe_id: str
    duration: timedelta

    @classmethod
    def parse(cls, timeframe_id: str) -> "Window":
        return cls(timeframe_id=timeframe_id.strip(), duration=parse_duration(timeframe_id))

    def start(self, now: datetime) -> datetime:
        return now - self.duration

    def contains(self, timestamp: datetime, now: datetime) -> bool:
        return timestamp >= self.start(now)
