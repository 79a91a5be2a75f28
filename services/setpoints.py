"""Ideal setpoints, tolerance bands and spike thresholds per sensor type."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from pydantic import ValidationError

from models.errors import InvalidConfigError
from models.records import SensorType, SetpointConfig
from models.schemas import SetpointEntry, SetpointFile

logger = logging.getLogger(__name__)

# Spike thresholds are rates in sensor units per hour. CO2 is held tighter
# than light relative to its band, since ventilation reacts slowly.
DEFAULT_SPIKE_THRESHOLDS: Dict[SensorType, float] = {
    SensorType.temperature: 5.0,
    SensorType.humidity: 10.0,
    SensorType.co2: 150.0,
    SensorType.light: 400.0,
    SensorType.soil_moisture: 8.0,
}

DEFAULT_PRECISION: Dict[SensorType, int] = {
    SensorType.temperature: 1,
    SensorType.humidity: 1,
    SensorType.co2: 0,
    SensorType.light: 0,
    SensorType.soil_moisture: 1,
}

# Fruiting-stage bands for oyster-type mycelium rooms.
DEFAULT_SETPOINTS: Dict[SensorType, Tuple[float, float, float]] = {
    SensorType.temperature: (18.0, 28.0, 23.0),
    SensorType.humidity: (85.0, 95.0, 90.0),
    SensorType.co2: (400.0, 1000.0, 600.0),
    SensorType.light: (100.0, 1000.0, 500.0),
    SensorType.soil_moisture: (40.0, 80.0, 60.0),
}


def _entry_to_config(sensor_type: SensorType, entry: SetpointEntry) -> SetpointConfig:
    spike_threshold = entry.spike_threshold
    if spike_threshold is None:
        spike_threshold = DEFAULT_SPIKE_THRESHOLDS[sensor_type]
    precision = entry.precision
    if precision is None:
        precision = DEFAULT_PRECISION[sensor_type]
    try:
        return SetpointConfig.build(
            min=entry.min,
            max=entry.max,
            ideal=entry.ideal,
            spike_threshold=spike_threshold,
            precision=precision,
        )
    except InvalidConfigError as exc:
        raise InvalidConfigError(
            f"Invalid setpoint for {sensor_type.value}: {exc}",
            detail={"sensor_type": sensor_type.value},
        ) from exc


class SetpointRegistry:
    """Read-only lookup of setpoints. Types without an entry are never scored."""

    def __init__(self, setpoints: Mapping[SensorType, SetpointConfig]) -> None:
        self._setpoints: Dict[SensorType, SetpointConfig] = dict(setpoints)

    @classmethod
    def default(cls) -> "SetpointRegistry":
        return cls(
            {
                sensor_type: SetpointConfig.build(
                    min=low,
                    max=high,
                    ideal=ideal,
                    spike_threshold=DEFAULT_SPIKE_THRESHOLDS[sensor_type],
                    precision=DEFAULT_PRECISION[sensor_type],
                )
                for sensor_type, (low, high, ideal) in DEFAULT_SETPOINTS.items()
            }
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SetpointRegistry":
        """Build a registry from ``{sensorType: {min, max, ideal?, ...}}``.

        Accepts either the bare mapping or one wrapped under ``"setpoints"``.
        Any inconsistency fails fast with :class:`InvalidConfigError`.
        """
        payload = data.get("setpoints", data)
        try:
            parsed = SetpointFile.model_validate({"setpoints": payload})
        except ValidationError as exc:
            raise InvalidConfigError(f"Setpoint configuration is invalid: {exc}") from exc

        return cls(
            {
                sensor_type: _entry_to_config(sensor_type, entry)
                for sensor_type, entry in parsed.setpoints.items()
            }
        )

    @classmethod
    def from_json_file(cls, path: Path) -> "SetpointRegistry":
        try:
            raw = path.read_text()
        except OSError as exc:
            raise InvalidConfigError(f"Cannot read setpoint file {str(path)!r}: {exc}") from exc
        try:
            data = json.loads(raw or "{}")
        except json.JSONDecodeError as exc:
            raise InvalidConfigError(f"Setpoint file {str(path)!r} is not valid JSON.") from exc
        if not isinstance(data, dict):
            raise InvalidConfigError(f"Setpoint file {str(path)!r} must contain an object.")
        registry = cls.from_mapping(data)
        logger.info("Loaded %d setpoints from %s", len(registry), path)
        return registry

    def get(self, sensor_type: SensorType) -> Optional[SetpointConfig]:
        return self._setpoints.get(sensor_type)

    def __contains__(self, sensor_type: object) -> bool:
        return sensor_type in self._setpoints

    def __iter__(self) -> Iterator[SensorType]:
        return iter(self._setpoints)

    def __len__(self) -> int:
        return len(self._setpoints)

    @property
    def sensor_types(self) -> Tuple[SensorType, ...]:
        return tuple(sensor for sensor in SensorType if sensor in self._setpoints)

    def items(self) -> Iterator[Tuple[SensorType, SetpointConfig]]:
        for sensor_type in self.sensor_types:
            yield sensor_type, self._setpoints[sensor_type]


def load_registry(path: Optional[str] = None) -> SetpointRegistry:
    """Load setpoints from ``path`` when given, else the built-in defaults."""
    if not path:
        return SetpointRegistry.default()
    return SetpointRegistry.from_json_file(Path(path))
