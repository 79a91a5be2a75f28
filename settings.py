from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional, Tuple

from models.records import Window


_TIMEFRAMES_ENV = "TELEMETRY_TIMEFRAMES"
_EVICTION_INTERVAL_ENV = "TELEMETRY_EVICTION_INTERVAL"
_SETPOINTS_PATH_ENV = "TELEMETRY_SETPOINTS_PATH"
_EFFICIENCY_WEIGHTS_ENV = "TELEMETRY_EFFICIENCY_WEIGHTS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_TIMEFRAMES = ("1h", "24h", "7d", "30d")
SUBSYSTEMS = ("ventilation", "water", "energy")


@dataclass(frozen=True)
class Settings:
    windows: Tuple[Window, ...]
    eviction_interval_seconds: float
    setpoints_path: Optional[str]
    efficiency_weights: Dict[str, float]
    log_level: str


def _read_optional_env(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


def _read_windows(default: Tuple[str, ...]) -> Tuple[Window, ...]:
    fallback = tuple(Window.parse(item) for item in default)
    value = os.getenv(_TIMEFRAMES_ENV)
    if value is None:
        return fallback
    items = [item.strip() for item in value.split(",") if item.strip()]
    if not items:
        return fallback
    try:
        windows = tuple(Window.parse(item) for item in items)
    except ValueError:
        return fallback
    unique = {window.timeframe_id: window for window in windows}
    return tuple(sorted(unique.values(), key=lambda window: window.duration))


def _read_interval(default: float) -> float:
    value = os.getenv(_EVICTION_INTERVAL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_weights() -> Dict[str, float]:
    weights = {name: 1.0 for name in SUBSYSTEMS}
    value = os.getenv(_EFFICIENCY_WEIGHTS_ENV)
    if value is None:
        return weights
    for item in value.split(","):
        name, sep, raw = item.partition("=")
        name = name.strip().lower()
        if not sep or name not in weights:
            continue
        try:
            parsed = float(raw.strip())
        except ValueError:
            continue
        if parsed >= 0:
            weights[name] = parsed
    if not any(weights.values()):
        return {name: 1.0 for name in SUBSYSTEMS}
    return weights


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        windows=_read_windows(DEFAULT_TIMEFRAMES),
        eviction_interval_seconds=_read_interval(60.0),
        setpoints_path=_read_optional_env(_SETPOINTS_PATH_ENV),
        efficiency_weights=_read_weights(),
        log_level=_read_log_level("INFO"),
    )
