from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from models.records import Window
from settings import get_settings

DEFAULT_TIMEFRAME = "24h"

_SETPOINTS_PATH_ENV = "TELEMETRY_SETPOINTS_PATH"
_TIMEFRAME_ENV = "TELEMETRY_DEFAULT_TIMEFRAME"


@dataclass(frozen=True)
class CLIConfig:
    windows: Tuple[Window, ...]
    default_timeframe: str = DEFAULT_TIMEFRAME
    setpoints_path: Optional[str] = None


def _read_timeframe(value: Optional[str], windows: Tuple[Window, ...]) -> str:
    known = [window.timeframe_id for window in windows]
    if value is not None:
        candidate = value.strip()
        if candidate in known:
            return candidate
    if DEFAULT_TIMEFRAME in known:
        return DEFAULT_TIMEFRAME
    return known[-1]


def load_config(
    setpoints_path: Optional[str] = None,
    timeframe: Optional[str] = None,
) -> CLIConfig:
    windows = get_settings().windows
    path = setpoints_path or os.getenv(_SETPOINTS_PATH_ENV) or None
    if timeframe is None:
        timeframe = os.getenv(_TIMEFRAME_ENV)
    return CLIConfig(
        windows=windows,
        default_timeframe=_read_timeframe(timeframe, windows),
        setpoints_path=path.strip() if path else None,
    )
