"""Exception hierarchy for the telemetry analytics engine.

All engine errors inherit from :class:`TelemetryError` so callers can catch a
single base class, while still matching specific subclasses where needed.
"""

from __future__ import annotations


class TelemetryError(Exception):
    """Base exception for telemetry analytics errors.

    ``detail`` carries optional machine-readable context for structured logs.
    """

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


class InvalidConfigError(TelemetryError):
    """Setpoint or engine configuration is inconsistent."""


class MalformedReadingError(TelemetryError):
    """A reading event failed validation at the ingestion boundary."""


class UnknownTimeframeError(TelemetryError, KeyError):
    """The requested timeframe is not one of the configured windows."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""
