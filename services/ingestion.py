"""Ingestion boundary: validate reading events and batch CSV imports."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, TextIO

from pydantic import ValidationError

from models.errors import MalformedReadingError
from models.records import Reading
from models.schemas import ReadingEvent

logger = logging.getLogger(__name__)

_REQUIRED_COLUMNS = {"sensor_type", "value", "timestamp", "source_id"}
_COLUMN_ALIASES = {
    "sensortype": "sensor_type",
    "sensor_type": "sensor_type",
    "value": "value",
    "timestamp": "timestamp",
    "sourceid": "source_id",
    "source_id": "source_id",
    "device_id": "source_id",
    "deviceid": "source_id",
}


@dataclass
class RowError:
    row_number: int
    reason: str


@dataclass
class IngestReport:
    """Readings accepted from a batch plus the rows that were skipped."""

    readings: List[Reading] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.readings) + len(self.errors)


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "event"
    return f"invalid {location}: {first.get('msg', 'validation failed')}"


def parse_reading_event(payload: Mapping[str, Any]) -> Reading:
    """Validate one reading event and convert it into a :class:`Reading`.

    Non-finite values, unknown sensor types, blank sources and unparsable
    timestamps raise :class:`MalformedReadingError`; nothing is stored.
    """
    try:
        event = ReadingEvent.model_validate(payload)
    except ValidationError as exc:
        reason = _describe(exc)
        logger.warning(
            "Rejected malformed reading",
            extra={"reason": reason, "source_id": payload.get("sourceId", payload.get("source_id"))},
        )
        raise MalformedReadingError(reason, detail={"payload": dict(payload)}) from exc

    return Reading(
        sensor_type=event.sensor_type,
        value=event.value,
        timestamp=event.timestamp,
        source_id=event.source_id,
    )


def read_readings_csv(stream: TextIO) -> IngestReport:
    """Parse a CSV export with ``sensorType,value,timestamp,sourceId`` columns.

    Column names are matched case-insensitively in either camelCase or
    snake_case. A missing header raises ``ValueError``; bad rows are
    collected in the report and the rest of the file is still imported.
    """
    reader = csv.DictReader(stream)
    if not reader.fieldnames:
        raise ValueError("CSV file is missing a header row.")

    columns = {}
    for name in reader.fieldnames:
        canonical = _COLUMN_ALIASES.get(name.lower().strip())
        if canonical and canonical not in columns:
            columns[canonical] = name
    missing = sorted(_REQUIRED_COLUMNS - columns.keys())
    if missing:
        raise ValueError(f"CSV missing required columns: {', '.join(missing)}")

    report = IngestReport()
    for row_number, row in enumerate(reader, start=2):
        raw = {canonical: (row.get(column) or "").strip() for canonical, column in columns.items()}
        empty = [name for name in ("sensor_type", "timestamp", "value", "source_id") if not raw[name]]
        if empty:
            reason = f"missing {empty[0]}"
        else:
            try:
                report.readings.append(parse_reading_event(raw))
                continue
            except MalformedReadingError as exc:
                reason = str(exc)
        report.errors.append(RowError(row_number=row_number, reason=reason))
        logger.warning(
            "Skipping row %d: %s",
            row_number,
            reason,
            extra={"row_number": row_number, "reason": reason},
        )
    return report
