from __future__ import annotations

import logging
from bisect import bisect_left, insort
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from models.errors import InvalidConfigError, UnknownTimeframeError
from models.records import Reading, SensorType, Window

logger = logging.getLogger(__name__)

Listener = Callable[[SensorType, FrozenSet[str]], None]
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _order_key(reading: Reading) -> Tuple[datetime, str]:
    return (reading.timestamp, reading.source_id)


def _timestamp_key(reading: Reading) -> datetime:
    return reading.timestamp


class WindowedSampleStore:
    """Time-ordered reading buffers per sensor type.

    One buffer per sensor type retains everything inside the largest
    configured window; shorter windows are index slices of that buffer.
    Stale readings are dropped from the front by index, so memory is bounded
    by time rather than by count.
    """

    def __init__(self, windows: Sequence[Window], clock: Optional[Clock] = None) -> None:
        if not windows:
            raise InvalidConfigError("At least one window must be configured.")
        ordered = sorted(windows, key=lambda window: window.duration)
        self._windows: Dict[str, Window] = {window.timeframe_id: window for window in ordered}
        self._horizon = ordered[-1].duration
        self._clock: Clock = clock or utcnow
        self._buffers: Dict[SensorType, List[Reading]] = {sensor: [] for sensor in SensorType}
        self._seen: Dict[SensorType, Set[Tuple[datetime, str]]] = {
            sensor: set() for sensor in SensorType
        }
        self._locks: Dict[SensorType, Lock] = {sensor: Lock() for sensor in SensorType}
        self._listeners: List[Listener] = []
        self._listeners_lock = Lock()

    @property
    def windows(self) -> Tuple[Window, ...]:
        return tuple(self._windows.values())

    @property
    def largest_window(self) -> Window:
        return self.windows[-1]

    def now(self) -> datetime:
        return self._clock()

    def window(self, timeframe_id: str) -> Window:
        window = self._windows.get(timeframe_id)
        if window is None:
            raise UnknownTimeframeError(
                f"Timeframe {timeframe_id!r} is not configured "
                f"(known: {', '.join(self._windows)})."
            )
        return window

    def subscribe(self, listener: Listener) -> None:
        """Register ``listener(sensor_type, timeframe_ids)`` for change events."""
        with self._listeners_lock:
            self._listeners.append(listener)

    def append(self, reading: Reading) -> FrozenSet[str]:
        """Insert ``reading`` in timestamp order.

        Returns the timeframes whose window currently contains the reading;
        empty for duplicates and for readings older than the largest window.
        """
        sensor_type = reading.sensor_type
        now = self._clock()
        horizon_start = now - self._horizon

        with self._locks[sensor_type]:
            seen = self._seen[sensor_type]
            if reading.dedupe_key in seen:
                logger.debug(
                    "Ignoring duplicate reading",
                    extra={"sensor_type": sensor_type, "source_id": reading.source_id},
                )
                return frozenset()
            if reading.timestamp < horizon_start:
                logger.debug(
                    "Dropping reading older than retention horizon",
                    extra={"sensor_type": sensor_type, "source_id": reading.source_id},
                )
                return frozenset()
            insort(self._buffers[sensor_type], reading, key=_order_key)
            seen.add(reading.dedupe_key)
            evicted = self._evict_locked(sensor_type, horizon_start)

        affected = frozenset(
            window.timeframe_id
            for window in self._windows.values()
            if window.contains(reading.timestamp, now)
        )
        if evicted:
            affected = frozenset(self._windows)
        self._notify(sensor_type, affected)
        return affected

    def evict_before(
        self, cutoff: datetime, sensor_type: Optional[SensorType] = None
    ) -> Dict[SensorType, int]:
        """Drop readings older than ``cutoff``; returns counts per sensor type."""
        targets: Iterable[SensorType] = (sensor_type,) if sensor_type is not None else tuple(SensorType)
        removed: Dict[SensorType, int] = {}
        for sensor in targets:
            with self._locks[sensor]:
                count = self._evict_locked(sensor, cutoff)
            if count:
                removed[sensor] = count
                logger.debug("Evicted stale readings", extra={"sensor_type": sensor, "evicted": count})
                self._notify(sensor, frozenset(self._windows))
        return removed

    def evict_expired(self) -> Dict[SensorType, int]:
        """Apply the retention horizon of the largest window to every buffer."""
        return self.evict_before(self._clock() - self._horizon)

    def samples_for(
        self,
        sensor_type: SensorType,
        timeframe_id: str,
        source_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[Reading, ...]:
        """Ordered readings inside the window. An empty tuple means no data yet."""
        window = self.window(timeframe_id)
        start = window.start(now or self._clock())
        with self._locks[sensor_type]:
            buffer = self._buffers[sensor_type]
            index = bisect_left(buffer, start, key=_timestamp_key)
            samples = tuple(buffer[index:])
        if source_id is not None:
            samples = tuple(reading for reading in samples if reading.source_id == source_id)
        return samples

    def count(self, sensor_type: Optional[SensorType] = None) -> int:
        targets: Iterable[SensorType] = (sensor_type,) if sensor_type is not None else tuple(SensorType)
        total = 0
        for sensor in targets:
            with self._locks[sensor]:
                total += len(self._buffers[sensor])
        return total

    def _evict_locked(self, sensor_type: SensorType, cutoff: datetime) -> int:
        buffer = self._buffers[sensor_type]
        index = bisect_left(buffer, cutoff, key=_timestamp_key)
        if not index:
            return 0
        seen = self._seen[sensor_type]
        for reading in buffer[:index]:
            seen.discard(reading.dedupe_key)
        del buffer[:index]
        return index

    def _notify(self, sensor_type: SensorType, timeframes: FrozenSet[str]) -> None:
        if not timeframes:
            return
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(sensor_type, timeframes)
