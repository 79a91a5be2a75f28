from __future__ import annotations

import logging
from concurrent.futures import Future
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, Iterable, NamedTuple, Optional, Tuple

from models.records import SensorType
from models.stats import Snapshot

logger = logging.getLogger(__name__)


class SnapshotKey(NamedTuple):
    timeframe_id: str
    sensor_types: Tuple[SensorType, ...]


def make_key(timeframe_id: str, sensor_types: Iterable[SensorType]) -> SnapshotKey:
    """Build a cache key with the sensor set in canonical (sorted) order."""
    unique = {SensorType(sensor) for sensor in sensor_types}
    return SnapshotKey(timeframe_id, tuple(sorted(unique, key=lambda sensor: sensor.value)))


class SnapshotCache:
    """Whole-bundle memo of snapshots keyed by timeframe and sensor set.

    A missing key is filled synchronously by the caller's loader. The first
    caller holds the compute token for that key; concurrent callers for the
    same key wait on the in-flight result instead of recomputing. A token
    dropped by :meth:`invalidate` still answers its waiters but its result is
    not published.
    """

    def __init__(self) -> None:
        self._entries: Dict[SnapshotKey, Snapshot] = {}
        self._inflight: Dict[SnapshotKey, Future[Snapshot]] = {}
        self._lock = Lock()
        self._hits = 0
        self._misses = 0
        self._invalidations = 0
        self._expirations = 0

    def get(
        self,
        key: SnapshotKey,
        loader: Callable[[], Snapshot],
        now: Optional[datetime] = None,
    ) -> Snapshot:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if now is None or not entry.is_expired(now):
                    self._hits += 1
                    return entry
                del self._entries[key]
                self._expirations += 1
                logger.debug(
                    "Snapshot rolled out of its window",
                    extra={"timeframe": key.timeframe_id, "sensor_type": key.sensor_types},
                )
            self._misses += 1
            token = self._inflight.get(key)
            owner = token is None
            if token is None:
                token = Future()
                self._inflight[key] = token

        if not owner:
            return token.result()

        try:
            snapshot = loader()
        except BaseException as exc:
            with self._lock:
                if self._inflight.get(key) is token:
                    del self._inflight[key]
            token.set_exception(exc)
            raise

        with self._lock:
            if self._inflight.get(key) is token:
                del self._inflight[key]
                self._entries[key] = snapshot
        token.set_result(snapshot)
        return snapshot

    def peek(self, key: SnapshotKey) -> Optional[Snapshot]:
        with self._lock:
            return self._entries.get(key)

    def invalidate(
        self, sensor_type: SensorType, timeframes: Optional[Iterable[str]] = None
    ) -> int:
        """Drop entries whose key includes ``sensor_type`` (and a timeframe)."""
        wanted = None if timeframes is None else frozenset(timeframes)

        def _matches(key: SnapshotKey) -> bool:
            if sensor_type not in key.sensor_types:
                return False
            return wanted is None or key.timeframe_id in wanted

        with self._lock:
            stale = [key for key in self._entries if _matches(key)]
            for key in stale:
                del self._entries[key]
            for key in [key for key in self._inflight if _matches(key)]:
                del self._inflight[key]
            self._invalidations += len(stale)

        if stale:
            logger.debug(
                "Invalidated snapshots",
                extra={"sensor_type": sensor_type, "timeframe": wanted, "evicted": len(stale)},
            )
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._inflight.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            hits = self._hits
            misses = self._misses
            size = len(self._entries)
            inflight = len(self._inflight)
            invalidations = self._invalidations
            expirations = self._expirations

        total = hits + misses
        hit_rate = (hits / total * 100) if total else 0.0
        return {
            "size": size,
            "inflight": inflight,
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hit_rate, 2),
            "invalidations": invalidations,
            "expirations": expirations,
        }
