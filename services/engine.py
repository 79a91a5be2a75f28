"""Orchestration of the windowed store, analyzers and snapshot cache."""

from __future__ import annotations

import logging
import time
from functools import lru_cache
from threading import Event, Lock, Thread
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Sequence

from datastore.snapshot_cache import SnapshotCache, SnapshotKey, make_key
from models.records import Reading, SensorType, Window
from models.stats import DeviationStats, HealthStats, Snapshot, StabilityStats, WindowSummary
from services.deviation import analyze_deviation
from services.efficiency import score_efficiency
from services.health import assess_health, system_confidence
from services.ingestion import parse_reading_event
from services.numeric import mean
from services.setpoints import SetpointRegistry, load_registry
from services.stability import score_stability
from settings import get_settings
from storage.window_store import Clock, WindowedSampleStore

logger = logging.getLogger(__name__)


def summarize(samples: Sequence[Reading], precision: int = 2) -> Optional[WindowSummary]:
    if not samples:
        return None
    values = [reading.value for reading in samples]
    return WindowSummary(
        count=len(values),
        min=min(values),
        max=max(values),
        mean=round(mean(values), precision) + 0.0,
    )


class TelemetryEngine:
    """Turns a stream of readings into per-timeframe analytics snapshots.

    The store owns reading lifetime; every derived view is a pure function
    of a window plus the setpoint registry, so the cache is only an
    optimisation and may be dropped at any time.
    """

    def __init__(
        self,
        registry: SetpointRegistry,
        store: WindowedSampleStore,
        cache: Optional[SnapshotCache] = None,
        efficiency_weights: Optional[Mapping[str, float]] = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.cache = cache or SnapshotCache()
        self.efficiency_weights = dict(efficiency_weights) if efficiency_weights else None
        self._stop = Event()
        self._sweeper: Optional[Thread] = None
        self._sweeper_lock = Lock()
        self.store.subscribe(self._on_window_change)

    @property
    def timeframes(self) -> tuple[str, ...]:
        return tuple(window.timeframe_id for window in self.store.windows)

    def ingest(self, reading: Reading) -> bool:
        """Store a validated reading. Returns False for duplicates and for
        readings already outside every window."""
        affected = self.store.append(reading)
        return bool(affected)

    def ingest_event(self, payload: Mapping[str, Any]) -> bool:
        """Validate a raw reading event, then store it."""
        return self.ingest(parse_reading_event(payload))

    def ingest_many(self, readings: Iterable[Reading]) -> int:
        return sum(1 for reading in readings if self.ingest(reading))

    def snapshot(
        self,
        timeframe_id: str,
        sensor_types: Optional[Iterable[SensorType]] = None,
    ) -> Snapshot:
        """Latest bundle for ``timeframe_id``, computing it on first access."""
        self.store.window(timeframe_id)
        requested = self.registry.sensor_types if sensor_types is None else sensor_types
        key = make_key(timeframe_id, requested)
        now = self.store.now()
        return self.cache.get(key, lambda: self.compute(key), now=now)

    def compute(self, key: SnapshotKey) -> Snapshot:
        """Recompute a bundle from the current window contents."""
        start_time = time.perf_counter()
        window = self.store.window(key.timeframe_id)
        now = self.store.now()

        deviation: Dict[SensorType, DeviationStats] = {}
        stability: Dict[SensorType, StabilityStats] = {}
        summary: Dict[SensorType, WindowSummary] = {}
        health: Dict[SensorType, HealthStats] = {}
        oldest = None

        for sensor_type in key.sensor_types:
            samples = self.store.samples_for(sensor_type, window.timeframe_id, now=now)
            setpoint = self.registry.get(sensor_type)
            window_summary = summarize(samples, setpoint.precision + 1 if setpoint else 2)
            if window_summary is None:
                continue
            summary[sensor_type] = window_summary
            if oldest is None or samples[0].timestamp < oldest:
                oldest = samples[0].timestamp
            health_stats = assess_health(sensor_type, samples)
            if health_stats is not None:
                health[sensor_type] = health_stats
            if setpoint is None:
                continue
            deviation_stats = analyze_deviation(samples, setpoint)
            stability_stats = score_stability(samples, setpoint)
            if deviation_stats is None or stability_stats is None:
                logger.debug(
                    "Not enough samples to score",
                    extra={
                        "sensor_type": sensor_type,
                        "timeframe": window.timeframe_id,
                        "sample_count": len(samples),
                    },
                )
                continue
            deviation[sensor_type] = deviation_stats
            stability[sensor_type] = stability_stats

        snapshot = Snapshot(
            timeframe=window.timeframe_id,
            sensor_types=key.sensor_types,
            computed_at=now,
            deviation=deviation,
            stability=stability,
            efficiency=score_efficiency(deviation, stability, self.efficiency_weights),
            summary=summary,
            valid_until=oldest + window.duration if oldest is not None else None,
            health=health,
            system_confidence=system_confidence(health),
        )
        duration_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "Computed analytics snapshot",
            extra={
                "timeframe": window.timeframe_id,
                "sensor_type": key.sensor_types,
                "sample_count": sum(item.count for item in summary.values()),
                "duration_ms": duration_ms,
            },
        )
        return snapshot

    def evict_expired(self) -> Dict[SensorType, int]:
        removed = self.store.evict_expired()
        if removed:
            logger.info(
                "Evicted readings outside retention",
                extra={"evicted": sum(removed.values())},
            )
        return removed

    def start_eviction_timer(self, interval_seconds: float) -> None:
        """Sweep stale readings every ``interval_seconds`` on a daemon thread."""
        with self._sweeper_lock:
            if self._sweeper is not None and self._sweeper.is_alive():
                return
            self._stop.clear()
            self._sweeper = Thread(
                target=self._sweep_loop,
                args=(interval_seconds,),
                name="telemetry-eviction",
                daemon=True,
            )
            self._sweeper.start()

    def shutdown(self) -> None:
        """Stop the eviction timer."""
        with self._sweeper_lock:
            sweeper = self._sweeper
            self._sweeper = None
        self._stop.set()
        if sweeper is not None:
            sweeper.join(timeout=5)

    def _sweep_loop(self, interval_seconds: float) -> None:
        while not self._stop.wait(interval_seconds):
            try:
                self.evict_expired()
            except Exception:  # pragma: no cover - keep the sweeper alive
                logger.exception("Eviction sweep failed")

    def _on_window_change(self, sensor_type: SensorType, timeframes: FrozenSet[str]) -> None:
        self.cache.invalidate(sensor_type, timeframes)


def build_engine(
    windows: Sequence[Window],
    registry: Optional[SetpointRegistry] = None,
    clock: Optional[Clock] = None,
    efficiency_weights: Optional[Mapping[str, float]] = None,
) -> TelemetryEngine:
    store = WindowedSampleStore(windows, clock=clock)
    return TelemetryEngine(
        registry=registry or SetpointRegistry.default(),
        store=store,
        cache=SnapshotCache(),
        efficiency_weights=efficiency_weights,
    )


@lru_cache
def build_default_engine() -> TelemetryEngine:
    """Process-wide engine wired from settings, with the eviction timer running."""
    settings = get_settings()
    engine = build_engine(
        windows=settings.windows,
        registry=load_registry(settings.setpoints_path),
        efficiency_weights=settings.efficiency_weights,
    )
    engine.start_eviction_timer(settings.eviction_interval_seconds)
    return engine
