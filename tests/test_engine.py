from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Iterator, Sequence

import pytest

from datastore.snapshot_cache import make_key
from models.errors import MalformedReadingError, UnknownTimeframeError
from models.records import Reading, SensorType, Window
from models.schemas import SnapshotPayload
from services.efficiency import INSUFFICIENT_DATA
from services.engine import TelemetryEngine, build_engine

START = datetime(2024, 5, 1, 6, 0, tzinfo=timezone.utc)
WINDOWS = tuple(Window.parse(item) for item in ("1h", "24h", "7d", "30d"))


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _hourly(
    values: Sequence[float],
    sensor_type: SensorType = SensorType.temperature,
    source_id: str = "room-1",
) -> list[Reading]:
    return [
        Reading(sensor_type, value, START + timedelta(hours=index), source_id)
        for index, value in enumerate(values)
    ]


@pytest.fixture()
def clock() -> _Clock:
    return _Clock(START + timedelta(hours=3))


@pytest.fixture()
def engine(clock: _Clock) -> Iterator[TelemetryEngine]:
    engine = build_engine(WINDOWS, clock=clock)
    yield engine
    engine.shutdown()


def test_end_to_end_scenario(engine: TelemetryEngine) -> None:
    assert engine.ingest_many(_hourly([22.0, 23.0, 30.0, 23.0])) == 4

    snapshot = engine.snapshot("24h")

    deviation = snapshot.deviation[SensorType.temperature]
    assert deviation.spike_count == 1
    assert deviation.avg_dev == 2.0
    stability = snapshot.stability[SensorType.temperature]
    assert (stability.stable_percent, stability.unstable_percent) == (75, 25)
    assert stability.max_unstable == 0.0
    assert snapshot.efficiency.ventilation.score == 65
    assert snapshot.efficiency.ventilation.issue == "Temperature trending up, ventilation lagging"
    assert snapshot.efficiency.water.status == INSUFFICIENT_DATA
    assert snapshot.efficiency.energy.score == 78
    assert snapshot.efficiency.overall_score == 72
    summary = snapshot.summary[SensorType.temperature]
    assert (summary.count, summary.min, summary.max, summary.mean) == (4, 22.0, 30.0, 24.5)
    health = snapshot.health[SensorType.temperature]
    assert (health.reliability, health.quality, health.trust) == (100, 50, 80)
    assert snapshot.system_confidence == 80


def test_snapshot_is_cached_until_new_reading_arrives(engine: TelemetryEngine) -> None:
    engine.ingest_many(_hourly([22.0, 23.0, 24.0]))

    first = engine.snapshot("24h")
    assert engine.snapshot("24h") is first

    engine.ingest(Reading(SensorType.temperature, 25.0, START + timedelta(hours=3), "room-1"))
    refreshed = engine.snapshot("24h")

    assert refreshed is not first
    assert refreshed.summary[SensorType.temperature].count == 4


def test_reading_for_other_sensor_keeps_unrelated_cache_entry(engine: TelemetryEngine) -> None:
    engine.ingest_many(_hourly([22.0, 23.0, 24.0]))
    temperature_only = engine.snapshot("24h", [SensorType.temperature])

    engine.ingest(Reading(SensorType.humidity, 90.0, START, "room-1"))

    assert engine.snapshot("24h", [SensorType.temperature]) is temperature_only


def test_recompute_is_idempotent(engine: TelemetryEngine) -> None:
    engine.ingest_many(_hourly([22.0, 23.5, 30.0, 23.0]))
    engine.ingest_many(_hourly([88.0, 91.0, 93.0, 90.0], sensor_type=SensorType.humidity))
    key = make_key("24h", engine.registry.sensor_types)

    first = SnapshotPayload.from_snapshot(engine.compute(key))
    second = SnapshotPayload.from_snapshot(engine.compute(key))

    assert first.model_dump_json(by_alias=True) == second.model_dump_json(by_alias=True)


def test_sensor_with_single_sample_is_omitted(engine: TelemetryEngine) -> None:
    engine.ingest_many(_hourly([22.0, 23.0, 24.0]))
    engine.ingest(Reading(SensorType.humidity, 90.0, START, "room-1"))

    snapshot = engine.snapshot("24h")

    assert SensorType.humidity in snapshot.summary
    assert SensorType.humidity not in snapshot.deviation
    assert SensorType.humidity not in snapshot.stability
    assert SensorType.humidity not in snapshot.health
    assert SensorType.temperature in snapshot.deviation


def test_empty_window_yields_empty_snapshot(engine: TelemetryEngine) -> None:
    snapshot = engine.snapshot("1h")

    assert dict(snapshot.deviation) == {}
    assert dict(snapshot.summary) == {}
    assert snapshot.valid_until is None
    assert snapshot.system_confidence is None
    assert snapshot.efficiency.overall_score == 0


def test_unknown_timeframe_is_rejected(engine: TelemetryEngine) -> None:
    with pytest.raises(UnknownTimeframeError):
        engine.snapshot("90d")


def test_readings_leaving_window_stop_contributing(
    engine: TelemetryEngine, clock: _Clock
) -> None:
    clock.now = START + timedelta(minutes=60)
    engine.ingest(Reading(SensorType.temperature, 22.0, START + timedelta(minutes=10), "room-1"))
    engine.ingest(Reading(SensorType.temperature, 22.5, START + timedelta(minutes=50), "room-1"))

    before = engine.snapshot("1h")
    assert before.summary[SensorType.temperature].count == 2
    assert SensorType.temperature in before.deviation

    clock.now = START + timedelta(minutes=80)
    after = engine.snapshot("1h")

    assert after.summary[SensorType.temperature].count == 1
    assert SensorType.temperature not in after.deviation


def test_malformed_event_is_rejected_without_storing(engine: TelemetryEngine) -> None:
    with pytest.raises(MalformedReadingError):
        engine.ingest_event(
            {
                "sensorType": "temperature",
                "value": float("nan"),
                "timestamp": START.isoformat(),
                "sourceId": "room-1",
            }
        )

    assert engine.store.count() == 0


def test_ingest_event_accepts_wire_payload(engine: TelemetryEngine) -> None:
    stored = engine.ingest_event(
        {
            "sensorType": "soilMoisture",
            "value": 61.5,
            "timestamp": "2024-05-01T07:00:00Z",
            "sourceId": "bed-3",
        }
    )

    assert stored is True
    assert engine.store.count(SensorType.soil_moisture) == 1
    assert engine.ingest_event(
        {
            "sensorType": "soilMoisture",
            "value": 61.5,
            "timestamp": "2024-05-01T07:00:00Z",
            "sourceId": "bed-3",
        }
    ) is False


def test_eviction_timer_sweeps_stale_readings(engine: TelemetryEngine, clock: _Clock) -> None:
    engine.ingest_many(_hourly([22.0, 23.0]))
    clock.now = START + timedelta(days=45)

    engine.start_eviction_timer(0.01)
    deadline = time.monotonic() + 5
    while engine.store.count() and time.monotonic() < deadline:
        time.sleep(0.01)
    engine.shutdown()

    assert engine.store.count() == 0


@pytest.mark.parametrize("value", [1e200, 1.7e308])
def test_extreme_finite_readings_still_produce_snapshot(engine: TelemetryEngine, value: float) -> None:
    for hour in (1, 2):
        engine.ingest_event(
            {
                "sensorType": "temperature",
                "value": value,
                "timestamp": (START + timedelta(hours=hour)).isoformat(),
                "sourceId": "room-1",
            }
        )

    snapshot = engine.snapshot("24h")

    assert snapshot.summary[SensorType.temperature].max == value
    assert snapshot.stability[SensorType.temperature].score == 20
    assert 0 <= snapshot.efficiency.overall_score <= 100
    assert SnapshotPayload.from_snapshot(snapshot).model_dump_json(by_alias=True)
