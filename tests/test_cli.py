from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from cli.app import app

CSV_HEADER = "sensorType,value,timestamp,sourceId\n"
SCENARIO_ROWS = (
    "temperature,22,2024-01-01T00:00:00Z,room-1\n"
    "temperature,23,2024-01-01T01:00:00Z,room-1\n"
    "temperature,30,2024-01-01T02:00:00Z,room-1\n"
    "temperature,23,2024-01-01T03:00:00Z,room-1\n"
)


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch) -> None:
    monkeypatch.delenv("TELEMETRY_SETPOINTS_PATH", raising=False)
    monkeypatch.delenv("TELEMETRY_DEFAULT_TIMEFRAME", raising=False)


def _write_csv(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "readings.csv"
    path.write_text(CSV_HEADER + body)
    return path


def test_analyze_prints_report(runner: CliRunner, tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, SCENARIO_ROWS)

    result = runner.invoke(app, ["analyze", str(csv_path)])

    assert result.exit_code == 0
    assert "Analytics Snapshot" in result.stdout
    assert "timeframe: 24h" in result.stdout
    assert "spikes: 1" in result.stdout
    assert "in_band: 75%" in result.stdout
    assert "issue: Temperature trending up, ventilation lagging" in result.stdout
    assert "water: 0 (insufficient data)" in result.stdout
    assert "temperature: trust 80 (reliability 100, quality 50, 0 gaps, 2 noisy)" in result.stdout
    assert "system_confidence: 80" in result.stdout


def test_analyze_json_output(runner: CliRunner, tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, SCENARIO_ROWS)

    result = runner.invoke(
        app,
        ["analyze", str(csv_path), "--json", "--timeframe", "7d", "--sensor", "temperature"],
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["timeframe"] == "7d"
    assert payload["sensorTypes"] == ["temperature"]
    assert payload["computedAt"].startswith("2024-01-01T03:00:00")
    assert payload["deviation"]["temperature"]["spikeCount"] == 1
    assert payload["deviation"]["temperature"]["avgDev"] == 2.0
    assert payload["stability"]["temperature"]["unstablePercent"] == 25
    assert payload["efficiency"]["overallScore"] == 72
    assert payload["summary"]["temperature"]["count"] == 4
    assert payload["health"]["temperature"]["trust"] == 80
    assert payload["systemConfidence"] == 80


def test_analyze_with_pinned_now_narrows_window(runner: CliRunner, tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, SCENARIO_ROWS)

    result = runner.invoke(
        app,
        [
            "analyze",
            str(csv_path),
            "--json",
            "--timeframe",
            "1h",
            "--now",
            "2024-01-01T03:30:00Z",
        ],
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["summary"]["temperature"]["count"] == 1
    assert payload["deviation"] == {}


def test_analyze_unknown_timeframe_fails(runner: CliRunner, tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, SCENARIO_ROWS)

    result = runner.invoke(app, ["analyze", str(csv_path), "--timeframe", "90d"])

    assert result.exit_code == 1


def test_analyze_without_valid_rows_fails(runner: CliRunner, tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "temperature,abc,2024-01-01T00:00:00Z,room-1\n")

    result = runner.invoke(app, ["analyze", str(csv_path)])

    assert result.exit_code == 1


def test_setpoints_command_lists_bands(runner: CliRunner) -> None:
    result = runner.invoke(app, ["setpoints"])

    assert result.exit_code == 0
    assert "temperature: band [18.0, 28.0] ideal 23.0" in result.stdout
    assert "soilMoisture" in result.stdout


def test_setpoints_command_uses_custom_file(runner: CliRunner, tmp_path: Path) -> None:
    path = tmp_path / "setpoints.json"
    path.write_text(json.dumps({"setpoints": {"co2": {"min": 400, "max": 800}}}))

    result = runner.invoke(app, ["--setpoints", str(path), "setpoints"])

    assert result.exit_code == 0
    assert "co2: band [400.0, 800.0] ideal 600.0" in result.stdout
    assert "temperature" not in result.stdout


def test_invalid_setpoint_file_exits_with_error(runner: CliRunner, tmp_path: Path) -> None:
    path = tmp_path / "setpoints.json"
    path.write_text(json.dumps({"co2": {"min": 900, "max": 400}}))

    result = runner.invoke(app, ["--setpoints", str(path), "setpoints"])

    assert result.exit_code == 1
    assert "temperature" not in result.stdout
