from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, NoReturn, Optional

import typer

from cli.config import CLIConfig, load_config
from cli.render import render_setpoints, render_snapshot
from logging_config import configure_logging
from models.errors import InvalidConfigError, UnknownTimeframeError
from models.records import SensorType
from models.schemas import SnapshotPayload
from services.engine import build_engine
from services.ingestion import read_readings_csv
from services.setpoints import SetpointRegistry, load_registry


@dataclass
class CLIState:
    config: CLIConfig
    registry: SetpointRegistry


app = typer.Typer(
    help="Replay sensor readings through the telemetry analytics engine.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _fail(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        _fail("CLI state is uninitialized.")
    return state


def _parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid timestamp {value!r}.") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@app.callback()
def main(
    ctx: typer.Context,
    setpoints: Optional[Path] = typer.Option(
        None,
        "--setpoints",
        "-s",
        dir_okay=False,
        help="JSON setpoint file (defaults to TELEMETRY_SETPOINTS_PATH or built-in bands).",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(setpoints_path=str(setpoints) if setpoints else None)
    try:
        registry = load_registry(config.setpoints_path)
    except InvalidConfigError as exc:
        _fail(f"Invalid setpoint configuration: {exc}")
    ctx.obj = CLIState(config=config, registry=registry)


@app.command("setpoints")
def setpoints_command(ctx: typer.Context) -> None:
    """Validate and print the active setpoint configuration."""
    state = _get_state(ctx)
    render_setpoints(state.registry)


@app.command("analyze")
def analyze_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="CSV of readings."),
    timeframe: Optional[str] = typer.Option(
        None,
        "--timeframe",
        "-t",
        help="Window to analyze (defaults to TELEMETRY_DEFAULT_TIMEFRAME or 24h).",
    ),
    sensors: Optional[List[SensorType]] = typer.Option(
        None,
        "--sensor",
        help="Restrict the snapshot to these sensor types (repeatable).",
    ),
    now: Optional[str] = typer.Option(
        None,
        "--now",
        help="ISO-8601 instant treated as 'now' (defaults to the latest reading).",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the snapshot as JSON."),
) -> None:
    """Replay a CSV of readings and print the analytics snapshot."""
    state = _get_state(ctx)

    try:
        with file.open("r", encoding="utf-8", newline="") as handle:
            report = read_readings_csv(handle)
    except ValueError as exc:
        _fail(str(exc))
    if not report.readings:
        _fail(f"No valid readings in {file} ({len(report.errors)} rows skipped).")

    pinned = _parse_timestamp(now) if now else max(reading.timestamp for reading in report.readings)
    engine = build_engine(
        windows=state.config.windows,
        registry=state.registry,
        clock=lambda: pinned,
    )
    engine.ingest_many(report.readings)

    try:
        snapshot = engine.snapshot(timeframe or state.config.default_timeframe, sensors or None)
    except UnknownTimeframeError as exc:
        _fail(str(exc))

    payload = SnapshotPayload.from_snapshot(snapshot)
    if as_json:
        typer.echo(payload.model_dump_json(by_alias=True, exclude_none=True, indent=2))
        return
    render_snapshot(payload.model_dump(mode="json", by_alias=True), skipped_rows=len(report.errors))


def run() -> None:
    """Console-script entry point: configure logging, then dispatch."""
    configure_logging()
    app()
