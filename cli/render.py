from __future__ import annotations

from typing import Any, Dict, Iterable

import typer

from services.setpoints import SetpointRegistry
from services.stability import stability_label

_STATUS_COLORS = {
    "optimal": typer.colors.GREEN,
    "good": typer.colors.GREEN,
    "needs attention": typer.colors.YELLOW,
    "critical": typer.colors.RED,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]], indent: int = 0) -> None:
    prefix = " " * indent
    for key, value in pairs:
        typer.echo(f"{prefix}{key}: {value}")


def render_setpoints(registry: SetpointRegistry) -> None:
    echo_heading("Setpoints")
    for sensor_type, setpoint in registry.items():
        typer.echo(
            f"  - {sensor_type.value}: band [{setpoint.min}, {setpoint.max}] "
            f"ideal {setpoint.ideal} spike > {setpoint.spike_threshold}/h"
        )


def render_snapshot(payload: Dict[str, Any], skipped_rows: int = 0) -> None:
    """Print a snapshot payload dumped with camelCase aliases."""
    echo_heading("Analytics Snapshot")
    echo_key_values(
        [
            ("timeframe", payload.get("timeframe")),
            ("computed_at", payload.get("computedAt")),
            ("sensors", ", ".join(payload.get("sensorTypes") or [])),
            ("skipped_rows", skipped_rows),
        ]
    )

    deviation = payload.get("deviation") or {}
    typer.echo()
    echo_heading("Deviation")
    if deviation:
        for sensor, stats in deviation.items():
            typer.echo(f"  {sensor}:")
            echo_key_values(
                [
                    ("drift", f"{stats.get('drift')}/h ({stats.get('driftStatus')})"),
                    ("avg_dev", stats.get("avgDev")),
                    ("max_delta", f"{stats.get('maxDelta')}/h"),
                    ("spikes", stats.get("spikeCount")),
                ],
                indent=4,
            )
    else:
        typer.echo("No sensor has enough samples.")

    stability = payload.get("stability") or {}
    typer.echo()
    echo_heading("Stability")
    if stability:
        for sensor, stats in stability.items():
            score = stats.get("score")
            typer.echo(f"  {sensor}: {score} ({stability_label(score)})")
            echo_key_values(
                [
                    ("in_band", f"{stats.get('stablePercent')}%"),
                    ("out_of_band", f"{stats.get('unstablePercent')}%"),
                    ("fluctuation", stats.get("fluctuation")),
                    ("longest_stable_h", stats.get("maxStable")),
                    ("longest_unstable_h", stats.get("maxUnstable")),
                ],
                indent=4,
            )
    else:
        typer.echo("No sensor has enough samples.")

    health = payload.get("health") or {}
    typer.echo()
    echo_heading("Data Health")
    for sensor, stats in health.items():
        typer.echo(
            f"  {sensor}: trust {stats.get('trust')} "
            f"(reliability {stats.get('reliability')}, quality {stats.get('quality')}, "
            f"{stats.get('gaps')} gaps, {stats.get('noise')} noisy)"
        )
    typer.echo(f"  system_confidence: {payload.get('systemConfidence')}")

    efficiency = payload.get("efficiency") or {}
    typer.echo()
    echo_heading("Efficiency")
    for name in ("ventilation", "water", "energy"):
        item = efficiency.get(name) or {}
        status = item.get("status", "")
        typer.secho(
            f"  {name}: {item.get('score')} ({status})",
            fg=_STATUS_COLORS.get(status),
        )
        if item.get("issue"):
            typer.echo(f"    issue: {item['issue']}")
    typer.echo(f"  overall: {efficiency.get('overallScore')}")
