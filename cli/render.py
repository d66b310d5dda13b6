from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_ingest(payload: Dict[str, Any]) -> None:
    if not payload.get("success"):
        typer.secho(
            f"Rejected ({payload.get('code', 'unknown')}): {payload.get('error')}",
            fg=typer.colors.RED,
        )
        return

    data = payload.get("data") or {}
    typer.secho(f"Recorded reading id={data.get('id')}", fg=typer.colors.GREEN)
    echo_key_values(
        [
            ("temperature", data.get("temperature")),
            ("sensor_id", data.get("sensor_id")),
            ("recorded_at", data.get("recorded_at")),
        ]
    )
    for alert in payload.get("alerts") or []:
        typer.secho(f"  ! {alert.get('level')}: {alert.get('message')}", fg=typer.colors.YELLOW)


def render_latest(payload: Dict[str, Any]) -> None:
    echo_heading("Latest Readings")
    readings = payload.get("data") or []
    if not readings:
        typer.echo("No readings recorded.")
        return
    for reading in readings:
        typer.echo(
            f"  - {reading.get('recorded_at')} {reading.get('user_id')} "
            f"{reading.get('sensor_id')}: {reading.get('temperature')}°C"
        )


def render_stats(payload: Dict[str, Any]) -> None:
    echo_heading("Temperature Statistics")
    stats = payload.get("data")
    if not stats:
        typer.echo("No data for this range.")
        return
    echo_key_values(
        [
            ("count", stats.get("count")),
            ("avg", round(stats.get("avg", 0.0), 2)),
            ("min", stats.get("min")),
            ("max", stats.get("max")),
        ]
    )
