from __future__ import annotations

import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_ingest, render_latest, render_stats


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for sending and inspecting greenhouse sensor readings.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def _reading_payload(
    temperature: float,
    user_id: str,
    sensor_id: str,
    location: Optional[str],
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "temperature": temperature,
        "user_id": user_id,
        "sensor_id": sensor_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if location:
        payload["location"] = location
    return payload


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Ingest API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("send")
def send_command(
    ctx: typer.Context,
    user_id: str = typer.Option(..., "--user-id", "-u", help="Owner of the reading."),
    temperature: float = typer.Option(25.5, "--temp", "-t", help="Temperature in °C."),
    sensor_id: str = typer.Option("test_sensor_001", "--sensor-id", help="Device identifier."),
    location: Optional[str] = typer.Option(None, "--location", help="Where the sensor sits."),
) -> None:
    """Send a single reading to the ingest endpoint."""
    state = _get_state(ctx)
    typer.echo(f"Sending {temperature}°C to {state.config.base_url}/ingest ...")
    payload = state.client.send_reading(_reading_payload(temperature, user_id, sensor_id, location))
    render_ingest(payload)
    if not payload.get("success"):
        raise typer.Exit(code=1)


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    user_id: str = typer.Option(..., "--user-id", "-u", help="Owner of the readings."),
    count: int = typer.Option(5, "--count", "-n", min=1, help="Number of readings to send."),
    interval: Optional[float] = typer.Option(
        None, "--interval", min=0.0, help="Seconds between readings."
    ),
    low: float = typer.Option(20.0, "--min", help="Lowest simulated temperature."),
    high: float = typer.Option(30.0, "--max", help="Highest simulated temperature."),
    sensor_id: str = typer.Option("test_sensor_001", "--sensor-id"),
) -> None:
    """Send a series of random readings, like a device would."""
    if low > high:
        raise typer.BadParameter("--min must not exceed --max.")
    state = _get_state(ctx)
    delay = interval if interval is not None else state.config.simulate_interval
    rejected = 0

    for index in range(count):
        temperature = round(random.uniform(low, high), 1)
        typer.echo(f"[{index + 1}/{count}] Recording: {temperature}°C")
        payload = state.client.send_reading(
            _reading_payload(temperature, user_id, sensor_id, None)
        )
        render_ingest(payload)
        if not payload.get("success"):
            rejected += 1
        if index < count - 1 and delay:
            time.sleep(delay)

    typer.echo(f"Simulation complete: {count - rejected} recorded, {rejected} rejected.")
    if rejected:
        raise typer.Exit(code=1)


@app.command("latest")
def latest_command(
    ctx: typer.Context,
    user_id: Optional[str] = typer.Option(None, "--user-id", "-u"),
    limit: int = typer.Option(10, "--limit", "-l", min=1),
) -> None:
    """Show the most recent readings."""
    state = _get_state(ctx)
    render_latest(state.client.latest(user_id=user_id, limit=limit))


@app.command("stats")
def stats_command(
    ctx: typer.Context,
    start: datetime = typer.Option(..., "--start", help="Window start (ISO-8601)."),
    end: datetime = typer.Option(..., "--end", help="Window end (ISO-8601)."),
    user_id: Optional[str] = typer.Option(None, "--user-id", "-u"),
) -> None:
    """Show temperature statistics for a time window."""
    state = _get_state(ctx)
    render_stats(state.client.stats(start=start, end=end, user_id=user_id))
