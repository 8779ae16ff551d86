"""Command-line interface for the sensor fleet simulator."""

from __future__ import annotations

import json
import logging
import sys

import click
import httpx
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from fleetsim.config import load_config

console = Console()

PROBE_OUTCOMES = ("ok", "bad_gateway", "text_error", "closed", "timeout", "other")


def _setup_logging(level: str) -> None:
    """Configure logging with the specified level.

    Args:
        level: Logging level string (debug, info, warning, error).
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


@click.group()
@click.option("--config", "-c", default=None, help="Path to fleetsim.yaml config file")
@click.pass_context
def main(ctx: click.Context, config: str | None) -> None:
    """fleetsim: a flaky sensor fleet for testing resilient HTTP clients."""
    ctx.ensure_object(dict)
    try:
        cfg = load_config(config)
    except ValidationError as exc:
        raise click.ClickException(f"Invalid configuration:\n{exc}") from exc
    ctx.obj["config"] = cfg
    _setup_logging(cfg.logging.level)


@main.command()
@click.option("--unreliable", "-u", is_flag=True, default=False, help="Run unreliably with errors.")
@click.option(
    "--fail-sensors", "-f", is_flag=True, default=False, help="Intermittently fail sensors."
)
@click.option("--host", default=None, help="Override server host")
@click.option("--port", "-p", default=None, type=int, help="Override server port")
@click.pass_context
def serve(
    ctx: click.Context,
    unreliable: bool,
    fail_sensors: bool,
    host: str | None,
    port: int | None,
) -> None:
    """Start the simulator HTTP server."""
    import uvicorn

    from fleetsim.server import SimulatorServer

    cfg = ctx.obj["config"]
    if unreliable:
        cfg.modes.unreliable = True
    if fail_sensors:
        cfg.modes.fail_sensors = True
    if host:
        cfg.server.host = host
    if port:
        cfg.server.port = port

    console.print(
        f"[bold green]Starting sensor simulator on {cfg.server.host}:{cfg.server.port}"
        f" ({'unreliable' if cfg.modes.unreliable else 'reliable'})[/bold green]"
    )

    server = SimulatorServer(cfg)
    uvicorn.run(
        server.asgi_app,
        host=cfg.server.host,
        port=cfg.server.port,
        log_level=cfg.logging.level,
        access_log=False,
        timeout_graceful_shutdown=cfg.server.graceful_shutdown_s,
    )


@main.command(name="config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Print the effective configuration as JSON."""
    click.echo(ctx.obj["config"].model_dump_json(indent=2))


@main.command()
@click.option("--url", default="http://localhost:3000", help="Base URL of a running simulator")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def inspect(url: str, json_output: bool) -> None:
    """Show every sensor of a running simulator, from its /debug page."""
    try:
        response = httpx.get(f"{url.rstrip('/')}/debug", timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise click.ClickException(f"Could not fetch {url}/debug: {exc}") from exc

    sensors = response.json()
    if json_output:
        click.echo(json.dumps(sensors, indent=2))
        return

    table = Table(title=f"Sensors at {url}")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Frequency", justify="right")
    table.add_column("Status", style="yellow")
    table.add_column("Measurement", justify="right", style="green")
    for sensor in sensors:
        measurement = sensor.get("measurement")
        table.add_row(
            str(sensor["id"]),
            str(sensor["frequency"]),
            sensor["status"],
            "-" if measurement is None else f"{measurement:.2f}",
        )
    console.print(table)


def classify_probe(response: httpx.Response | None, error: Exception | None) -> str:
    """Map one probe request's result to an outcome name.

    Args:
        response: The response, if one arrived.
        error: The transport error raised instead, if any.

    Returns:
        One of PROBE_OUTCOMES.
    """
    if response is None:
        if isinstance(error, httpx.TimeoutException):
            return "timeout"
        if isinstance(error, httpx.TransportError):
            return "closed"
        return "other"
    if response.status_code == 502:
        return "bad_gateway"
    if response.status_code == 500:
        try:
            response.json()
        except ValueError:
            return "text_error"
        return "other"
    if response.is_success:
        return "ok"
    return "other"


@main.command()
@click.option("--url", default="http://localhost:3000", help="Base URL of a running simulator")
@click.option("--requests", "-n", "count", default=100, type=int, help="Number of requests")
@click.option("--timeout", default=3.0, type=float, help="Per-request timeout in seconds")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def probe(url: str, count: int, timeout: float, json_output: bool) -> None:
    """Send GET /sensor-ids repeatedly and tally how each request ended."""
    tally = dict.fromkeys(PROBE_OUTCOMES, 0)
    target = f"{url.rstrip('/')}/sensor-ids"

    with httpx.Client(timeout=timeout) as client:
        for _ in range(count):
            response: httpx.Response | None = None
            error: Exception | None = None
            try:
                response = client.get(target)
            except httpx.HTTPError as exc:
                error = exc
            tally[classify_probe(response, error)] += 1

    if json_output:
        click.echo(json.dumps(tally, indent=2))
        return

    table = Table(title=f"Probe of {target} ({count} requests)")
    table.add_column("Outcome", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Rate", justify="right", style="yellow")
    for outcome, seen in tally.items():
        rate = seen / count if count else 0.0
        table.add_row(outcome, str(seen), f"{rate:.1%}")
    console.print(table)


if __name__ == "__main__":
    main()
