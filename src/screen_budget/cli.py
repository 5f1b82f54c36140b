"""screen-budget command line: run the server or talk to a running one."""

from __future__ import annotations

import logging

import click
import requests
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import load_settings
from .errors import ConfigError

REQUEST_TIMEOUT_SECONDS = 5

SIGNALS = {
    "lock": ("/api/signals/lock", {"locked": True}),
    "unlock": ("/api/signals/lock", {"locked": False}),
    "screen-on": ("/api/signals/screen", {"on": True}),
    "screen-off": ("/api/signals/screen", {"on": False}),
    "foreground": ("/api/signals/foreground", {"foreground": True}),
    "background": ("/api/signals/foreground", {"foreground": False}),
}

console = Console()


def _api(ctx: click.Context, method: str, path: str, payload: dict | None = None) -> dict:
    url = ctx.obj["settings"].api_url.rstrip("/") + path
    try:
        resp = requests.request(method, url, json=payload, timeout=REQUEST_TIMEOUT_SECONDS)
    except requests.RequestException as e:
        raise click.ClickException(f"Cannot reach screen-budget API at {url}: {e}")
    if resp.status_code >= 400:
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = resp.text
        raise click.ClickException(f"API error {resp.status_code}: {detail}")
    return resp.json()


def render_status(status: dict) -> Panel:
    """Rich panel mirroring the on-device status card."""
    expired = status.get("remaining_seconds", 0) <= 0
    color = "red" if expired else ("green" if status.get("running") else "yellow")

    body = Text()
    body.append(f"{status.get('remaining_formatted', '0:00')}\n", style=f"bold {color}")
    body.append(f"{status.get('status', '')}\n", style=color)
    flags = (
        f"locked={status.get('locked')}  screen_on={status.get('screen_on')}  "
        f"app_foreground={status.get('app_foreground')}  engine={status.get('engine_state')}"
    )
    body.append(flags, style="dim")
    return Panel(body, title="Screen Time Remaining", border_style=color)


def render_log(entries: list[dict]) -> Table:
    table = Table(title="Event Log", show_header=True, header_style="bold")
    table.add_column("Time", style="cyan", no_wrap=True)
    table.add_column("Event")
    for entry in entries:
        table.add_row(entry.get("timestamp", ""), entry.get("message", ""))
    return table


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, verbose):
    """Screen-time budget controller."""
    try:
        settings = load_settings()
    except ConfigError as e:
        raise click.ClickException(str(e))
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", type=int, default=None, help="Defaults to SCREEN_BUDGET_PORT")
@click.pass_context
def serve(ctx, host, port):
    """Run the budget controller server."""
    import uvicorn

    from .api import create_app

    settings = ctx.obj["settings"]
    logging.basicConfig(
        level=logging.DEBUG if ctx.obj["verbose"] else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    uvicorn.run(create_app(settings), host=host, port=port or settings.port)


@cli.command("set")
@click.option("--minutes", "-m", type=int, default=None, help="Budget in minutes")
@click.option("--seconds", "-s", type=int, default=None, help="Budget in seconds")
@click.pass_context
def set_budget(ctx, minutes, seconds):
    """Set the remaining budget (absolute, not additive)."""
    if (minutes is None) == (seconds is None):
        raise click.UsageError("Pass exactly one of --minutes or --seconds")
    payload = {"minutes": minutes} if minutes is not None else {"seconds": seconds}
    console.print(render_status(_api(ctx, "POST", "/api/budget", payload)))


@cli.command()
@click.argument("name", type=click.Choice(sorted(SIGNALS)))
@click.pass_context
def signal(ctx, name):
    """Send a device/app signal by hand (for testing observers)."""
    path, payload = SIGNALS[name]
    status = _api(ctx, "POST", path, payload)
    if ctx.obj["verbose"]:
        console.print(render_status(status))
    else:
        click.echo(f"{name}: {status.get('status')} ({status.get('remaining_formatted')})")


@cli.command()
@click.pass_context
def status(ctx):
    """Show the remaining budget."""
    console.print(render_status(_api(ctx, "GET", "/api/budget")))


@cli.command()
@click.option("--limit", "-n", type=int, default=5, show_default=True)
@click.pass_context
def log(ctx, limit):
    """Show the rolling event log."""
    data = _api(ctx, "GET", f"/api/log?limit={limit}")
    console.print(render_log(data.get("logs", [])))


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
