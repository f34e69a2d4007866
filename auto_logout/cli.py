#!/usr/bin/env python3
"""Auto-Logout terminal client.

Talks to the local Auto-Logout API.

Usage:
    auto-logout status               # One-shot status panel
    auto-logout status --watch       # Live view, refreshed every 500ms
    auto-logout reset                # Reset today's timer
    auto-logout pause                # Toggle pause
    auto-logout mode                 # Toggle work/break mode
    auto-logout mode --break         # Switch to break mode
    auto-logout close-tabs           # "Back to work": close blocked tabs
    auto-logout settings             # Show settings
    auto-logout settings --limit 30  # Update the work budget
"""

from __future__ import annotations

import time

import click
import requests
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from . import config
from .timer import format_remaining

console = Console()

PHASE_STYLES = {
    "idle": "dim",
    "accumulating": "green",
    "warned": "bold yellow",
    "expired": "bold red",
    "paused": "cyan",
}


class ApiError(click.ClickException):
    """The server was unreachable or answered with an error."""


def api_request(method: str, path: str, base_url: str, **kwargs) -> dict:
    url = f"{base_url.rstrip('/')}{path}"
    try:
        resp = requests.request(method, url, timeout=5, **kwargs)
    except requests.ConnectionError:
        raise ApiError(f"Cannot reach Auto-Logout API at {base_url}. Is the server running?")
    except requests.RequestException as e:
        raise ApiError(f"Request failed: {e}")
    if resp.status_code >= 400:
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = resp.text
        raise ApiError(f"{method} {path} failed ({resp.status_code}): {detail}")
    return resp.json()


def render_status(status: dict) -> Panel:
    """Status panel: mode, remaining time, progress bar and active tab."""
    limit = status.get("limit_seconds") or 0
    used = status.get("seconds_used") or 0
    remaining = status.get("remaining_seconds", max(0, limit - used))
    phase = status.get("phase", "idle")
    style = PHASE_STYLES.get(phase, "white")

    header = Text()
    header.append("☕ Break" if status.get("break_mode") else "💼 Work", style="bold white")
    header.append("  ")
    header.append(format_remaining(remaining), style=f"bold {style}")
    header.append(f" left of {format_remaining(limit)}", style="dim")
    if status.get("paused"):
        header.append("  PAUSED", style="bold cyan")

    bar = ProgressBar(total=max(limit, 1), completed=min(used, limit), width=40)

    details = Table.grid(padding=(0, 2))
    details.add_column(style="dim")
    details.add_column()
    domain = status.get("domain") or "-"
    tracked = " (tracked)" if status.get("is_tracked") else ""
    details.add_row("Active tab", f"{domain}{tracked}")
    details.add_row("Timer", "running" if status.get("timer_active") else "idle")
    details.add_row("Phase", Text(phase, style=style))
    details.add_row("Focused", "yes" if status.get("window_focused") else "no")
    details.add_row("User", "active" if status.get("user_active") else "idle")

    return Panel(Group(header, bar, details), title="Auto-Logout", border_style="blue")


def render_settings(settings: dict) -> Table:
    table = Table(title="Settings", header_style="bold cyan", border_style="blue")
    table.add_column("Setting", style="white")
    table.add_column("Value", style="yellow")
    table.add_row("Work limit", f"{settings['work_limit_minutes']:g} min")
    table.add_row("Break limit", f"{settings['break_limit_minutes']:g} min")
    table.add_row("Warning", f"{settings['warning_lead_seconds']}s before")
    table.add_row("Action", settings["enforcement"])
    table.add_row("Redirect to", settings.get("redirect_to") or "-")
    table.add_row("Sites", "\n".join(settings["tracked_sites"]) or "-")
    return table


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--url", "base_url", default=config.API_URL, show_default=True, help="Auto-Logout API base URL.")
@click.pass_context
def cli(ctx, base_url):
    """Auto-Logout - shared time budget for distracting sites."""
    ctx.ensure_object(dict)
    ctx.obj["base_url"] = base_url


@cli.command()
@click.option("--watch", "-w", is_flag=True, help="Keep refreshing until Ctrl+C.")
@click.pass_context
def status(ctx, watch):
    """Show the shared timer status."""
    base_url = ctx.obj["base_url"]
    if not watch:
        console.print(render_status(api_request("GET", "/api/status", base_url)))
        return

    try:
        with Live(render_status(api_request("GET", "/api/status", base_url)), console=console) as live:
            while True:
                time.sleep(config.STATUS_POLL_SECONDS)
                live.update(render_status(api_request("GET", "/api/status", base_url)))
    except KeyboardInterrupt:
        pass


@cli.command()
@click.pass_context
def reset(ctx):
    """Reset today's timer to zero."""
    api_request("POST", "/api/timer/reset", ctx.obj["base_url"])
    console.print("[green]Timer reset[/green]")


@cli.command()
@click.pass_context
def pause(ctx):
    """Pause or resume the timer."""
    result = api_request("POST", "/api/timer/pause", ctx.obj["base_url"])
    console.print("[cyan]Timer paused[/cyan]" if result["paused"] else "[green]Timer resumed[/green]")


@cli.command()
@click.option("--break/--work", "break_mode", default=None, help="Select a mode instead of toggling.")
@click.pass_context
def mode(ctx, break_mode):
    """Toggle (or set) work/break mode. Switching resets the timer."""
    base_url = ctx.obj["base_url"]
    if break_mode is None:
        result = api_request("POST", "/api/timer/mode/toggle", base_url)
    else:
        result = api_request("POST", "/api/timer/mode", base_url, json={"break_mode": break_mode})
    console.print(f"Mode: [bold]{'break' if result['break_mode'] else 'work'}[/bold]")


@cli.command("close-tabs")
@click.pass_context
def close_tabs(ctx):
    """Close blocked-page tabs and get back to work."""
    result = api_request("POST", "/api/tabs/close-enforced", ctx.obj["base_url"])
    if not result.get("success"):
        raise ApiError(f"Closing tabs failed: {result.get('error')}")
    console.print(f"Closed {result['closed_count']} tab(s)")


@cli.command()
@click.option("--limit", "work_limit_minutes", type=float, help="Work budget in minutes.")
@click.option("--break-limit", "break_limit_minutes", type=float, help="Break budget in minutes.")
@click.option("--warning", "warning_lead_seconds", type=int, help="Warning lead time in seconds.")
@click.option("--redirect", "redirect_to", help="Redirect page URL, or 'close'.")
@click.option("--no-action", is_flag=True, help="Leave tracked tabs alone when time runs out.")
@click.option("--site", "sites", multiple=True, help="Tracked site (repeat to replace the list).")
@click.pass_context
def settings(ctx, work_limit_minutes, break_limit_minutes, warning_lead_seconds, redirect_to, no_action, sites):
    """Show settings, or update the ones given."""
    base_url = ctx.obj["base_url"]
    changes = {
        key: value
        for key, value in {
            "work_limit_minutes": work_limit_minutes,
            "break_limit_minutes": break_limit_minutes,
            "warning_lead_seconds": warning_lead_seconds,
            "redirect_to": redirect_to,
        }.items()
        if value is not None
    }
    if no_action:
        changes["redirect_to"] = None
    if sites:
        changes["tracked_sites"] = list(sites)

    if changes:
        result = api_request("PUT", "/api/settings", base_url, json=changes)
    else:
        result = api_request("GET", "/api/settings", base_url)
    console.print(render_settings(result))


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
