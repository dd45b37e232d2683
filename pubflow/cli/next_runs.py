"""Cron preview command."""

from __future__ import annotations

from datetime import datetime

from rich.console import Console
from rich.markup import escape

from pubflow.clock import CronClock, resolve_timezone
from pubflow.errors import ValidationError

console = Console()


def next_runs_command(expression: str, count: int = 5, timezone: str = "UTC") -> list[datetime]:
    """Print the next *count* fire times of *expression* in *timezone*."""
    try:
        zone = resolve_timezone(timezone)
        runs = CronClock.upcoming(expression, count=count, timezone=timezone)
    except ValidationError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise
    console.print(f"[bold]{escape(expression)}[/bold] ({escape(timezone)})")
    for run in runs:
        console.print(f"  {run.astimezone(zone).isoformat()}")
    return runs
