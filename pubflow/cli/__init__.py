"""CLI tools - pubflow init, config, validate-workflows, next-runs."""

from importlib import metadata

import typer

from pubflow.cli.init_config import init_config_command
from pubflow.cli.next_runs import next_runs_command
from pubflow.cli.show_config import show_config_command
from pubflow.cli.workflows import validate_workflows_command
from pubflow.config import ConfigLoadError
from pubflow.errors import ValidationError

app = typer.Typer(
    name="pubflow",
    help="pubflow - workflow and publication scheduling.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if not value:
        return
    try:
        version = metadata.version("pubflow")
    except metadata.PackageNotFoundError:
        version = "unknown"
    typer.echo(f"pubflow {version}")
    raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True, help="Show version"),
) -> None:
    """pubflow command line."""


@app.command("init")
def init_command(
    path: str = typer.Option(".", "--path", help="Output directory"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing pubflow.yaml"),
) -> None:
    """Generate default pubflow.yaml in target directory."""
    try:
        init_config_command(path=path, force=force)
    except FileExistsError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc


@app.command("config")
def config_command(
    config: str = typer.Option("", "--config", help="Optional config file path"),
) -> None:
    """Print the effective configuration."""
    try:
        show_config_command(config=config or None)
    except ConfigLoadError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc


@app.command("validate-workflows")
def validate_workflows(
    path: str = typer.Argument(..., help="YAML file with a top-level 'workflows' list"),
) -> None:
    """Validate workflow definitions."""
    try:
        validate_workflows_command(path)
    except ValidationError as exc:
        raise typer.Exit(1) from exc


@app.command("next-runs")
def next_runs(
    expression: str = typer.Argument(..., help="5-field cron expression"),
    count: int = typer.Option(5, "--count", "-n", min=1, max=100, help="Number of fire times"),
    timezone: str = typer.Option("UTC", "--timezone", "--tz", help="IANA timezone"),
) -> None:
    """Show upcoming fire times of a cron expression."""
    try:
        next_runs_command(expression, count=count, timezone=timezone)
    except ValidationError as exc:
        raise typer.Exit(1) from exc
