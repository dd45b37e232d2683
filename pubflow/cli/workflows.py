"""Workflow file validation command."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pubflow.errors import ValidationError
from pubflow.workflows.loader import load_workflows
from pubflow.workflows.models import WorkflowDefinition

console = Console()


def validate_workflows_command(path: str) -> list[WorkflowDefinition]:
    """Load *path* and print a summary; raises ValidationError when invalid."""
    try:
        workflows = load_workflows(path)
    except ValidationError as exc:
        console.print(f"[red]Invalid[/red] {escape(path)}: {escape(str(exc))}")
        raise

    table = Table(title=f"Workflows in {path}")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Steps", justify="right")
    table.add_column("Step types")
    for workflow in workflows:
        types = ", ".join(dict.fromkeys(step.type.value for step in workflow.steps))
        table.add_row(workflow.id, workflow.name or "-", str(len(workflow.steps)), types)
    console.print(table)
    console.print(f"[green]OK[/green] {len(workflows)} workflow(s)")
    return workflows
