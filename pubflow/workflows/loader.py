"""Load workflow definitions from YAML documents.

Expected layout::

    workflows:
      - id: daily-digest
        name: Daily digest
        steps:
          - id: fetch
            type: http_request
            config: {url: "https://example.com/feed"}
          - id: pause
            type: delay
            config: {duration_ms: 500}
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pubflow.config.loader import read_yaml_mapping
from pubflow.errors import ValidationError
from pubflow.workflows.models import WorkflowDefinition
from pubflow.workflows.registry import WorkflowRegistry


def parse_workflows(data: dict[str, Any]) -> list[WorkflowDefinition]:
    """Validate the ``workflows`` list of an already-parsed document."""
    entries = data.get("workflows")
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ValidationError("'workflows' must be a list")
    definitions: list[WorkflowDefinition] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValidationError(f"Workflow entry #{index} must be a mapping")
        definition = WorkflowDefinition.from_dict(entry)
        if definition.id in seen:
            raise ValidationError(f"Duplicate workflow id '{definition.id}'")
        seen.add(definition.id)
        definitions.append(definition)
    return definitions


def load_workflows(path: str | Path, registry: WorkflowRegistry | None = None) -> list[WorkflowDefinition]:
    """Load definitions from *path*, registering them into *registry* when given."""
    target = Path(path)
    if not target.is_file():
        raise ValidationError(f"Workflow file not found: {target}")
    definitions = parse_workflows(read_yaml_mapping(target, error_cls=ValidationError))
    if registry is not None:
        for definition in definitions:
            registry.register(definition)
    return definitions
