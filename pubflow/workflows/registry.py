"""In-memory store of workflow definitions keyed by id."""

from __future__ import annotations

import logging
from threading import Lock

from pubflow.errors import NotFoundError
from pubflow.workflows.models import WorkflowDefinition

logger = logging.getLogger(__name__)


class WorkflowRegistry:
    """Registry of immutable workflow definitions."""

    def __init__(self, workflows: list[WorkflowDefinition] | None = None) -> None:
        self._lock = Lock()
        self._workflows: dict[str, WorkflowDefinition] = {}
        for workflow in workflows or []:
            self.register(workflow)

    def register(self, workflow: WorkflowDefinition) -> None:
        """Add or replace *workflow*."""
        with self._lock:
            replaced = workflow.id in self._workflows
            self._workflows[workflow.id] = workflow
        logger.debug("workflow_registered workflow_id=%s steps=%d replaced=%s", workflow.id, len(workflow.steps), replaced)

    def get(self, workflow_id: str) -> WorkflowDefinition:
        with self._lock:
            workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise NotFoundError("Workflow", workflow_id)
        return workflow

    def list_workflows(self) -> list[WorkflowDefinition]:
        with self._lock:
            return list(self._workflows.values())

    def unregister(self, workflow_id: str) -> bool:
        with self._lock:
            return self._workflows.pop(workflow_id, None) is not None

    def __contains__(self, workflow_id: object) -> bool:
        with self._lock:
            return workflow_id in self._workflows

    def __len__(self) -> int:
        with self._lock:
            return len(self._workflows)
