"""Tests for workflow definitions and the execution state machine."""

from __future__ import annotations

import pytest

from pubflow.errors import ValidationError
from pubflow.workflows.models import (
    ALLOWED_TRANSITIONS,
    ExecutionStatus,
    StepType,
    WorkflowDefinition,
)


def _definition(**kwargs) -> dict:  # type: ignore[no-untyped-def]
    data = {
        "id": "wf-1",
        "name": "Workflow",
        "steps": [
            {"id": "a", "type": "agent_call"},
            {"id": "b", "type": "delay", "config": {"duration_ms": 5}, "depends_on": ["a"]},
        ],
    }
    data.update(kwargs)
    return data


def test_from_dict_builds_frozen_definition() -> None:
    wf = WorkflowDefinition.from_dict(_definition())
    assert [step.id for step in wf.steps] == ["a", "b"]
    assert wf.steps[1].type is StepType.DELAY
    with pytest.raises(Exception):
        wf.name = "changed"  # type: ignore[misc]


def test_empty_steps_rejected() -> None:
    with pytest.raises(ValidationError, match="wf-1"):
        WorkflowDefinition.from_dict(_definition(steps=[]))


def test_duplicate_step_ids_rejected() -> None:
    steps = [{"id": "a", "type": "delay"}, {"id": "a", "type": "delay"}]
    with pytest.raises(ValidationError, match="duplicate step id"):
        WorkflowDefinition.from_dict(_definition(steps=steps))


def test_forward_dependency_rejected() -> None:
    steps = [{"id": "a", "type": "delay", "depends_on": ["b"]}, {"id": "b", "type": "delay"}]
    with pytest.raises(ValidationError, match="depends on"):
        WorkflowDefinition.from_dict(_definition(steps=steps))


def test_unknown_step_type_rejected() -> None:
    with pytest.raises(ValidationError):
        WorkflowDefinition.from_dict(_definition(steps=[{"id": "a", "type": "teleport"}]))


def test_unknown_fields_rejected() -> None:
    with pytest.raises(ValidationError):
        WorkflowDefinition.from_dict(_definition(owner="someone"))


@pytest.mark.parametrize("status", [ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED])
def test_terminal_states_have_no_exit(status: ExecutionStatus) -> None:
    assert status.is_terminal
    assert ALLOWED_TRANSITIONS[status] == frozenset()


def test_running_only_reachable_from_pending() -> None:
    sources = [status for status, targets in ALLOWED_TRANSITIONS.items() if ExecutionStatus.RUNNING in targets]
    assert sources == [ExecutionStatus.PENDING]
