"""Workflow definitions and execution records.

Definitions are authored outside this package and are immutable, so they are
frozen pydantic models. Execution records are mutable runtime state owned by
the ExecutionTracker and are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, model_validator

from pubflow.errors import ValidationError


class StepType(str, Enum):
    """Kinds of workflow steps, one executor per kind."""

    HTTP_REQUEST = "http_request"
    DATABASE_OPERATION = "database_operation"
    AGENT_CALL = "agent_call"
    DELAY = "delay"
    CONDITIONAL = "conditional"
    LOOP = "loop"


class RetryPolicy(BaseModel):
    """Retry policy for a whole workflow or a single step."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: int = Field(default=0, ge=0)
    delay_ms: int = Field(default=0, ge=0)


class WorkflowStep(BaseModel):
    """One unit of work inside a workflow."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    name: str = ""
    type: StepType
    config: dict[str, Any] = Field(default_factory=dict)
    continue_on_error: bool = False
    timeout_ms: int | None = Field(default=None, gt=0)
    retry: RetryPolicy | None = None
    depends_on: tuple[str, ...] = ()
    output_mapping: dict[str, Any] = Field(default_factory=dict)


class WorkflowDefinition(BaseModel):
    """Immutable description of a job as an ordered list of steps."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    name: str = ""
    description: str = ""
    steps: tuple[WorkflowStep, ...] = Field(min_length=1)
    timeout_ms: int | None = Field(default=None, gt=0)
    retry: RetryPolicy | None = None

    @model_validator(mode="after")
    def _check_steps(self) -> WorkflowDefinition:
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id '{step.id}'")
            missing = [dep for dep in step.depends_on if dep not in seen]
            if missing:
                raise ValueError(f"step '{step.id}' depends on unknown or later steps: {missing}")
            seen.add(step.id)
        return self

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowDefinition:
        """Validate *data* into a definition, raising pubflow's ValidationError."""
        try:
            return cls.model_validate(data)
        except pydantic.ValidationError as exc:
            workflow_id = data.get("id") if isinstance(data, dict) else None
            raise ValidationError(f"Invalid workflow '{workflow_id or '?'}': {exc}") from exc


class ExecutionStatus(str, Enum):
    """Lifecycle of a single workflow execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset({ExecutionStatus.RUNNING, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}),
    ExecutionStatus.RUNNING: frozenset(TERMINAL_STATUSES),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
    ExecutionStatus.CANCELLED: frozenset(),
}


@dataclass
class WorkflowResult:
    """Outcome of a successful workflow run."""

    success: bool
    workflow_id: str
    execution_id: str
    step_results: dict[str, Any]
    context: dict[str, Any]
    completed_at: datetime
    duration_ms: float


@dataclass
class WorkflowExecution:
    """Mutable record of one workflow run."""

    id: str
    workflow_id: str
    start_time: datetime
    status: ExecutionStatus = ExecutionStatus.PENDING
    end_time: datetime | None = None
    retry_count: int = 0
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    result: WorkflowResult | None = None
    total_steps: int = 0
    completed_steps: int = 0

    def duration_ms(self, now: datetime) -> float:
        end = self.end_time or now
        return max(0.0, (end - self.start_time).total_seconds() * 1000)


@dataclass(frozen=True)
class ExecutionStatusView:
    """Read-only snapshot returned by ExecutionTracker.get()."""

    id: str
    workflow_id: str
    status: ExecutionStatus
    start_time: datetime
    end_time: datetime | None
    duration_ms: float
    progress: float
    progress_is_estimate: bool
    error: str | None
    retry_count: int
    metadata: dict[str, Any]


@dataclass(frozen=True)
class ExecutionStats:
    """Aggregate counters over tracked executions."""

    total: int
    pending: int
    running: int
    completed: int
    failed: int
    cancelled: int
    average_duration_ms: float
