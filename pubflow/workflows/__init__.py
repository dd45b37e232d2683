"""Workflow definitions, execution tracking and the execution engine."""

from pubflow.workflows.engine import RetryStrategy, WorkflowEngine
from pubflow.workflows.executors import (
    CallableStepExecutor,
    DelayStepExecutor,
    StepExecutor,
    StepExecutorRegistry,
)
from pubflow.workflows.loader import load_workflows, parse_workflows
from pubflow.workflows.models import (
    ExecutionStats,
    ExecutionStatus,
    ExecutionStatusView,
    RetryPolicy,
    StepType,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowResult,
    WorkflowStep,
)
from pubflow.workflows.registry import WorkflowRegistry
from pubflow.workflows.tracker import ExecutionTracker

__all__ = [
    "CallableStepExecutor",
    "DelayStepExecutor",
    "ExecutionStats",
    "ExecutionStatus",
    "ExecutionStatusView",
    "ExecutionTracker",
    "RetryPolicy",
    "RetryStrategy",
    "StepExecutor",
    "StepExecutorRegistry",
    "StepType",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowExecution",
    "WorkflowRegistry",
    "WorkflowResult",
    "WorkflowStep",
    "load_workflows",
    "parse_workflows",
]
