"""pubflow - workflow execution and multi-channel publication scheduling."""

from pubflow.app import Pubflow
from pubflow.clock import CronClock, TriggerHandle
from pubflow.config import ConfigManager, PubflowConfig
from pubflow.errors import (
    ConcurrencyLimitExceededError,
    ExecutionCancelledError,
    ExecutionTimeoutError,
    InvalidCronExpressionError,
    InvalidStateTransitionError,
    NotFoundError,
    PublicationNotPublishedError,
    PubflowError,
    StepExecutionError,
    StepTimeoutError,
    UnknownTaskError,
    ValidationError,
)
from pubflow.observers import Observer, ObserverHub, SchedulerLogger
from pubflow.scheduling import ScheduledTask, ScheduleResult, TaskScheduler

__all__ = [
    "ConcurrencyLimitExceededError",
    "ConfigManager",
    "CronClock",
    "ExecutionCancelledError",
    "ExecutionTimeoutError",
    "InvalidCronExpressionError",
    "InvalidStateTransitionError",
    "NotFoundError",
    "Observer",
    "ObserverHub",
    "PublicationNotPublishedError",
    "Pubflow",
    "PubflowConfig",
    "PubflowError",
    "ScheduleResult",
    "ScheduledTask",
    "SchedulerLogger",
    "StepExecutionError",
    "StepTimeoutError",
    "TaskScheduler",
    "TriggerHandle",
    "UnknownTaskError",
    "ValidationError",
]
