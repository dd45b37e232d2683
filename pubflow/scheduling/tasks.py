"""Task scheduler: binds recurring cron schedules to workflows."""

from __future__ import annotations

import asyncio
import functools
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pubflow.clock import CronClock, TriggerHandle, utcnow
from pubflow.config.models import WorkflowsConfig
from pubflow.errors import (
    ExecutionCancelledError,
    InvalidCronExpressionError,
    InvalidStateTransitionError,
    UnknownTaskError,
    ValidationError,
)
from pubflow.observers import ObserverHub
from pubflow.scheduling.results import ScheduleResult
from pubflow.workflows.engine import WorkflowEngine
from pubflow.workflows.models import WorkflowResult

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    """Recurring binding of a cron expression to a workflow."""

    name: str
    cron_expression: str
    workflow_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    description: str = ""
    enabled: bool = True
    timezone: str = "UTC"
    last_run: datetime | None = None
    next_run: datetime | None = None
    run_count: int = 0
    failure_count: int = 0
    last_error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class TaskScheduler:
    """Run workflows on cron schedules and auto-disable tasks that keep failing."""

    def __init__(
        self,
        config: WorkflowsConfig | None = None,
        *,
        clock: CronClock,
        engine: WorkflowEngine,
        observers: ObserverHub | None = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or WorkflowsConfig()
        self._clock = clock
        self._engine = engine
        self._observers = observers or ObserverHub()
        self._now = now
        self._tasks: dict[str, ScheduledTask] = {}
        self._handles: dict[str, TriggerHandle] = {}

    def update_config(self, config: WorkflowsConfig) -> None:
        self._config = config

    def schedule(self, task: ScheduledTask) -> ScheduleResult:
        """Register *task* with the clock; the trigger only starts when the task is enabled."""
        if not self._config.scheduler_enabled:
            return ScheduleResult.failure("Scheduler is disabled", task_id=task.id)
        if task.id in self._tasks:
            return ScheduleResult.failure(f"Task already scheduled: {task.id}", task_id=task.id)
        try:
            handle = self._clock.schedule_recurring(
                task.cron_expression,
                functools.partial(self._fire, task.id),
                timezone=task.timezone,
                start=task.enabled,
            )
        except InvalidCronExpressionError as exc:
            logger.warning("scheduled_task_rejected task_id=%s reason=invalid_cron expression=%r", task.id, task.cron_expression)
            return ScheduleResult.failure("Invalid cron expression", str(exc), task_id=task.id)
        except ValidationError as exc:
            logger.warning("scheduled_task_rejected task_id=%s reason=%s", task.id, exc)
            return ScheduleResult.failure("Invalid task", str(exc), task_id=task.id)

        self._tasks[task.id] = task
        self._handles[task.id] = handle
        task.next_run = self._next_run(task) if task.enabled else None
        logger.info(
            "scheduled_task_registered task_id=%s workflow_id=%s expression=%r enabled=%s",
            task.id,
            task.workflow_id,
            task.cron_expression,
            task.enabled,
        )
        return ScheduleResult(
            success=True,
            message="Task scheduled successfully",
            task_id=task.id,
            next_run=task.next_run,
        )

    def toggle(self, task_id: str, enabled: bool) -> ScheduledTask:
        """Enable or disable a task; raises UnknownTaskError for unknown ids."""
        task = self.get(task_id)
        handle = self._handles[task_id]
        task.enabled = enabled
        if enabled:
            self._clock.start(handle)
            task.next_run = self._next_run(task)
        else:
            self._clock.stop(handle)
            task.next_run = None
        logger.info("scheduled_task_toggled task_id=%s enabled=%s", task_id, enabled)
        return task

    def unschedule(self, task_id: str) -> bool:
        """Remove a task and its trigger; returns False when it was already gone."""
        handle = self._handles.pop(task_id, None)
        if handle is not None:
            self._clock.remove(handle)
        removed = self._tasks.pop(task_id, None) is not None
        if removed:
            logger.info("scheduled_task_removed task_id=%s", task_id)
        return removed

    def get(self, task_id: str) -> ScheduledTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise UnknownTaskError(task_id)
        return task

    def list_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    def reset_failures(self, task_id: str) -> ScheduledTask:
        """Zero the failure counter; re-enabling stays a separate call."""
        task = self.get(task_id)
        task.failure_count = 0
        task.last_error = None
        return task

    async def trigger_now(self, task_id: str) -> WorkflowResult | None:
        """Run an enabled task immediately through the regular fire path."""
        task = self.get(task_id)
        if not task.enabled:
            raise InvalidStateTransitionError(f"Scheduled task is disabled: {task_id}")
        return await self._fire(task_id)

    def shutdown(self) -> None:
        for handle in list(self._handles.values()):
            self._clock.stop(handle)

    async def _fire(self, task_id: str) -> WorkflowResult | None:
        task = self._tasks.get(task_id)
        if task is None or not task.enabled:
            return None
        task.run_count += 1
        task.last_run = self._now()
        try:
            result = await self._engine.execute_by_id(
                task.workflow_id,
                dict(task.metadata),
                metadata={"task_id": task.id},
            )
        except asyncio.CancelledError:
            raise
        except ExecutionCancelledError as exc:
            logger.info("scheduled_task_run_cancelled task_id=%s reason=%s", task.id, exc)
            return None
        except Exception as exc:
            self._record_failure(task, exc)
            return None
        task.last_error = None
        if task.enabled:
            task.next_run = self._next_run(task)
        return result

    def _record_failure(self, task: ScheduledTask, exc: Exception) -> None:
        task.failure_count += 1
        task.last_error = str(exc)
        logger.warning(
            "scheduled_task_failed task_id=%s workflow_id=%s failure_count=%d error=%s",
            task.id,
            task.workflow_id,
            task.failure_count,
            exc,
        )
        if task.failure_count >= self._config.task_failure_threshold and task.enabled:
            self.toggle(task.id, False)
            self._observers.emit("task_disabled", task)
        elif task.enabled:
            task.next_run = self._next_run(task)

    def _next_run(self, task: ScheduledTask) -> datetime:
        return self._clock.next_fire_time(task.cron_expression, base=self._now(), timezone=task.timezone)
