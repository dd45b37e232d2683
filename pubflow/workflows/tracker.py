"""In-memory registry of workflow executions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from threading import Lock
from typing import Any

from pubflow.clock import utcnow
from pubflow.errors import ConcurrencyLimitExceededError, InvalidStateTransitionError, NotFoundError
from pubflow.workflows.models import (
    ALLOWED_TRANSITIONS,
    ExecutionStats,
    ExecutionStatus,
    ExecutionStatusView,
    WorkflowExecution,
    WorkflowResult,
)

logger = logging.getLogger(__name__)

# Shown for running executions whose engine never reported step progress.
ESTIMATED_RUNNING_PROGRESS = 50.0


class ExecutionTracker:
    """Thread-safe execution map with concurrency gating and retention purge."""

    def __init__(self, *, now: Callable[[], datetime] = utcnow) -> None:
        self._now = now
        self._lock = Lock()
        self._executions: dict[str, WorkflowExecution] = {}

    def admit(self, execution: WorkflowExecution, limit: int) -> None:
        """Register *execution* unless *limit* active executions already exist.

        Pending executions count as active so concurrent admissions cannot
        overshoot the cap before they start running.
        """
        with self._lock:
            active = sum(
                1
                for item in self._executions.values()
                if item.status in (ExecutionStatus.PENDING, ExecutionStatus.RUNNING)
            )
            if active >= limit:
                raise ConcurrencyLimitExceededError(limit)
            self._insert(execution)

    def register(self, execution: WorkflowExecution) -> None:
        with self._lock:
            self._insert(execution)

    def _insert(self, execution: WorkflowExecution) -> None:
        if execution.id in self._executions:
            raise InvalidStateTransitionError(f"Execution already registered: {execution.id}")
        self._executions[execution.id] = execution

    def transition(
        self,
        execution_id: str,
        status: ExecutionStatus,
        *,
        error: str | None = None,
        result: WorkflowResult | None = None,
        at: datetime | None = None,
    ) -> WorkflowExecution:
        """Move an execution forward through its state machine."""
        with self._lock:
            execution = self._require(execution_id)
            if status not in ALLOWED_TRANSITIONS[execution.status]:
                raise InvalidStateTransitionError(
                    f"Execution {execution_id} cannot move from {execution.status.value} to {status.value}"
                )
            execution.status = status
            if status.is_terminal:
                execution.end_time = at or self._now()
            if error is not None:
                execution.error = error
            if result is not None:
                execution.result = result
            return execution

    def report_progress(self, execution_id: str, completed_steps: int, total_steps: int) -> None:
        with self._lock:
            execution = self._executions.get(execution_id)
            if execution is None:
                return
            execution.completed_steps = max(0, int(completed_steps))
            execution.total_steps = max(0, int(total_steps))

    def get(self, execution_id: str) -> ExecutionStatusView:
        """Return a status snapshot, raising NotFoundError for unknown ids."""
        with self._lock:
            execution = self._require(execution_id)
            progress, estimate = self._progress(execution)
            return ExecutionStatusView(
                id=execution.id,
                workflow_id=execution.workflow_id,
                status=execution.status,
                start_time=execution.start_time,
                end_time=execution.end_time,
                duration_ms=execution.duration_ms(self._now()),
                progress=progress,
                progress_is_estimate=estimate,
                error=execution.error,
                retry_count=execution.retry_count,
                metadata=dict(execution.metadata),
            )

    def list_executions(self, status: ExecutionStatus | None = None) -> list[WorkflowExecution]:
        with self._lock:
            items = list(self._executions.values())
        if status is None:
            return items
        return [item for item in items if item.status == status]

    def count(self, status: ExecutionStatus) -> int:
        with self._lock:
            return sum(1 for item in self._executions.values() if item.status == status)

    def stats(self) -> ExecutionStats:
        with self._lock:
            items = list(self._executions.values())
        by_status: dict[ExecutionStatus, int] = {status: 0 for status in ExecutionStatus}
        for item in items:
            by_status[item.status] += 1
        durations = [
            item.duration_ms(item.end_time)
            for item in items
            if item.status == ExecutionStatus.COMPLETED and item.end_time is not None
        ]
        return ExecutionStats(
            total=len(items),
            pending=by_status[ExecutionStatus.PENDING],
            running=by_status[ExecutionStatus.RUNNING],
            completed=by_status[ExecutionStatus.COMPLETED],
            failed=by_status[ExecutionStatus.FAILED],
            cancelled=by_status[ExecutionStatus.CANCELLED],
            average_duration_ms=(sum(durations) / len(durations)) if durations else 0.0,
        )

    def purge_older_than(self, max_age: timedelta, *, now: datetime | None = None) -> int:
        """Drop terminal executions that ended before ``now - max_age``."""
        cutoff = (now or self._now()) - max_age
        with self._lock:
            stale = [
                execution_id
                for execution_id, item in self._executions.items()
                if item.status.is_terminal and item.end_time is not None and item.end_time < cutoff
            ]
            for execution_id in stale:
                del self._executions[execution_id]
        if stale:
            logger.debug("Purged %d executions older than %s", len(stale), cutoff.isoformat())
        return len(stale)

    def cancel_running(self, *, at: datetime | None = None) -> list[WorkflowExecution]:
        """Mark every pending or running execution cancelled at *at*."""
        moment = at or self._now()
        cancelled: list[WorkflowExecution] = []
        with self._lock:
            for item in self._executions.values():
                if item.status in (ExecutionStatus.PENDING, ExecutionStatus.RUNNING):
                    item.status = ExecutionStatus.CANCELLED
                    item.end_time = moment
                    cancelled.append(item)
        return cancelled

    def snapshot(self) -> dict[str, Any]:
        stats = self.stats()
        return {
            "total": stats.total,
            "running": stats.running,
            "completed": stats.completed,
            "failed": stats.failed,
            "cancelled": stats.cancelled,
            "average_duration_ms": stats.average_duration_ms,
        }

    def _require(self, execution_id: str) -> WorkflowExecution:
        execution = self._executions.get(execution_id)
        if execution is None:
            raise NotFoundError("Execution", execution_id)
        return execution

    @staticmethod
    def _progress(execution: WorkflowExecution) -> tuple[float, bool]:
        if execution.status == ExecutionStatus.COMPLETED:
            return 100.0, False
        if execution.status in (ExecutionStatus.FAILED, ExecutionStatus.CANCELLED, ExecutionStatus.PENDING):
            return 0.0, False
        if execution.total_steps > 0:
            return round(execution.completed_steps / execution.total_steps * 100, 2), False
        return ESTIMATED_RUNNING_PROGRESS, True
