"""Lifecycle observers for executions, tasks and publications."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pubflow.publishing.models import PublicationResult, ScheduledPublication
    from pubflow.scheduling.tasks import ScheduledTask
    from pubflow.workflows.models import WorkflowExecution

logger = logging.getLogger(__name__)


class Observer:
    """Base observer; override the hooks you care about."""

    def on_execution_started(self, execution: WorkflowExecution) -> None:
        pass

    def on_execution_completed(self, execution: WorkflowExecution) -> None:
        pass

    def on_execution_failed(self, execution: WorkflowExecution) -> None:
        pass

    def on_execution_cancelled(self, execution: WorkflowExecution) -> None:
        pass

    def on_task_disabled(self, task: ScheduledTask) -> None:
        pass

    def on_publication_scheduled(self, publication: ScheduledPublication) -> None:
        pass

    def on_publication_published(self, publication: ScheduledPublication) -> None:
        pass

    def on_publication_failed(self, publication: ScheduledPublication) -> None:
        pass

    def on_publication_cancelled(self, publication: ScheduledPublication) -> None:
        pass

    def on_publication_overdue(self, publication: ScheduledPublication) -> None:
        pass

    def on_channel_result(self, result: PublicationResult) -> None:
        pass


class ObserverHub:
    """Fan lifecycle events out to observers; observer errors are logged, never raised."""

    def __init__(self, observers: list[Any] | None = None) -> None:
        self._observers: list[Any] = list(observers or [])

    def add(self, observer: Any) -> None:
        self._observers.append(observer)

    def remove(self, observer: Any) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def __len__(self) -> int:
        return len(self._observers)

    def emit(self, event: str, subject: Any) -> None:
        method_name = f"on_{event}"
        for observer in list(self._observers):
            hook = getattr(observer, method_name, None)
            if not callable(hook):
                continue
            try:
                hook(subject)
            except Exception as exc:
                logger.exception(
                    "Observer %s failed on %s: %s",
                    type(observer).__name__,
                    event,
                    exc,
                )


class SchedulerLogger(Observer):
    """key=value style lifecycle logging."""

    def on_execution_started(self, execution: WorkflowExecution) -> None:
        logger.info(
            "workflow_execution_start execution_id=%s workflow_id=%s retry_count=%d",
            execution.id,
            execution.workflow_id,
            execution.retry_count,
        )

    def on_execution_completed(self, execution: WorkflowExecution) -> None:
        duration = execution.duration_ms(execution.end_time) if execution.end_time else None
        logger.info(
            "workflow_execution_complete execution_id=%s workflow_id=%s duration_ms=%s",
            execution.id,
            execution.workflow_id,
            duration,
        )

    def on_execution_failed(self, execution: WorkflowExecution) -> None:
        logger.error(
            "workflow_execution_failed execution_id=%s workflow_id=%s retry_count=%d error=%s",
            execution.id,
            execution.workflow_id,
            execution.retry_count,
            execution.error,
        )

    def on_execution_cancelled(self, execution: WorkflowExecution) -> None:
        logger.warning(
            "workflow_execution_cancelled execution_id=%s workflow_id=%s",
            execution.id,
            execution.workflow_id,
        )

    def on_task_disabled(self, task: ScheduledTask) -> None:
        logger.warning(
            "scheduled_task_disabled task_id=%s failure_count=%d",
            task.id,
            task.failure_count,
        )

    def on_publication_scheduled(self, publication: ScheduledPublication) -> None:
        logger.info(
            "publication_scheduled publication_id=%s content_id=%s channels=%d scheduled_time=%s",
            publication.id,
            publication.content_id,
            len(publication.channels),
            publication.scheduled_time.isoformat(),
        )

    def on_publication_published(self, publication: ScheduledPublication) -> None:
        succeeded = sum(1 for result in publication.results.values() if result.success)
        logger.info(
            "publication_published publication_id=%s successful_channels=%d total_channels=%d",
            publication.id,
            succeeded,
            len(publication.channels),
        )

    def on_publication_failed(self, publication: ScheduledPublication) -> None:
        logger.error(
            "publication_failed publication_id=%s error=%s",
            publication.id,
            publication.error,
        )

    def on_publication_cancelled(self, publication: ScheduledPublication) -> None:
        logger.info("publication_cancelled publication_id=%s", publication.id)

    def on_channel_result(self, result: PublicationResult) -> None:
        if not result.success:
            logger.warning(
                "channel_publish_failed channel_id=%s platform=%s error=%s",
                result.channel_id,
                result.platform,
                result.error,
            )
