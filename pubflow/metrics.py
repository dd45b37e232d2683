"""Prometheus metrics for workflow executions and publications."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from pubflow.observers import Observer

if TYPE_CHECKING:
    from pubflow.publishing.models import PublicationResult, ScheduledPublication
    from pubflow.scheduling.tasks import ScheduledTask
    from pubflow.workflows.models import WorkflowExecution


class SchedulerMetrics(Observer):
    """Observer that records lifecycle events as Prometheus metrics.

    Each instance owns its CollectorRegistry so several apps (or tests) can
    coexist in one process. Plain counters mirror the Prometheus values for
    ``snapshot()``.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.execution_counts: dict[str, int] = {}
        self.publication_counts: dict[str, int] = {}
        self.channel_counts: dict[tuple[str, str], int] = {}
        self.running = 0
        self.disabled_tasks = 0

        self.executions_total = Counter(
            "pubflow_workflow_executions_total",
            "Workflow executions by terminal status",
            ["status"],
            registry=self.registry,
        )
        self.execution_duration_seconds = Histogram(
            "pubflow_workflow_execution_duration_seconds",
            "Workflow execution duration in seconds",
            registry=self.registry,
        )
        self.running_workflows = Gauge(
            "pubflow_running_workflows",
            "Workflow executions currently running",
            registry=self.registry,
        )
        self.tasks_disabled_total = Counter(
            "pubflow_tasks_disabled_total",
            "Scheduled tasks disabled after repeated failures",
            registry=self.registry,
        )
        self.publications_total = Counter(
            "pubflow_publications_total",
            "Publication lifecycle events by status",
            ["status"],
            registry=self.registry,
        )
        self.channel_publish_total = Counter(
            "pubflow_channel_publish_total",
            "Channel publish attempts by platform and outcome",
            ["platform", "outcome"],
            registry=self.registry,
        )

    def on_execution_started(self, execution: WorkflowExecution) -> None:
        self.running += 1
        self.running_workflows.set(self.running)

    def on_execution_completed(self, execution: WorkflowExecution) -> None:
        self._record_terminal(execution)

    def on_execution_failed(self, execution: WorkflowExecution) -> None:
        self._record_terminal(execution)

    def on_execution_cancelled(self, execution: WorkflowExecution) -> None:
        self._record_terminal(execution)

    def on_task_disabled(self, task: ScheduledTask) -> None:
        self.disabled_tasks += 1
        self.tasks_disabled_total.inc()

    def on_publication_scheduled(self, publication: ScheduledPublication) -> None:
        self._record_publication("scheduled")

    def on_publication_published(self, publication: ScheduledPublication) -> None:
        self._record_publication("published")

    def on_publication_failed(self, publication: ScheduledPublication) -> None:
        self._record_publication("failed")

    def on_publication_cancelled(self, publication: ScheduledPublication) -> None:
        self._record_publication("cancelled")

    def on_publication_overdue(self, publication: ScheduledPublication) -> None:
        self._record_publication("overdue")

    def on_channel_result(self, result: PublicationResult) -> None:
        outcome = "success" if result.success else "failure"
        key = (result.platform, outcome)
        self.channel_counts[key] = self.channel_counts.get(key, 0) + 1
        self.channel_publish_total.labels(result.platform, outcome).inc()

    def snapshot(self) -> dict[str, Any]:
        return {
            "executions": dict(self.execution_counts),
            "running": self.running,
            "disabled_tasks": self.disabled_tasks,
            "publications": dict(self.publication_counts),
            "channel_publishes": {f"{platform}:{outcome}": count for (platform, outcome), count in self.channel_counts.items()},
        }

    def render(self) -> bytes:
        """Return the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)

    def _record_terminal(self, execution: WorkflowExecution) -> None:
        status = execution.status.value
        self.execution_counts[status] = self.execution_counts.get(status, 0) + 1
        self.executions_total.labels(status).inc()
        if execution.end_time is not None:
            seconds = execution.duration_ms(execution.end_time) / 1000
            self.execution_duration_seconds.observe(seconds)
        self.running = max(0, self.running - 1)
        self.running_workflows.set(self.running)

    def _record_publication(self, status: str) -> None:
        self.publication_counts[status] = self.publication_counts.get(status, 0) + 1
        self.publications_total.labels(status).inc()
