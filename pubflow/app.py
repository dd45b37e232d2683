"""Pubflow application object - wires the scheduling core together."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from pubflow.clock import CronClock, utcnow
from pubflow.config import ConfigManager, PubflowConfig
from pubflow.metrics import SchedulerMetrics
from pubflow.observers import ObserverHub, SchedulerLogger
from pubflow.publishing.engagement import EngagementPoller
from pubflow.publishing.publisher import ChannelPublisher
from pubflow.publishing.scheduler import PublicationScheduler
from pubflow.scheduling.tasks import TaskScheduler
from pubflow.workflows.engine import WorkflowEngine
from pubflow.workflows.executors import StepExecutor, StepExecutorRegistry
from pubflow.workflows.loader import load_workflows
from pubflow.workflows.models import StepType, WorkflowDefinition
from pubflow.workflows.registry import WorkflowRegistry
from pubflow.workflows.tracker import ExecutionTracker

logger = logging.getLogger(__name__)


class Pubflow:
    """Workflow and publication scheduling application.

    Usage::

        app = Pubflow(step_executors={"http_request": MyHttpExecutor()}, publisher=MyPublisher())
        app.load_workflows("workflows.yaml")
        app.tasks.schedule(ScheduledTask(name="digest", cron_expression="0 9 * * *", workflow_id="digest"))
        await app.start()
        ...
        await app.shutdown()
    """

    def __init__(
        self,
        config: PubflowConfig | None = None,
        *,
        step_executors: StepExecutorRegistry | dict[StepType | str, StepExecutor] | None = None,
        publisher: ChannelPublisher,
        clock: CronClock | None = None,
        observers: list[Any] | None = None,
        now: Callable[[], datetime] = utcnow,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or PubflowConfig()
        self._now = now
        self.clock = clock or CronClock(now=now)
        self.metrics = SchedulerMetrics()
        self.observers = ObserverHub([SchedulerLogger(), self.metrics, *(observers or [])])
        if isinstance(step_executors, StepExecutorRegistry):
            executors = step_executors
        else:
            executors = StepExecutorRegistry(step_executors)
        self.workflows = WorkflowRegistry()
        self.tracker = ExecutionTracker(now=now)
        self.engine = WorkflowEngine(
            self.config.workflows,
            tracker=self.tracker,
            executors=executors,
            registry=self.workflows,
            observers=self.observers,
            sleeper=sleeper,
            now=now,
        )
        self.tasks = TaskScheduler(
            self.config.workflows,
            clock=self.clock,
            engine=self.engine,
            observers=self.observers,
            now=now,
        )
        self.publications = PublicationScheduler(
            self.config.publishing,
            publisher=publisher,
            clock=self.clock,
            observers=self.observers,
            sleeper=sleeper,
            now=now,
        )
        self.engagement = EngagementPoller(
            self.config.publishing,
            publisher=publisher,
            scheduler=self.publications,
            now=now,
        )
        self._health_task: asyncio.Task[None] | None = None
        self._started = False

    @classmethod
    def from_config(cls, config_path: str | None = None, **kwargs: Any) -> Pubflow:
        """Build an app from ConfigManager and follow its hot reloads."""
        manager = ConfigManager.load(config_path=config_path)
        app = cls(manager.get(), **kwargs)
        manager.on_change(lambda _old, new: app.apply_config(new))
        return app

    def apply_config(self, config: PubflowConfig) -> None:
        self.config = config
        self.engine.update_config(config.workflows)
        self.tasks.update_config(config.workflows)
        self.publications.update_config(config.publishing)
        self.engagement.update_config(config.publishing)
        logger.info("Applied configuration update")

    def register_workflow(self, workflow: WorkflowDefinition) -> None:
        self.workflows.register(workflow)

    def load_workflows(self, path: str | Path) -> list[WorkflowDefinition]:
        return load_workflows(path, self.workflows)

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start deferred triggers plus the health-check and engagement loops."""
        if self._started:
            return
        started = self.clock.activate()
        self._health_task = asyncio.create_task(self._health_check_loop(), name="pubflow-health")
        await self.engagement.start()
        self._started = True
        logger.info("Pubflow started deferred_triggers=%d", started)

    async def shutdown(self) -> None:
        """Stop triggers and loops and cancel running executions."""
        if self._health_task is not None:
            self._health_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._health_task
            self._health_task = None
        await self.engagement.stop()
        self.tasks.shutdown()
        self.publications.shutdown()
        cancelled = await self.engine.shutdown()
        await self.clock.shutdown()
        self._started = False
        logger.info("Pubflow shut down cancelled_executions=%d", cancelled)

    def run_health_check(self, now: datetime | None = None) -> dict[str, Any]:
        """Purge old executions, sweep publications and log a stats line."""
        moment = now or self._now()
        purged = self.tracker.purge_older_than(
            timedelta(hours=self.config.workflows.execution_retention_hours), now=moment
        )
        report = self.publications.sweep(moment)
        stats = self.tracker.stats()
        logger.info(
            "health_check executions_total=%d running=%d purged=%d overdue_publications=%d evicted_publications=%d",
            stats.total,
            stats.running,
            purged,
            len(report.overdue),
            report.evicted,
        )
        return {"purged": purged, "overdue": report.overdue, "evicted": report.evicted}

    def health_status(self) -> dict[str, Any]:
        """Return app-level health summary."""
        tasks = self.tasks.list_tasks()
        return {
            "started": self._started,
            "executions": self.tracker.snapshot(),
            "tasks": {
                "total": len(tasks),
                "enabled": sum(1 for task in tasks if task.enabled),
            },
            "publications": self.publications.counts(),
            "engagement_polling": self.engagement.running,
            "workflows_registered": len(self.workflows),
            "metrics": self.metrics.snapshot(),
        }

    async def _health_check_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.workflows.health_check_interval_seconds)
            try:
                self.run_health_check()
            except Exception:
                logger.exception("Health check failed")
