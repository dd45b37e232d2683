"""Tests for TaskScheduler scheduling, firing and auto-disable."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from pubflow.clock import CronClock
from pubflow.config.models import WorkflowsConfig
from pubflow.errors import InvalidStateTransitionError, NotFoundError, UnknownTaskError
from pubflow.observers import Observer, ObserverHub
from pubflow.scheduling.tasks import ScheduledTask, TaskScheduler
from pubflow.workflows.engine import WorkflowEngine
from pubflow.workflows.executors import CallableStepExecutor, StepExecutorRegistry
from pubflow.workflows.models import WorkflowDefinition

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _DisabledRecorder(Observer):
    def __init__(self) -> None:
        self.disabled: list[str] = []

    def on_task_disabled(self, task: ScheduledTask) -> None:
        self.disabled.append(task.id)


def _build(manual_time, fn=lambda c, ctx: "ok", **config: Any):  # type: ignore[no-untyped-def]
    cfg = WorkflowsConfig(retry_attempts=0, retry_delay_seconds=0, **config)
    clock = CronClock(now=manual_time.now, sleeper=manual_time.sleep)
    observers = ObserverHub()
    engine = WorkflowEngine(
        cfg,
        executors=StepExecutorRegistry({"agent_call": CallableStepExecutor(fn)}),
        observers=observers,
        now=manual_time.now,
    )
    engine.registry.register(
        WorkflowDefinition.from_dict({"id": "wf", "steps": [{"id": "a", "type": "agent_call"}]})
    )
    scheduler = TaskScheduler(cfg, clock=clock, engine=engine, observers=observers, now=manual_time.now)
    return scheduler, engine, clock, observers


def _task(**kwargs: Any) -> ScheduledTask:
    defaults: dict[str, Any] = {"name": "every-minute", "cron_expression": "* * * * *", "workflow_id": "wf"}
    defaults.update(kwargs)
    return ScheduledTask(**defaults)


def _always_fail(config: dict[str, Any], context: dict[str, Any]) -> None:
    raise RuntimeError("downstream unavailable")


# ---------------------------------------------------------------------------
# schedule / toggle / unschedule
# ---------------------------------------------------------------------------


class TestSchedule:
    async def test_schedule_computes_next_run(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        scheduler, _, clock, _ = _build(manual_time)
        result = scheduler.schedule(_task(id="t1"))

        assert result.success is True
        assert result.task_id == "t1"
        assert result.next_run == datetime(2026, 1, 1, 0, 1, tzinfo=timezone.utc)
        assert scheduler.get("t1").next_run == result.next_run
        assert len(clock.handles()) == 1
        await clock.shutdown()

    async def test_invalid_cron_rejected_without_trigger(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        scheduler, _, clock, _ = _build(manual_time)
        result = scheduler.schedule(_task(cron_expression="not-a-cron"))

        assert result.success is False
        assert "Invalid cron expression" in (result.error or "")
        assert clock.handles() == []
        assert scheduler.list_tasks() == []

    async def test_unknown_timezone_rejected(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        scheduler, _, clock, _ = _build(manual_time)
        result = scheduler.schedule(_task(timezone="Nowhere/City"))
        assert result.success is False
        assert clock.handles() == []

    async def test_duplicate_id_rejected(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        scheduler, _, clock, _ = _build(manual_time)
        assert scheduler.schedule(_task(id="t1")).success
        result = scheduler.schedule(_task(id="t1"))
        assert result.success is False
        assert "already scheduled" in result.message
        await clock.shutdown()

    async def test_scheduler_disabled(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        scheduler, _, clock, _ = _build(manual_time, scheduler_enabled=False)
        result = scheduler.schedule(_task())
        assert result.success is False
        assert result.message == "Scheduler is disabled"
        assert clock.handles() == []

    async def test_disabled_task_registered_but_not_started(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        scheduler, engine, clock, _ = _build(manual_time)
        scheduler.schedule(_task(id="t1", enabled=False))
        await manual_time.advance(120)

        assert scheduler.get("t1").next_run is None
        assert scheduler.get("t1").run_count == 0
        assert engine.tracker.stats().total == 0

        scheduler.toggle("t1", True)
        assert scheduler.get("t1").next_run == datetime(2026, 1, 1, 0, 3, tzinfo=timezone.utc)
        await manual_time.settle()
        await manual_time.advance(30)
        assert scheduler.get("t1").run_count == 1
        await clock.shutdown()

    async def test_toggle_off_clears_next_run(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        scheduler, _, clock, _ = _build(manual_time)
        scheduler.schedule(_task(id="t1"))
        task = scheduler.toggle("t1", False)
        assert task.enabled is False
        assert task.next_run is None
        await clock.shutdown()

    async def test_toggle_unknown_task(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        scheduler, _, _, _ = _build(manual_time)
        with pytest.raises(UnknownTaskError) as exc_info:
            scheduler.toggle("ghost", True)
        assert isinstance(exc_info.value, NotFoundError)
        assert isinstance(exc_info.value, InvalidStateTransitionError)

    async def test_unschedule_is_idempotent(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        scheduler, _, clock, _ = _build(manual_time)
        scheduler.schedule(_task(id="t1"))
        assert scheduler.unschedule("t1") is True
        assert scheduler.unschedule("t1") is False
        assert clock.handles() == []
        with pytest.raises(UnknownTaskError):
            scheduler.get("t1")


# ---------------------------------------------------------------------------
# Fire path
# ---------------------------------------------------------------------------


class TestFire:
    async def test_fire_runs_workflow_with_task_metadata(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        seen: list[dict[str, Any]] = []
        scheduler, engine, clock, _ = _build(manual_time, fn=lambda c, ctx: seen.append(dict(ctx)))
        scheduler.schedule(_task(id="t1", metadata={"workspace": "w1"}))
        await manual_time.settle()

        await manual_time.advance(30)

        task = scheduler.get("t1")
        assert task.run_count == 1
        assert task.last_run == datetime(2026, 1, 1, 0, 1, tzinfo=timezone.utc)
        assert task.next_run == datetime(2026, 1, 1, 0, 2, tzinfo=timezone.utc)
        assert seen == [{"workspace": "w1"}]
        [record] = engine.tracker.list_executions()
        assert record.metadata == {"task_id": "t1"}
        await clock.shutdown()

    async def test_missing_workflow_counts_as_failure(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        scheduler, _, clock, _ = _build(manual_time)
        scheduler.schedule(_task(id="t1", workflow_id="does-not-exist"))
        assert await scheduler.trigger_now("t1") is None
        task = scheduler.get("t1")
        assert task.failure_count == 1
        assert "does-not-exist" in (task.last_error or "")
        await clock.shutdown()

    async def test_five_failures_disable_task(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        scheduler, engine, clock, observers = _build(manual_time, fn=_always_fail)
        recorder = _DisabledRecorder()
        observers.add(recorder)
        scheduler.schedule(_task(id="t1"))
        await manual_time.settle()

        await manual_time.advance(30)
        for _ in range(4):
            await manual_time.advance(60)

        task = scheduler.get("t1")
        assert task.failure_count == 5
        assert task.enabled is False
        assert task.next_run is None
        assert recorder.disabled == ["t1"]
        assert engine.tracker.stats().failed == 5

        await manual_time.advance(60)
        assert engine.tracker.stats().total == 5
        assert task.run_count == 5
        await clock.shutdown()

    async def test_failure_count_not_reset_by_success(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        outcomes = iter([RuntimeError("x"), None])

        def _fn(config: dict[str, Any], context: dict[str, Any]) -> None:
            outcome = next(outcomes)
            if outcome is not None:
                raise outcome

        scheduler, _, clock, _ = _build(manual_time, fn=_fn)
        scheduler.schedule(_task(id="t1"))
        await scheduler.trigger_now("t1")
        await scheduler.trigger_now("t1")
        task = scheduler.get("t1")
        assert task.failure_count == 1
        assert task.last_error is None
        assert task.run_count == 2
        await clock.shutdown()

    async def test_reset_failures_is_explicit(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        scheduler, _, clock, _ = _build(manual_time, fn=_always_fail, task_failure_threshold=2)
        scheduler.schedule(_task(id="t1"))
        await scheduler.trigger_now("t1")
        await scheduler.trigger_now("t1")
        assert scheduler.get("t1").enabled is False

        with pytest.raises(InvalidStateTransitionError):
            await scheduler.trigger_now("t1")

        scheduler.reset_failures("t1")
        scheduler.toggle("t1", True)
        task = scheduler.get("t1")
        assert (task.failure_count, task.enabled) == (0, True)
        await clock.shutdown()

    async def test_shutdown_mid_run_is_not_a_failure(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        started = asyncio.Event()

        async def _hang(config: dict[str, Any], context: dict[str, Any]) -> None:
            started.set()
            await asyncio.Event().wait()

        scheduler, engine, clock, observers = _build(manual_time, fn=_hang, task_failure_threshold=1)
        recorder = _DisabledRecorder()
        observers.add(recorder)
        scheduler.schedule(_task(id="t1"))
        run = asyncio.create_task(scheduler.trigger_now("t1"))
        await started.wait()

        scheduler.shutdown()
        assert await engine.shutdown() == 1

        assert await run is None
        task = scheduler.get("t1")
        assert (task.run_count, task.failure_count, task.last_error) == (1, 0, None)
        assert task.enabled is True
        assert recorder.disabled == []
        await clock.shutdown()
