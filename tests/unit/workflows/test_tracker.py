"""Tests for ExecutionTracker bookkeeping."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pubflow.errors import ConcurrencyLimitExceededError, InvalidStateTransitionError, NotFoundError
from pubflow.workflows.models import ExecutionStatus, WorkflowExecution
from pubflow.workflows.tracker import ESTIMATED_RUNNING_PROGRESS, ExecutionTracker

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _tracker() -> ExecutionTracker:
    return ExecutionTracker(now=lambda: NOW)


def _execution(execution_id: str, **kwargs) -> WorkflowExecution:  # type: ignore[no-untyped-def]
    kwargs.setdefault("start_time", NOW - timedelta(minutes=1))
    return WorkflowExecution(id=execution_id, workflow_id="wf", **kwargs)


def _finished(tracker: ExecutionTracker, execution_id: str, status: ExecutionStatus, at: datetime) -> None:
    tracker.register(_execution(execution_id, start_time=at - timedelta(seconds=2)))
    tracker.transition(execution_id, ExecutionStatus.RUNNING)
    tracker.transition(execution_id, status, at=at)


class TestTransitions:
    def test_forward_path_sets_end_time(self) -> None:
        tracker = _tracker()
        tracker.register(_execution("e1"))
        tracker.transition("e1", ExecutionStatus.RUNNING)
        record = tracker.transition("e1", ExecutionStatus.COMPLETED)
        assert record.end_time == NOW

    def test_backward_transition_rejected(self) -> None:
        tracker = _tracker()
        _finished(tracker, "e1", ExecutionStatus.COMPLETED, NOW)
        with pytest.raises(InvalidStateTransitionError):
            tracker.transition("e1", ExecutionStatus.RUNNING)

    def test_duplicate_registration_rejected(self) -> None:
        tracker = _tracker()
        tracker.register(_execution("e1"))
        with pytest.raises(InvalidStateTransitionError):
            tracker.register(_execution("e1"))

    def test_unknown_id_not_found(self) -> None:
        with pytest.raises(NotFoundError):
            _tracker().get("missing")


class TestAdmit:
    def test_counts_pending_and_running(self) -> None:
        tracker = _tracker()
        tracker.admit(_execution("e1"), limit=2)
        tracker.transition("e1", ExecutionStatus.RUNNING)
        tracker.admit(_execution("e2"), limit=2)
        with pytest.raises(ConcurrencyLimitExceededError) as exc_info:
            tracker.admit(_execution("e3"), limit=2)
        assert exc_info.value.limit == 2

    def test_terminal_executions_free_slots(self) -> None:
        tracker = _tracker()
        _finished(tracker, "done", ExecutionStatus.FAILED, NOW)
        tracker.admit(_execution("e1"), limit=1)
        assert tracker.count(ExecutionStatus.PENDING) == 1


class TestProgress:
    def test_progress_by_status(self) -> None:
        tracker = _tracker()
        _finished(tracker, "ok", ExecutionStatus.COMPLETED, NOW)
        _finished(tracker, "bad", ExecutionStatus.FAILED, NOW)
        tracker.register(_execution("run"))
        tracker.transition("run", ExecutionStatus.RUNNING)

        assert tracker.get("ok").progress == 100.0
        assert tracker.get("bad").progress == 0.0
        view = tracker.get("run")
        assert view.progress == ESTIMATED_RUNNING_PROGRESS
        assert view.progress_is_estimate is True

    def test_reported_progress_is_exact(self) -> None:
        tracker = _tracker()
        tracker.register(_execution("run"))
        tracker.transition("run", ExecutionStatus.RUNNING)
        tracker.report_progress("run", 1, 4)
        view = tracker.get("run")
        assert view.progress == 25.0
        assert view.progress_is_estimate is False


class TestStatsAndPurge:
    def test_stats_counts_and_average(self) -> None:
        tracker = _tracker()
        _finished(tracker, "a", ExecutionStatus.COMPLETED, NOW)
        _finished(tracker, "b", ExecutionStatus.COMPLETED, NOW)
        _finished(tracker, "c", ExecutionStatus.FAILED, NOW)
        stats = tracker.stats()
        assert (stats.total, stats.completed, stats.failed, stats.running) == (3, 2, 1, 0)
        assert stats.average_duration_ms == pytest.approx(2000.0)

    def test_purge_respects_retention_window(self) -> None:
        tracker = _tracker()
        _finished(tracker, "old", ExecutionStatus.COMPLETED, NOW - timedelta(hours=25))
        _finished(tracker, "recent", ExecutionStatus.COMPLETED, NOW - timedelta(hours=1))

        purged = tracker.purge_older_than(timedelta(hours=24))

        assert purged == 1
        assert tracker.stats().total == 1
        tracker.get("recent")
        with pytest.raises(NotFoundError):
            tracker.get("old")

    def test_purge_never_removes_active_records(self) -> None:
        tracker = _tracker()
        tracker.register(_execution("pending", start_time=NOW - timedelta(days=3)))
        tracker.register(_execution("running", start_time=NOW - timedelta(days=3)))
        tracker.transition("running", ExecutionStatus.RUNNING)
        assert tracker.purge_older_than(timedelta(hours=1)) == 0
        assert tracker.stats().total == 2

    def test_cancel_running_marks_active(self) -> None:
        tracker = _tracker()
        tracker.register(_execution("p"))
        tracker.register(_execution("r"))
        tracker.transition("r", ExecutionStatus.RUNNING)
        _finished(tracker, "done", ExecutionStatus.COMPLETED, NOW)

        cancelled = tracker.cancel_running(at=NOW)

        assert sorted(item.id for item in cancelled) == ["p", "r"]
        assert tracker.get("r").status is ExecutionStatus.CANCELLED
        assert tracker.get("r").end_time == NOW
        assert tracker.get("done").status is ExecutionStatus.COMPLETED
