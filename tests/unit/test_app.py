"""Tests for the Pubflow application object."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from pubflow import Pubflow, PubflowConfig
from pubflow.config import ConfigManager
from pubflow.config.models import PublishingConfig, WorkflowsConfig
from pubflow.publishing.models import Channel, EngagementMetrics, PublicationResult, PublishableContent
from pubflow.scheduling.tasks import ScheduledTask
from pubflow.workflows.executors import CallableStepExecutor
from pubflow.workflows.models import WorkflowDefinition


class _Publisher:
    async def publish(self, content: PublishableContent, channel: Channel) -> PublicationResult:
        return PublicationResult(success=True, platform=channel.platform, channel_id=channel.id, post_id="p1")

    async def fetch_engagement(self, channel: Channel, post_id: str) -> EngagementMetrics:
        return EngagementMetrics(impressions=10, engagements=1)


def _app(manual_time, **kwargs: Any) -> Pubflow:  # type: ignore[no-untyped-def]
    config = PubflowConfig(
        workflows=WorkflowsConfig(retry_attempts=0, retry_delay_seconds=0),
        publishing=PublishingConfig(retry_attempts=0),
    )
    app = Pubflow(
        config,
        step_executors={"agent_call": CallableStepExecutor(lambda cfg, ctx: {"ok": True})},
        publisher=_Publisher(),
        now=manual_time.now,
        sleeper=AsyncMock(),
        **kwargs,
    )
    app.register_workflow(WorkflowDefinition.from_dict({"id": "wf", "steps": [{"id": "s", "type": "agent_call"}]}))
    return app


class TestHealth:
    async def test_health_status_fresh_app(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        app = _app(manual_time)
        status = app.health_status()

        assert status["started"] is False
        assert status["executions"]["total"] == 0
        assert status["tasks"] == {"total": 0, "enabled": 0}
        assert status["publications"]["scheduled"] == 0
        assert status["engagement_polling"] is False
        assert status["workflows_registered"] == 1

    async def test_run_health_check_purges_by_retention(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        app = _app(manual_time)
        await app.engine.execute_by_id("wf")

        assert app.run_health_check(manual_time.now() + timedelta(hours=1))["purged"] == 0
        assert app.tracker.stats().total == 1

        report = app.run_health_check(manual_time.now() + timedelta(hours=25))
        assert report["purged"] == 1
        assert app.tracker.stats().total == 0

    async def test_health_status_counts_metrics(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        app = _app(manual_time)
        await app.engine.execute_by_id("wf")
        await app.publications.publish_now(
            PublishableContent(id="c", workspace_id="ws"), [Channel(id="a", platform="linkedin")]
        )

        metrics = app.health_status()["metrics"]
        assert metrics["executions"] == {"completed": 1}
        assert metrics["channel_publishes"] == {"linkedin:success": 1}


class TestLifecycle:
    async def test_start_and_shutdown(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        app = _app(manual_time)
        app.tasks.schedule(ScheduledTask(name="n", cron_expression="0 9 * * *", workflow_id="wf", id="t1"))

        await app.start()
        assert app.started is True
        assert app.health_status()["engagement_polling"] is True
        assert app.health_status()["tasks"] == {"total": 1, "enabled": 1}

        await app.shutdown()
        assert app.started is False
        assert app.engagement.running is False
        assert app.clock.handles() == []
        assert app.engine.is_shut_down is True

    async def test_start_is_idempotent(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        app = _app(manual_time)
        await app.start()
        await app.start()
        assert app.started is True
        await app.shutdown()

    async def test_extra_observers_receive_events(self, manual_time) -> None:  # type: ignore[no-untyped-def]
        seen: list[str] = []

        class _Recorder:
            def on_execution_completed(self, execution) -> None:  # type: ignore[no-untyped-def]
                seen.append(execution.workflow_id)

        app = _app(manual_time, observers=[_Recorder()])
        await app.engine.execute_by_id("wf")
        assert seen == ["wf"]


class TestConfig:
    async def test_from_config_follows_hot_reload(self, manual_time, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        path = tmp_path / "pubflow.yaml"
        path.write_text("workflows:\n  retry_attempts: 1\n  max_concurrent_workflows: 4\n", encoding="utf-8")

        app = Pubflow.from_config(str(path), publisher=_Publisher(), now=manual_time.now)
        assert app.engine.config.retry_attempts == 1
        assert app.engine.config.max_concurrent_workflows == 4

        path.write_text("workflows:\n  retry_attempts: 2\n  max_concurrent_workflows: 8\n", encoding="utf-8")
        result = ConfigManager.instance().reload()

        assert "workflows.retry_attempts" in result.applied
        assert "workflows.max_concurrent_workflows" in result.skipped
        assert app.engine.config.retry_attempts == 2
        assert app.engine.config.max_concurrent_workflows == 4

    async def test_load_workflows(self, manual_time, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        path = tmp_path / "workflows.yaml"
        path.write_text(
            "workflows:\n  - id: digest\n    name: Digest\n    steps:\n      - id: s1\n        type: agent_call\n",
            encoding="utf-8",
        )
        app = _app(manual_time)
        loaded = app.load_workflows(path)
        assert [workflow.id for workflow in loaded] == ["digest"]
        result = await app.engine.execute_by_id("digest")
        assert result.success is True

    def test_publisher_is_required(self) -> None:
        with pytest.raises(TypeError):
            Pubflow()  # type: ignore[call-arg]
