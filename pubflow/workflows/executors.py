"""Step executor interface and registry."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from pubflow.errors import ValidationError
from pubflow.workflows.models import StepType


class StepExecutor(Protocol):
    """Runs one kind of workflow step."""

    async def execute(
        self,
        step_type: StepType,
        config: dict[str, Any],
        context: dict[str, Any],
    ) -> Any: ...


class CallableStepExecutor:
    """Adapt a plain (sync or async) function into a StepExecutor."""

    def __init__(self, fn: Callable[[dict[str, Any], dict[str, Any]], Awaitable[Any] | Any]) -> None:
        self._fn = fn

    async def execute(self, step_type: StepType, config: dict[str, Any], context: dict[str, Any]) -> Any:  # noqa: ARG002
        result = self._fn(config, context)
        if inspect.isawaitable(result):
            result = await result
        return result


class DelayStepExecutor:
    """Sleep for ``config["duration_ms"]`` milliseconds (default 1000)."""

    def __init__(self, *, sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> None:
        self._sleeper = sleeper

    async def execute(self, step_type: StepType, config: dict[str, Any], context: dict[str, Any]) -> Any:  # noqa: ARG002
        raw = config.get("duration_ms", config.get("duration", 1000))
        if isinstance(raw, bool) or not isinstance(raw, int | float) or raw < 0:
            raise ValidationError(f"delay duration must be a non-negative number, got {raw!r}")
        await self._sleeper(float(raw) / 1000)
        return {"status": "completed", "delayed_ms": raw}


class StepExecutorRegistry:
    """Map step types to their executors."""

    def __init__(self, executors: dict[StepType | str, StepExecutor] | None = None) -> None:
        self._executors: dict[StepType, StepExecutor] = {StepType.DELAY: DelayStepExecutor()}
        for step_type, executor in (executors or {}).items():
            self.register(step_type, executor)

    def register(self, step_type: StepType | str, executor: StepExecutor) -> None:
        try:
            key = StepType(step_type)
        except ValueError:
            raise ValidationError(f"Unknown step type: {step_type}") from None
        self._executors[key] = executor

    def get(self, step_type: StepType | str) -> StepExecutor:
        """Return the executor for *step_type*, raising ValidationError when none is registered."""
        try:
            key = StepType(step_type)
        except ValueError:
            raise ValidationError(f"Unknown step type: {step_type}") from None
        executor = self._executors.get(key)
        if executor is None:
            raise ValidationError(f"No executor registered for step type: {key.value}")
        return executor

    def registered_types(self) -> list[StepType]:
        return sorted(self._executors, key=lambda t: t.value)
