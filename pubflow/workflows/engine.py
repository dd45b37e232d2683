"""Workflow execution engine: sequential steps, retries, timeouts, shutdown."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from pubflow.clock import utcnow
from pubflow.config.models import WorkflowsConfig
from pubflow.errors import (
    ExecutionTimeoutError,
    ExecutionCancelledError,
    StepExecutionError,
    StepTimeoutError,
    ValidationError,
)
from pubflow.observers import ObserverHub
from pubflow.workflows.executors import StepExecutorRegistry
from pubflow.workflows.models import (
    ExecutionStatus,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowResult,
    WorkflowStep,
)
from pubflow.workflows.registry import WorkflowRegistry
from pubflow.workflows.tracker import ExecutionTracker

logger = logging.getLogger(__name__)

# Failures that count against a workflow's retry budget.
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (StepExecutionError, ExecutionTimeoutError)


class RetryStrategy:
    """Retry decision and delay helpers for workflow runs."""

    @staticmethod
    def should_retry(*, error: Exception, retry_count: int, max_retries: int) -> bool:
        if retry_count >= max_retries:
            return False
        return isinstance(error, RETRYABLE_ERRORS)

    @staticmethod
    def calculate_delay(
        retry_count: int,
        *,
        base_delay_seconds: float,
        backoff: str = "fixed",
        max_delay_seconds: float = 3600.0,
    ) -> float:
        """Fixed or bounded exponential backoff delay in seconds."""
        base = max(0.0, float(base_delay_seconds))
        delay = base * (2 ** max(0, int(retry_count))) if backoff == "exponential" else base
        return min(delay, max(0.0, float(max_delay_seconds)))


class WorkflowEngine:
    """Run workflow definitions through their step executors.

    Every attempt gets its own execution record admitted through the tracker's
    concurrency gate. Attempts run as separate tasks so ``shutdown`` can cancel
    them without cancelling the callers awaiting ``execute``.
    """

    def __init__(
        self,
        config: WorkflowsConfig | None = None,
        *,
        tracker: ExecutionTracker | None = None,
        executors: StepExecutorRegistry | None = None,
        registry: WorkflowRegistry | None = None,
        observers: ObserverHub | None = None,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or WorkflowsConfig()
        self._now = now
        self._tracker = tracker or ExecutionTracker(now=now)
        self._executors = executors or StepExecutorRegistry()
        self._registry = registry or WorkflowRegistry()
        self._observers = observers or ObserverHub()
        self._sleeper = sleeper
        self._tasks: dict[str, asyncio.Task[WorkflowResult]] = {}
        self._closed = False

    @property
    def config(self) -> WorkflowsConfig:
        return self._config

    def update_config(self, config: WorkflowsConfig) -> None:
        self._config = config

    @property
    def tracker(self) -> ExecutionTracker:
        return self._tracker

    @property
    def registry(self) -> WorkflowRegistry:
        return self._registry

    @property
    def executors(self) -> StepExecutorRegistry:
        return self._executors

    @property
    def is_shut_down(self) -> bool:
        return self._closed

    async def execute_by_id(
        self,
        workflow_id: str,
        context: dict[str, Any] | None = None,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> WorkflowResult:
        """Resolve *workflow_id* through the registry and execute it."""
        return await self.execute(self._registry.get(workflow_id), context, metadata=metadata)

    async def execute(
        self,
        workflow: WorkflowDefinition,
        context: dict[str, Any] | None = None,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> WorkflowResult:
        """Run *workflow* to completion, retrying failed runs per policy.

        Raises ConcurrencyLimitExceededError when the cap is reached, the last
        StepExecutionError/ExecutionTimeoutError once retries are exhausted, and
        ExecutionCancelledError (an InvalidStateTransitionError) after shutdown.
        """
        if not workflow.steps:
            raise ValidationError(f"Workflow '{workflow.id}' has no steps")
        max_retries, base_delay = self._retry_settings(workflow)
        root_id: str | None = None
        attempt = 0
        while True:
            self._ensure_open()
            execution = WorkflowExecution(
                id=str(uuid.uuid4()),
                workflow_id=workflow.id,
                start_time=self._now(),
                retry_count=attempt,
                metadata=dict(metadata or {}),
                total_steps=len(workflow.steps),
            )
            if root_id is not None:
                execution.metadata["retry_of"] = root_id
            self._tracker.admit(execution, self._config.max_concurrent_workflows)
            root_id = root_id or execution.id
            try:
                return await self._spawn(workflow, execution, dict(context or {}))
            except RETRYABLE_ERRORS as exc:
                if self._closed or not RetryStrategy.should_retry(
                    error=exc, retry_count=attempt, max_retries=max_retries
                ):
                    raise
                delay = RetryStrategy.calculate_delay(
                    attempt,
                    base_delay_seconds=base_delay,
                    backoff=self._config.retry_backoff,
                    max_delay_seconds=self._config.max_retry_delay_seconds,
                )
                logger.warning(
                    "workflow_execution_retry workflow_id=%s execution_id=%s retry_count=%d delay_seconds=%.3f error=%s",
                    workflow.id,
                    execution.id,
                    attempt + 1,
                    delay,
                    exc,
                )
                if delay > 0:
                    await self._sleeper(delay)
                attempt += 1

    async def shutdown(self) -> int:
        """Cancel running executions and refuse further work; returns the cancelled count."""
        self._closed = True
        cancelled = self._tracker.cancel_running(at=self._now())
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for execution in cancelled:
            self._observers.emit("execution_cancelled", execution)
        logger.info("workflow_engine_shutdown cancelled=%d", len(cancelled))
        return len(cancelled)

    # ------------------------------------------------------------------
    # Attempt execution
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise ExecutionCancelledError("Workflow engine has been shut down")

    async def _spawn(
        self,
        workflow: WorkflowDefinition,
        execution: WorkflowExecution,
        context: dict[str, Any],
    ) -> WorkflowResult:
        task = asyncio.get_running_loop().create_task(
            self._run_attempt(workflow, execution, context),
            name=f"pubflow-execution:{execution.id}",
        )
        self._tasks[execution.id] = task
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            raise ExecutionCancelledError(f"Execution {execution.id} was cancelled") from None
        finally:
            self._tasks.pop(execution.id, None)

    async def _run_attempt(
        self,
        workflow: WorkflowDefinition,
        execution: WorkflowExecution,
        context: dict[str, Any],
    ) -> WorkflowResult:
        self._tracker.transition(execution.id, ExecutionStatus.RUNNING)
        self._observers.emit("execution_started", execution)
        timeout = self._workflow_timeout(workflow)
        try:
            if timeout is None:
                step_results = await self._run_steps(workflow, execution, context)
            else:
                try:
                    step_results = await asyncio.wait_for(
                        self._run_steps(workflow, execution, context), timeout
                    )
                except ExecutionTimeoutError:
                    raise
                except TimeoutError as exc:
                    raise ExecutionTimeoutError(
                        f"Workflow '{workflow.id}' timed out after {timeout:g}s",
                        timeout_seconds=timeout,
                    ) from exc
        except asyncio.CancelledError:
            if execution.status == ExecutionStatus.RUNNING:
                self._tracker.transition(execution.id, ExecutionStatus.CANCELLED)
                self._observers.emit("execution_cancelled", execution)
            raise
        except Exception as exc:
            self._fail(execution, exc)
            raise

        completed_at = self._now()
        result = WorkflowResult(
            success=True,
            workflow_id=workflow.id,
            execution_id=execution.id,
            step_results=step_results,
            context=context,
            completed_at=completed_at,
            duration_ms=execution.duration_ms(completed_at),
        )
        self._tracker.transition(execution.id, ExecutionStatus.COMPLETED, result=result, at=completed_at)
        self._observers.emit("execution_completed", execution)
        return result

    def _fail(self, execution: WorkflowExecution, exc: Exception) -> None:
        if execution.status != ExecutionStatus.RUNNING:
            return
        self._tracker.transition(execution.id, ExecutionStatus.FAILED, error=str(exc))
        self._observers.emit("execution_failed", execution)

    async def _run_steps(
        self,
        workflow: WorkflowDefinition,
        execution: WorkflowExecution,
        context: dict[str, Any],
    ) -> dict[str, Any]:
        step_results: dict[str, Any] = {}
        total = len(workflow.steps)
        self._tracker.report_progress(execution.id, 0, total)
        for index, step in enumerate(workflow.steps, start=1):
            logger.debug(
                "workflow_step_start execution_id=%s step_id=%s type=%s",
                execution.id,
                step.id,
                step.type.value,
            )
            try:
                outcome = await self._run_step(step, context)
            except (StepExecutionError, StepTimeoutError) as exc:
                if not step.continue_on_error:
                    raise
                logger.warning(
                    "workflow_step_failed_continue execution_id=%s step_id=%s error=%s",
                    execution.id,
                    step.id,
                    exc,
                )
                step_results[step.id] = {"error": str(exc)}
            else:
                step_results[step.id] = outcome
                if step.output_mapping:
                    context.update(step.output_mapping)
            self._tracker.report_progress(execution.id, index, total)
        return step_results

    async def _run_step(self, step: WorkflowStep, context: dict[str, Any]) -> Any:
        attempts = 1 + (step.retry.max_retries if step.retry else 0)
        delay = (step.retry.delay_ms / 1000) if step.retry else 0.0
        timeout = (step.timeout_ms / 1000) if step.timeout_ms else None
        for attempt in range(attempts):
            try:
                return await self._invoke_step(step, context, timeout)
            except (StepExecutionError, StepTimeoutError) as exc:
                if attempt + 1 >= attempts:
                    raise
                logger.debug("workflow_step_retry step_id=%s attempt=%d error=%s", step.id, attempt + 1, exc)
                if delay > 0:
                    await self._sleeper(delay)
        raise AssertionError("unreachable")

    async def _invoke_step(self, step: WorkflowStep, context: dict[str, Any], timeout: float | None) -> Any:
        try:
            executor = self._executors.get(step.type)
        except ValidationError as exc:
            raise StepExecutionError(step.id, str(exc)) from exc
        call = executor.execute(step.type, dict(step.config), context)
        try:
            if timeout is None:
                return await call
            return await asyncio.wait_for(call, timeout)
        except asyncio.CancelledError:
            raise
        except TimeoutError as exc:
            if timeout is None:
                raise StepExecutionError(step.id, str(exc) or "timed out") from exc
            raise StepTimeoutError(step.id, timeout_seconds=timeout) from exc
        except Exception as exc:
            raise StepExecutionError(step.id, str(exc) or type(exc).__name__) from exc

    def _retry_settings(self, workflow: WorkflowDefinition) -> tuple[int, float]:
        if workflow.retry is not None:
            return workflow.retry.max_retries, workflow.retry.delay_ms / 1000
        return self._config.retry_attempts, self._config.retry_delay_seconds

    def _workflow_timeout(self, workflow: WorkflowDefinition) -> float | None:
        if workflow.timeout_ms:
            return workflow.timeout_ms / 1000
        return self._config.default_timeout_seconds
