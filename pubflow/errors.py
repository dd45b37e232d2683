"""Error taxonomy for workflow execution and publication scheduling.

Scheduling calls report failures through structured results; everything else
raises one of the classes below.
"""

from __future__ import annotations


class PubflowError(Exception):
    """Base exception for all pubflow errors."""


class ValidationError(PubflowError, ValueError):
    """Raised when input is malformed (empty workflow, bad channel list, ...)."""


class InvalidCronExpressionError(ValidationError):
    """Raised when a cron expression cannot be parsed."""

    def __init__(self, expression: str) -> None:
        self.expression = expression
        super().__init__(f"Invalid cron expression: '{expression}'")


class ConcurrencyLimitExceededError(PubflowError):
    """Raised when the running-workflow cap is reached."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Maximum concurrent workflows limit reached: {limit}")


class InvalidStateTransitionError(PubflowError):
    """Raised when a lifecycle transition is not permitted."""


class ExecutionCancelledError(InvalidStateTransitionError):
    """Raised to callers whose execution was cancelled, or refused, by engine shutdown."""


class StepExecutionError(PubflowError):
    """Wraps a step executor failure."""

    def __init__(self, step_id: str, message: str) -> None:
        self.step_id = step_id
        super().__init__(f"Step '{step_id}' failed: {message}")


class ExecutionTimeoutError(PubflowError, TimeoutError):
    """Raised when a workflow run exceeds its timeout."""

    def __init__(self, message: str, *, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(message)


class StepTimeoutError(ExecutionTimeoutError):
    """Raised when a single step exceeds its timeout."""

    def __init__(self, step_id: str, *, timeout_seconds: float) -> None:
        self.step_id = step_id
        super().__init__(
            f"Step '{step_id}' timed out after {timeout_seconds:g}s",
            timeout_seconds=timeout_seconds,
        )


class NotFoundError(PubflowError, LookupError):
    """Raised for unknown execution, task, workflow or publication ids."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class UnknownTaskError(NotFoundError, InvalidStateTransitionError):
    """Raised when a scheduled task id is unknown."""

    def __init__(self, task_id: str) -> None:
        super().__init__("Scheduled task", task_id)


class PublicationNotPublishedError(PubflowError):
    """Raised when engagement is requested for an unpublished publication."""

    def __init__(self, publication_id: str, status: str) -> None:
        self.publication_id = publication_id
        self.status = status
        super().__init__(f"Publication '{publication_id}' is not published (status={status})")
