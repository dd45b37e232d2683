"""Structured results returned by scheduling operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class ScheduleResult:
    """Outcome of a scheduling request; failures are reported, not raised."""

    success: bool
    message: str
    error: str | None = None
    task_id: str | None = None
    publication_id: str | None = None
    next_run: datetime | None = None
    scheduled_time: datetime | None = None
    channels: list[str] = field(default_factory=list)

    @classmethod
    def failure(cls, message: str, error: str | None = None, **kwargs: object) -> ScheduleResult:
        return cls(success=False, message=message, error=error or message, **kwargs)  # type: ignore[arg-type]
