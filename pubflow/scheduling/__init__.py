"""Recurring task scheduling."""

from pubflow.scheduling.results import ScheduleResult
from pubflow.scheduling.tasks import ScheduledTask, TaskScheduler

__all__ = ["ScheduleResult", "ScheduledTask", "TaskScheduler"]
