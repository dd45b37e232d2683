"""Clock/cron trigger: fires callbacks on cron schedules or at a single instant.

Every handle owns one asyncio timer task. A fire never runs the callback inside
the timer task; it is dispatched as its own task so a slow or hung job cannot
delay the next fire of any trigger.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter  # type: ignore[import-untyped]

from pubflow.errors import InvalidCronExpressionError, ValidationError

logger = logging.getLogger(__name__)

_UTC = timezone.utc

TriggerCallback = Callable[[], Awaitable[Any] | Any]


def utcnow() -> datetime:
    return datetime.now(_UTC)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=_UTC)
    return value


def resolve_timezone(name: str) -> ZoneInfo:
    """Return the ZoneInfo for *name*, raising ValidationError when unknown."""
    try:
        return ZoneInfo(str(name).strip() or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone: '{name}'") from exc


@dataclass
class TriggerHandle:
    """Registration of one callback with the clock."""

    id: str
    kind: str
    callback: TriggerCallback = field(repr=False)
    expression: str | None = None
    timezone: str = "UTC"
    fire_at: datetime | None = None
    next_fire_at: datetime | None = None
    last_fired_at: datetime | None = None
    fire_count: int = 0
    started: bool = False
    finished: bool = False


class CronClock:
    """In-process cron and one-shot timer driver built on asyncio and croniter."""

    def __init__(
        self,
        *,
        now: Callable[[], datetime] = utcnow,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._now = now
        self._sleeper = sleeper
        self._handles: dict[str, TriggerHandle] = {}
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._deferred: set[str] = set()
        self._inflight: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Cron helpers
    # ------------------------------------------------------------------

    @staticmethod
    def validate_expression(expression: str) -> bool:
        """Return True if *expression* is a valid 5-field cron expression."""
        if not isinstance(expression, str):
            return False
        if len(expression.split()) != 5:
            return False
        try:
            return bool(croniter.is_valid(expression))
        except Exception:
            return False

    @classmethod
    def next_fire_time(
        cls,
        expression: str,
        *,
        base: datetime | None = None,
        timezone: str = "UTC",
    ) -> datetime:
        """Return the first fire time strictly after *base*, in UTC."""
        if not cls.validate_expression(expression):
            raise InvalidCronExpressionError(expression)
        zone = resolve_timezone(timezone)
        local_base = ensure_aware(base or utcnow()).astimezone(zone)
        next_local = croniter(expression, local_base).get_next(datetime)
        return ensure_aware(next_local).astimezone(_UTC)

    @classmethod
    def upcoming(
        cls,
        expression: str,
        *,
        count: int = 5,
        base: datetime | None = None,
        timezone: str = "UTC",
    ) -> list[datetime]:
        """Return the next *count* fire times after *base*."""
        out: list[datetime] = []
        cursor = ensure_aware(base or utcnow())
        for _ in range(max(0, int(count))):
            cursor = cls.next_fire_time(expression, base=cursor, timezone=timezone)
            out.append(cursor)
        return out

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def schedule_recurring(
        self,
        expression: str,
        callback: TriggerCallback,
        *,
        timezone: str = "UTC",
        start: bool = True,
    ) -> TriggerHandle:
        """Register *callback* to fire on every cron match of *expression*."""
        if not self.validate_expression(expression):
            raise InvalidCronExpressionError(expression)
        resolve_timezone(timezone)
        handle = TriggerHandle(
            id=str(uuid.uuid4()),
            kind="recurring",
            callback=callback,
            expression=expression.strip(),
            timezone=timezone,
        )
        self._handles[handle.id] = handle
        if start:
            self.start(handle)
        return handle

    def schedule_once(self, instant: datetime, callback: TriggerCallback) -> TriggerHandle:
        """Register *callback* to fire once at *instant* (immediately if already past)."""
        if not isinstance(instant, datetime):
            raise ValidationError("instant must be a datetime")
        fire_at = ensure_aware(instant)
        handle = TriggerHandle(
            id=str(uuid.uuid4()),
            kind="once",
            callback=callback,
            fire_at=fire_at,
            next_fire_at=fire_at,
        )
        self._handles[handle.id] = handle
        self.start(handle)
        return handle

    def get(self, handle_id: str) -> TriggerHandle | None:
        return self._handles.get(handle_id)

    def handles(self) -> list[TriggerHandle]:
        return list(self._handles.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, handle: TriggerHandle) -> None:
        """Start the timer for *handle*; deferred until a loop runs if none is active."""
        if handle.finished or handle.id not in self._handles:
            return
        if handle.id in self._timers and not self._timers[handle.id].done():
            return
        handle.started = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deferred.add(handle.id)
            logger.debug("trigger_start_deferred handle_id=%s", handle.id)
            return
        runner = self._run_recurring(handle) if handle.kind == "recurring" else self._run_once(handle)
        self._timers[handle.id] = loop.create_task(runner, name=f"pubflow-timer:{handle.id}")

    def activate(self) -> int:
        """Start timers whose start was deferred; must run inside an event loop."""
        pending = list(self._deferred)
        self._deferred.clear()
        started = 0
        for handle_id in pending:
            handle = self._handles.get(handle_id)
            if handle is None or not handle.started:
                continue
            self.start(handle)
            started += 1
        return started

    def stop(self, handle: TriggerHandle) -> None:
        """Stop future fires of *handle*; in-flight callbacks keep running."""
        handle.started = False
        handle.next_fire_at = None
        self._deferred.discard(handle.id)
        timer = self._timers.pop(handle.id, None)
        if timer is not None and not timer.done():
            timer.cancel()

    def remove(self, handle: TriggerHandle) -> None:
        """Stop *handle* and forget it."""
        self.stop(handle)
        self._handles.pop(handle.id, None)

    async def shutdown(self) -> None:
        """Stop every timer and drop all handles."""
        for handle in list(self._handles.values()):
            self.stop(handle)
        timers = list(self._timers.values())
        for timer in timers:
            timer.cancel()
        for timer in timers:
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        self._timers.clear()
        self._handles.clear()

    # ------------------------------------------------------------------
    # Timer tasks
    # ------------------------------------------------------------------

    async def _sleep_until(self, target: datetime) -> None:
        while True:
            remaining = (target - self._now()).total_seconds()
            if remaining <= 0:
                return
            await self._sleeper(remaining)

    async def _run_recurring(self, handle: TriggerHandle) -> None:
        assert handle.expression is not None
        while handle.started:
            base = self._now()
            if handle.last_fired_at is not None and handle.last_fired_at > base:
                base = handle.last_fired_at
            next_at = self.next_fire_time(handle.expression, base=base, timezone=handle.timezone)
            handle.next_fire_at = next_at
            await self._sleep_until(next_at)
            handle.last_fired_at = next_at
            self._dispatch(handle)

    async def _run_once(self, handle: TriggerHandle) -> None:
        assert handle.fire_at is not None
        await self._sleep_until(handle.fire_at)
        handle.last_fired_at = handle.fire_at
        handle.next_fire_at = None
        handle.finished = True
        self._timers.pop(handle.id, None)
        self._dispatch(handle)

    def _dispatch(self, handle: TriggerHandle) -> None:
        handle.fire_count += 1
        logger.debug("trigger_fire handle_id=%s kind=%s count=%d", handle.id, handle.kind, handle.fire_count)
        task = asyncio.get_running_loop().create_task(
            self._invoke(handle),
            name=f"pubflow-fire:{handle.id}",
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    @staticmethod
    async def _invoke(handle: TriggerHandle) -> None:
        try:
            result = handle.callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Trigger callback failed handle_id=%s: %s", handle.id, exc)


