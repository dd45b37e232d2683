"""Publication scheduler: one-shot fan-out of content to channels."""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from threading import Lock
from typing import Any

from pubflow.clock import CronClock, TriggerHandle, ensure_aware, resolve_timezone, utcnow
from pubflow.config.models import PublishingConfig
from pubflow.errors import InvalidStateTransitionError, NotFoundError, ValidationError
from pubflow.observers import ObserverHub
from pubflow.publishing.adaptation import adapt_content, blocked_term
from pubflow.publishing.models import (
    PUBLICATION_TRANSITIONS,
    Channel,
    FanoutResult,
    PublicationResult,
    PublicationStatus,
    PublishableContent,
    ScheduledPublication,
)
from pubflow.publishing.publisher import ChannelPublisher
from pubflow.publishing.rate_limit import PlatformRateLimiter
from pubflow.scheduling.results import ScheduleResult

logger = logging.getLogger(__name__)

# Scheduled publications are reported overdue only once they are this late.
OVERDUE_GRACE = timedelta(minutes=1)

RATE_LIMIT_ERROR = "rate limit exceeded"


@dataclass
class SweepReport:
    overdue: list[str] = field(default_factory=list)
    evicted: int = 0


class PublicationScheduler:
    """Schedule, fire, cancel and query publications.

    The publication map is guarded by a lock; status changes that race between
    a trigger fire and ``cancel`` are decided under it.
    """

    def __init__(
        self,
        config: PublishingConfig | None = None,
        *,
        publisher: ChannelPublisher,
        clock: CronClock,
        observers: ObserverHub | None = None,
        rate_limiter: PlatformRateLimiter | None = None,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or PublishingConfig()
        self._publisher = publisher
        self._clock = clock
        self._observers = observers or ObserverHub()
        self._rate_limiter = rate_limiter or PlatformRateLimiter(self._config.rate_limits, now=now)
        self._sleeper = sleeper
        self._now = now
        self._lock = Lock()
        self._publications: dict[str, ScheduledPublication] = {}
        self._handles: dict[str, TriggerHandle] = {}
        self._fanout_slots = asyncio.Semaphore(self._config.max_concurrent_publications)

    def update_config(self, config: PublishingConfig) -> None:
        self._config = config
        self._rate_limiter.update_limits(config.rate_limits)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_publication(
        self,
        content: PublishableContent,
        channels: list[Channel],
        at: datetime,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> ScheduleResult:
        """Register a one-shot publish of *content* to *channels* at *at*.

        Naive datetimes are read in the configured default timezone.
        """
        try:
            self._validate_channels(channels)
            scheduled_time = self._resolve_instant(at)
        except ValidationError as exc:
            return ScheduleResult.failure("Invalid publication request", str(exc))
        if scheduled_time <= self._now():
            return ScheduleResult.failure("Scheduled time must be in the future")

        publication = ScheduledPublication(
            id=str(uuid.uuid4()),
            content=content,
            channels=list(channels),
            scheduled_time=scheduled_time,
            created_at=self._now(),
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._publications[publication.id] = publication
        self._handles[publication.id] = self._clock.schedule_once(
            scheduled_time, functools.partial(self._fire, publication.id)
        )
        self._observers.emit("publication_scheduled", publication)
        return ScheduleResult(
            success=True,
            message="Publication scheduled successfully",
            publication_id=publication.id,
            scheduled_time=scheduled_time,
            channels=publication.channel_ids,
        )

    async def publish_now(self, content: PublishableContent, channels: list[Channel]) -> FanoutResult:
        """Fan *content* out to *channels* immediately, bypassing the clock."""
        self._validate_channels(channels)
        results, _ = await self._fanout(content, channels)
        outcome = FanoutResult.from_results(results)
        logger.info(
            "publish_now content_id=%s successful_channels=%d total_channels=%d",
            content.id,
            outcome.successful_channels,
            outcome.total_channels,
        )
        return outcome

    def cancel(self, publication_id: str) -> bool:
        """Cancel a still-scheduled publication; False once it has fired or ended."""
        with self._lock:
            publication = self._require(publication_id)
            try:
                self._transition(publication, PublicationStatus.CANCELLED)
            except InvalidStateTransitionError:
                logger.warning(
                    "publication_cancel_rejected publication_id=%s status=%s",
                    publication_id,
                    publication.status.value,
                )
                return False
        self._drop_trigger(publication_id)
        self._observers.emit("publication_cancelled", publication)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, publication_id: str) -> ScheduledPublication:
        with self._lock:
            return self._require(publication_id)

    def list_for_workspace(self, workspace_id: str) -> list[ScheduledPublication]:
        with self._lock:
            return [item for item in self._publications.values() if item.workspace_id == workspace_id]

    def list_publications(self, status: PublicationStatus | None = None) -> list[ScheduledPublication]:
        with self._lock:
            items = list(self._publications.values())
        if status is None:
            return items
        return [item for item in items if item.status == status]

    def counts(self) -> dict[str, int]:
        with self._lock:
            items = list(self._publications.values())
        out = {status.value: 0 for status in PublicationStatus}
        for item in items:
            out[item.status.value] += 1
        return out

    def sweep(self, now: datetime | None = None) -> SweepReport:
        """Warn about overdue publications and evict old published/failed ones."""
        moment = now or self._now()
        cutoff = moment - timedelta(days=self._config.publication_retention_days)
        with self._lock:
            overdue = [
                item
                for item in self._publications.values()
                if item.status == PublicationStatus.SCHEDULED and item.scheduled_time + OVERDUE_GRACE < moment
            ]
            stale = [
                publication_id
                for publication_id, item in self._publications.items()
                if item.status in (PublicationStatus.PUBLISHED, PublicationStatus.FAILED)
                and (item.published_at or item.created_at) < cutoff
            ]
            for publication_id in stale:
                del self._publications[publication_id]
        for item in overdue:
            logger.warning(
                "publication_overdue publication_id=%s scheduled_time=%s",
                item.id,
                item.scheduled_time.isoformat(),
            )
            self._observers.emit("publication_overdue", item)
        if stale:
            logger.debug("Evicted %d publications older than %s", len(stale), cutoff.isoformat())
        return SweepReport(overdue=[item.id for item in overdue], evicted=len(stale))

    def shutdown(self) -> None:
        """Stop every pending trigger; scheduled records stay queryable."""
        for publication_id in list(self._handles):
            self._drop_trigger(publication_id)

    # ------------------------------------------------------------------
    # Fire path
    # ------------------------------------------------------------------

    async def _fire(self, publication_id: str) -> None:
        with self._lock:
            publication = self._publications.get(publication_id)
            if publication is None or publication.status != PublicationStatus.SCHEDULED:
                return
            self._transition(publication, PublicationStatus.PUBLISHING)
        self._drop_trigger(publication_id)

        try:
            results, retries = await self._fanout(publication.content, publication.channels)
        except asyncio.CancelledError:
            logger.warning("publication_fanout_interrupted publication_id=%s", publication_id)
            self._finish(publication, {}, error="publication interrupted")
            raise
        except Exception as exc:
            logger.exception("publication_fanout_crashed publication_id=%s", publication_id)
            self._finish(publication, {}, error=str(exc))
            return
        publication.retry_count = retries
        self._finish(publication, results)

    def _finish(
        self,
        publication: ScheduledPublication,
        results: dict[str, PublicationResult],
        *,
        error: str | None = None,
    ) -> None:
        succeeded = any(result.success for result in results.values())
        with self._lock:
            self._transition(publication, PublicationStatus.PUBLISHED if succeeded else PublicationStatus.FAILED)
            publication.results = results
            publication.published_at = self._now()
            if not succeeded:
                publication.error = error or "; ".join(
                    f"{channel_id}: {result.error}" for channel_id, result in results.items()
                )
        event = "publication_published" if succeeded else "publication_failed"
        self._observers.emit(event, publication)

    async def _fanout(
        self, content: PublishableContent, channels: list[Channel]
    ) -> tuple[dict[str, PublicationResult], int]:
        async with self._fanout_slots:
            outcomes = await asyncio.gather(*(self._publish_channel(content, channel) for channel in channels))
        results: dict[str, PublicationResult] = {}
        retries = 0
        for channel, (result, channel_retries) in zip(channels, outcomes):
            results[channel.id] = result
            retries += channel_retries
        return results, retries

    async def _publish_channel(self, content: PublishableContent, channel: Channel) -> tuple[PublicationResult, int]:
        term = blocked_term(content, channel)
        if term is not None:
            return self._emit_result(self._failed(channel, f"blocked by content filter: {term}")), 0
        if not self._rate_limiter.try_acquire(channel.platform):
            logger.warning("channel_rate_limited channel_id=%s platform=%s", channel.id, channel.platform)
            return self._emit_result(self._failed(channel, RATE_LIMIT_ERROR)), 0

        adapted = adapt_content(content, channel)
        attempts = 1 + self._config.retry_attempts
        result = self._failed(channel, "not attempted")
        for attempt in range(attempts):
            try:
                result = self._own(await self._publisher.publish(adapted, channel), channel)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                result = self._failed(channel, str(exc) or type(exc).__name__)
            if result.success:
                return self._emit_result(result), attempt
            if attempt + 1 < attempts:
                logger.warning(
                    "channel_publish_retry channel_id=%s platform=%s attempt=%d error=%s",
                    channel.id,
                    channel.platform,
                    attempt + 1,
                    result.error,
                )
                if self._config.retry_delay_seconds > 0:
                    await self._sleeper(self._config.retry_delay_seconds)
        return self._emit_result(result), attempts - 1

    def _emit_result(self, result: PublicationResult) -> PublicationResult:
        self._observers.emit("channel_result", result)
        return result

    def _failed(self, channel: Channel, error: str) -> PublicationResult:
        return PublicationResult(
            success=False,
            platform=channel.platform,
            channel_id=channel.id,
            error=error,
            timestamp=self._now(),
        )

    @staticmethod
    def _own(result: PublicationResult, channel: Channel) -> PublicationResult:
        """Pin a publisher result to the channel it was requested for."""
        if result.channel_id == channel.id and result.platform == channel.platform:
            return result
        return dataclasses.replace(result, channel_id=channel.id, platform=channel.platform)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_channels(self, channels: list[Channel]) -> None:
        if not channels:
            raise ValidationError("At least one channel is required")
        seen: set[str] = set()
        enabled = {platform.lower() for platform in self._config.enabled_platforms}
        for channel in channels:
            if channel.id in seen:
                raise ValidationError(f"Duplicate channel: {channel.id}")
            seen.add(channel.id)
            if not channel.is_active:
                raise ValidationError(f"Channel is inactive: {channel.id}")
            if enabled and channel.platform.lower() not in enabled:
                raise ValidationError(f"Platform not enabled: {channel.platform}")

    def _resolve_instant(self, at: datetime) -> datetime:
        if not isinstance(at, datetime):
            raise ValidationError("Scheduled time must be a datetime")
        if at.tzinfo is None:
            at = at.replace(tzinfo=resolve_timezone(self._config.default_timezone))
        return ensure_aware(at)

    def _drop_trigger(self, publication_id: str) -> None:
        handle = self._handles.pop(publication_id, None)
        if handle is not None:
            self._clock.remove(handle)

    @staticmethod
    def _transition(publication: ScheduledPublication, status: PublicationStatus) -> None:
        """Move *publication* to *status*; callers hold the lock."""
        if status not in PUBLICATION_TRANSITIONS[publication.status]:
            raise InvalidStateTransitionError(
                f"Publication {publication.id} cannot move from {publication.status.value} to {status.value}"
            )
        publication.status = status

    def _require(self, publication_id: str) -> ScheduledPublication:
        publication = self._publications.get(publication_id)
        if publication is None:
            raise NotFoundError("Publication", publication_id)
        return publication
