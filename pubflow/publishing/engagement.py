"""Engagement polling for published content."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from pubflow.clock import utcnow
from pubflow.config.models import PublishingConfig
from pubflow.errors import PublicationNotPublishedError
from pubflow.publishing.models import EngagementMetrics, PublicationStatus
from pubflow.publishing.publisher import ChannelPublisher
from pubflow.publishing.scheduler import PublicationScheduler

logger = logging.getLogger(__name__)


class EngagementPoller:
    """Fetch per-channel engagement and aggregate it per publication."""

    def __init__(
        self,
        config: PublishingConfig | None = None,
        *,
        publisher: ChannelPublisher,
        scheduler: PublicationScheduler,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or PublishingConfig()
        self._publisher = publisher
        self._scheduler = scheduler
        self._now = now
        self._latest: dict[str, EngagementMetrics] = {}
        self._task: asyncio.Task[None] | None = None

    def update_config(self, config: PublishingConfig) -> None:
        self._config = config

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def track_engagement(self, publication_id: str) -> EngagementMetrics:
        """Return a snapshot for a published publication.

        Raises NotFoundError for unknown ids and PublicationNotPublishedError
        unless the publication is published. Snapshots younger than
        ``engagement_cache_ttl_seconds`` are served from cache.
        """
        publication = self._scheduler.status(publication_id)
        if publication.status != PublicationStatus.PUBLISHED:
            raise PublicationNotPublishedError(publication_id, publication.status.value)

        ttl = self._config.engagement_cache_ttl_seconds
        cached = self._latest.get(publication_id)
        if ttl > 0 and cached is not None and self._now() - cached.last_updated < timedelta(seconds=ttl):
            return cached

        per_channel: dict[str, EngagementMetrics] = {}
        for channel in publication.channels:
            result = publication.results.get(channel.id)
            if result is None or not result.success or not result.post_id:
                continue
            try:
                per_channel[channel.id] = await self._publisher.fetch_engagement(channel, result.post_id)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "engagement_fetch_failed publication_id=%s channel_id=%s error=%s",
                    publication_id,
                    channel.id,
                    exc,
                )
        metrics = EngagementMetrics.aggregate(per_channel, at=self._now())
        self._latest[publication_id] = metrics
        return metrics

    def latest(self, publication_id: str) -> EngagementMetrics | None:
        return self._latest.get(publication_id)

    async def refresh_all(self) -> int:
        """Refresh every published publication; returns how many were refreshed."""
        refreshed = 0
        live: set[str] = set()
        for publication in self._scheduler.list_publications(PublicationStatus.PUBLISHED):
            live.add(publication.id)
            try:
                await self.track_engagement(publication.id)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("engagement_refresh_failed publication_id=%s error=%s", publication.id, exc)
                continue
            refreshed += 1
        for publication_id in list(self._latest):
            if publication_id not in live:
                del self._latest[publication_id]
        return refreshed

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._poll_loop(), name="pubflow-engagement")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.engagement_tracking_interval_seconds)
            refreshed = await self.refresh_all()
            logger.debug("engagement_refresh refreshed=%d", refreshed)
