"""Channel publisher collaborator interface."""

from __future__ import annotations

from typing import Protocol

from pubflow.publishing.models import Channel, EngagementMetrics, PublicationResult, PublishableContent


class ChannelPublisher(Protocol):
    """Talks to one or more external platforms on behalf of the scheduler."""

    async def publish(self, content: PublishableContent, channel: Channel) -> PublicationResult: ...

    async def fetch_engagement(self, channel: Channel, post_id: str) -> EngagementMetrics: ...
