"""Scheduled multi-channel publishing and engagement polling."""

from pubflow.publishing.adaptation import PLATFORM_LIMITS, adapt_content
from pubflow.publishing.engagement import EngagementPoller
from pubflow.publishing.models import (
    Channel,
    ChannelSettings,
    EngagementMetrics,
    FanoutResult,
    PublicationResult,
    PublicationStatus,
    PublishableContent,
    ScheduledPublication,
)
from pubflow.publishing.publisher import ChannelPublisher
from pubflow.publishing.rate_limit import PlatformRateLimiter
from pubflow.publishing.scheduler import PublicationScheduler, SweepReport

__all__ = [
    "PLATFORM_LIMITS",
    "Channel",
    "ChannelPublisher",
    "ChannelSettings",
    "EngagementMetrics",
    "EngagementPoller",
    "FanoutResult",
    "PlatformRateLimiter",
    "PublicationResult",
    "PublicationScheduler",
    "PublicationStatus",
    "PublishableContent",
    "ScheduledPublication",
    "SweepReport",
    "adapt_content",
]
