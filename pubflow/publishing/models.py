"""Publishing data model.

Channels and content arrive from callers and are validated pydantic models.
Publication records and per-channel outcomes are runtime state and are
dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pubflow.clock import utcnow


class ChannelSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    auto_post: bool = False
    default_hashtags: tuple[str, ...] = ()
    content_filters: tuple[str, ...] = ()


class Channel(BaseModel):
    """A configured account on an external platform."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    platform: str = Field(min_length=1)
    account_id: str = ""
    account_name: str = ""
    is_active: bool = True
    # Opaque blob owned by the secrets collaborator.
    credentials: dict[str, Any] = Field(default_factory=dict, repr=False, exclude=True)
    settings: ChannelSettings = Field(default_factory=ChannelSettings)


class PublishableContent(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    workspace_id: str = Field(min_length=1)
    title: str = ""
    body: str = ""
    media_urls: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)


class PublicationStatus(str, Enum):
    SCHEDULED = "scheduled"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (PublicationStatus.PUBLISHED, PublicationStatus.FAILED, PublicationStatus.CANCELLED)


PUBLICATION_TRANSITIONS: dict[PublicationStatus, frozenset[PublicationStatus]] = {
    PublicationStatus.SCHEDULED: frozenset({PublicationStatus.PUBLISHING, PublicationStatus.CANCELLED}),
    PublicationStatus.PUBLISHING: frozenset({PublicationStatus.PUBLISHED, PublicationStatus.FAILED}),
    PublicationStatus.PUBLISHED: frozenset(),
    PublicationStatus.FAILED: frozenset(),
    PublicationStatus.CANCELLED: frozenset(),
}


@dataclass
class PublicationResult:
    """Outcome of publishing to one channel."""

    success: bool
    platform: str
    channel_id: str
    post_id: str | None = None
    url: str | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class ScheduledPublication:
    """One-shot binding of content and channels to an instant."""

    id: str
    content: PublishableContent
    channels: list[Channel]
    scheduled_time: datetime
    status: PublicationStatus = PublicationStatus.SCHEDULED
    retry_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    published_at: datetime | None = None
    error: str | None = None
    results: dict[str, PublicationResult] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def content_id(self) -> str:
        return self.content.id

    @property
    def workspace_id(self) -> str:
        return self.content.workspace_id

    @property
    def channel_ids(self) -> list[str]:
        return [channel.id for channel in self.channels]


@dataclass
class FanoutResult:
    """Aggregate of a publish fan-out across channels."""

    success: bool
    total_channels: int
    successful_channels: int
    failed_channels: int
    results: dict[str, PublicationResult]
    message: str
    publication_id: str | None = None

    @classmethod
    def from_results(cls, results: dict[str, PublicationResult], *, publication_id: str | None = None) -> FanoutResult:
        succeeded = sum(1 for result in results.values() if result.success)
        total = len(results)
        return cls(
            success=succeeded > 0,
            total_channels=total,
            successful_channels=succeeded,
            failed_channels=total - succeeded,
            results=results,
            message=f"Published to {succeeded}/{total} channels",
            publication_id=publication_id,
        )


@dataclass
class EngagementMetrics:
    """Point-in-time engagement snapshot."""

    reach: int = 0
    impressions: int = 0
    engagements: int = 0
    clicks: int = 0
    shares: int = 0
    comments: int = 0
    likes: int = 0
    engagement_rate: float = 0.0
    platform_metrics: dict[str, EngagementMetrics] = field(default_factory=dict)
    last_updated: datetime = field(default_factory=utcnow)

    @staticmethod
    def rate(engagements: int, impressions: int) -> float:
        if impressions <= 0:
            return 0.0
        return round(engagements / impressions * 100, 4)

    @classmethod
    def aggregate(cls, per_channel: dict[str, EngagementMetrics], *, at: datetime | None = None) -> EngagementMetrics:
        """Sum per-channel snapshots into one, keeping them as the breakdown."""
        totals = {
            name: sum(getattr(item, name) for item in per_channel.values())
            for name in ("reach", "impressions", "engagements", "clicks", "shares", "comments", "likes")
        }
        return cls(
            **totals,
            engagement_rate=cls.rate(totals["engagements"], totals["impressions"]),
            platform_metrics=dict(per_channel),
            last_updated=at or utcnow(),
        )
