"""Configuration models for pubflow."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


class WorkflowsConfig(BaseModel):
    """Workflow engine and task scheduler configuration."""

    max_concurrent_workflows: int = Field(default=10, ge=1)
    default_timeout_seconds: float | None = Field(default=300.0, gt=0)
    retry_attempts: int = Field(default=3, ge=0)
    retry_delay_seconds: float = Field(default=5.0, ge=0)
    retry_backoff: Literal["fixed", "exponential"] = Field(default="fixed")
    max_retry_delay_seconds: float = Field(default=3600.0, ge=0)
    scheduler_enabled: bool = Field(default=True)
    health_check_interval_seconds: float = Field(default=60.0, gt=0)
    execution_retention_hours: float = Field(default=24.0, gt=0)
    task_failure_threshold: int = Field(default=5, ge=1)


class PlatformRateLimit(BaseModel):
    """Posting limits for one platform."""

    posts_per_hour: int = Field(default=10, ge=0)
    posts_per_day: int = Field(default=50, ge=0)


class PublishingConfig(BaseModel):
    """Publication scheduler and engagement poller configuration."""

    max_concurrent_publications: int = Field(default=5, ge=1)
    retry_attempts: int = Field(default=2, ge=0)
    retry_delay_seconds: float = Field(default=2.0, ge=0)
    enabled_platforms: list[str] = Field(default_factory=list)
    default_timezone: str = Field(default="UTC")
    rate_limits: dict[str, PlatformRateLimit] = Field(default_factory=dict)
    engagement_tracking_interval_seconds: float = Field(default=3600.0, gt=0)
    engagement_cache_ttl_seconds: float = Field(default=0.0, ge=0)
    publication_retention_days: float = Field(default=7.0, gt=0)


class PubflowConfig(BaseSettings):
    """Root configuration model for pubflow."""

    workflows: WorkflowsConfig = Field(default_factory=WorkflowsConfig)
    publishing: PublishingConfig = Field(default_factory=PublishingConfig)

    model_config = SettingsConfigDict(
        env_prefix="PUBFLOW_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Constructor values carry the YAML layer, which PUBFLOW_* variables override.
        return (env_settings, init_settings)
