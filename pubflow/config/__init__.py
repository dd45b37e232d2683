"""Unified configuration system for pubflow."""

from pubflow.config.loader import ConfigLoadError, YAMLConfigLoader
from pubflow.config.manager import ConfigManager, ReloadResult
from pubflow.config.models import (
    PlatformRateLimit,
    PubflowConfig,
    PublishingConfig,
    WorkflowsConfig,
)

__all__ = [
    "ConfigLoadError",
    "ConfigManager",
    "PlatformRateLimit",
    "PubflowConfig",
    "PublishingConfig",
    "ReloadResult",
    "WorkflowsConfig",
    "YAMLConfigLoader",
]
