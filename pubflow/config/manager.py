"""Process-wide configuration access with listener notification and hot reload."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, ClassVar

from pubflow.config.loader import YAMLConfigLoader
from pubflow.config.models import PubflowConfig

logger = logging.getLogger(__name__)

ConfigListener = Callable[[PubflowConfig, PubflowConfig], None]

# Fields that running components re-read on every use; everything else needs a restart.
HOT_RELOADABLE: dict[str, frozenset[str]] = {
    "workflows": frozenset(
        {
            "retry_attempts",
            "retry_delay_seconds",
            "retry_backoff",
            "max_retry_delay_seconds",
            "health_check_interval_seconds",
            "task_failure_threshold",
        }
    ),
    "publishing": frozenset(
        {
            "retry_attempts",
            "retry_delay_seconds",
            "rate_limits",
            "engagement_tracking_interval_seconds",
            "engagement_cache_ttl_seconds",
        }
    ),
}


def _merge_sections(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _merge_sections(current, value)
        else:
            merged[key] = value
    return merged


def build_config(config_path: str | None = None, overrides: dict[str, Any] | None = None) -> PubflowConfig:
    """Defaults < YAML < ``PUBFLOW_*`` environment < *overrides*.

    The environment layer is bound by pydantic-settings when the YAML values are
    passed to ``PubflowConfig``; runtime overrides are validated per section on
    top of that.
    """
    config = PubflowConfig(**YAMLConfigLoader.load_dict(config_path))
    if not overrides:
        return config
    merged = _merge_sections(config.model_dump(), overrides)
    return config.model_copy(
        update={
            name: type(getattr(config, name)).model_validate(merged[name])
            for name in type(config).model_fields
        }
    )


@dataclass(frozen=True)
class ReloadResult:
    """Changed ``section.field`` paths split by whether they were applied."""

    applied: dict[str, Any] = field(default_factory=dict)
    skipped: dict[str, Any] = field(default_factory=dict)


class ConfigManager:
    """Singleton holder of the current ``PubflowConfig``."""

    _instance: ClassVar[ConfigManager | None] = None
    _class_lock: ClassVar[Lock] = Lock()

    def __init__(self) -> None:
        self._lock = Lock()
        self._config = PubflowConfig()
        self._config_path: str | None = None
        self._overrides: dict[str, Any] = {}
        self._listeners: list[ConfigListener] = []

    @classmethod
    def instance(cls) -> ConfigManager:
        with cls._class_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def _reset_for_tests(cls) -> None:
        with cls._class_lock:
            cls._instance = None

    @classmethod
    def load(cls, config_path: str | None = None, overrides: dict[str, Any] | None = None) -> ConfigManager:
        """Rebuild the configuration from scratch and notify listeners."""
        manager = cls.instance()
        config = build_config(config_path, overrides)
        with manager._lock:
            previous = manager._config
            manager._config = config
            manager._config_path = config_path
            manager._overrides = dict(overrides or {})
            listeners = list(manager._listeners)
        manager._notify(listeners, previous, config)
        return manager

    def get(self) -> PubflowConfig:
        with self._lock:
            return self._config

    def on_change(self, callback: ConfigListener) -> None:
        with self._lock:
            self._listeners.append(callback)

    def reload(self, config_path: str | None = None) -> ReloadResult:
        """Re-read sources and apply only the hot-reloadable fields that changed."""
        with self._lock:
            current = self._config
            path = config_path if config_path is not None else self._config_path
            overrides = dict(self._overrides)
            listeners = list(self._listeners)

        candidate = build_config(path, overrides)
        result = ReloadResult()
        section_updates: dict[str, dict[str, Any]] = {}
        for section in type(current).model_fields:
            old_section = getattr(current, section)
            new_section = getattr(candidate, section)
            for name in type(old_section).model_fields:
                value = getattr(new_section, name)
                if getattr(old_section, name) == value:
                    continue
                if name in HOT_RELOADABLE.get(section, frozenset()):
                    result.applied[f"{section}.{name}"] = value
                    section_updates.setdefault(section, {})[name] = value
                else:
                    result.skipped[f"{section}.{name}"] = value

        if result.skipped:
            logger.warning("config_reload_skipped keys=%s", ",".join(sorted(result.skipped)))
        with self._lock:
            self._config_path = path
            if not section_updates:
                return result
            updated = current.model_copy(
                update={
                    section: getattr(current, section).model_copy(update=fields)
                    for section, fields in section_updates.items()
                }
            )
            self._config = updated
        logger.info("config_reload_applied keys=%s", ",".join(sorted(result.applied)))
        self._notify(listeners, current, updated)
        return result

    @staticmethod
    def _notify(listeners: list[ConfigListener], old: PubflowConfig, new: PubflowConfig) -> None:
        for callback in listeners:
            callback(old, new)
