"""YAML configuration loader utilities."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]


class ConfigLoadError(ValueError):
    """Raised when configuration YAML cannot be parsed."""


def read_yaml_mapping(target: Path, *, error_cls: type[ValueError] = ValueError) -> dict[str, Any]:
    """Parse *target* as a YAML mapping. Missing or empty file yields empty dict."""
    if not target.exists():
        return {}
    text = target.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        if mark is not None:
            raise error_cls(f"Invalid YAML at {target}:{mark.line + 1}:{mark.column + 1}") from exc
        raise error_cls(f"Invalid YAML at {target}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise error_cls(f"Config root must be mapping: {target}")
    return data


class YAMLConfigLoader:
    """Load pubflow.yaml with deterministic path resolution."""

    DEFAULT_FILENAME = "pubflow.yaml"

    @classmethod
    def resolve_path(cls) -> Path:
        """Default config location: ``PUBFLOW_CONFIG`` if set, else ./pubflow.yaml."""
        env_path = os.environ.get("PUBFLOW_CONFIG", "").strip()
        if env_path:
            return Path(env_path)
        return Path.cwd() / cls.DEFAULT_FILENAME

    @classmethod
    def load_dict(cls, path: str | Path | None = None) -> dict[str, Any]:
        """Load YAML into dict; an explicit *path* wins over ``resolve_path()``.

        Missing or empty file yields empty dict.
        """
        target = Path(path) if path is not None else cls.resolve_path()
        return read_yaml_mapping(target, error_cls=ConfigLoadError)
