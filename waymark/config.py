"""Configuration management for Waymark.

Storage Structure
-----------------
Everything Waymark reads or writes lives under the project root:

<project>/.waymark/
├── config.yaml               # Optional overrides (team settings)
├── checkpoints/              # latest-checkpoint.json + archive
├── metrics/                  # v3-progress.json, performance.json (read-only)
└── security/                 # audit-status.json (read-only)

Configuration Cascade
---------------------
Built-in defaults → <project>/.waymark/config.yaml → environment variables.

Environment overrides:
    WAYMARK_AUTO_COMMIT       true/false
    WAYMARK_AUTO_PUSH         true/false
    WAYMARK_PUSH_BATCH_SIZE   int
    WAYMARK_MIN_CHANGES       int
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

WAYMARK_DIRNAME = ".waymark"
CONFIG_FILENAME = "config.yaml"

DEFAULT_COMMIT_TRAILER = "\n\nCheckpoint recorded by waymark"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class CheckpointConfig:
    """Knobs controlling the checkpoint commit and push policies.

    Relative directory settings are resolved against the project root with
    ``resolve()``.
    """

    auto_commit_enabled: bool = True
    auto_push_enabled: bool = True
    push_batch_size: int = 5
    min_changes_threshold: int = 1

    checkpoint_dir: str = ".waymark/checkpoints"
    metrics_dir: str = ".waymark/metrics"
    security_audit_path: str = ".waymark/security/audit-status.json"

    commit_trailer: str = DEFAULT_COMMIT_TRAILER
    git_timeout: int = 120

    @classmethod
    def load(cls, project_root: Path) -> "CheckpointConfig":
        """Load config for a project, applying file then environment overrides.

        Args:
            project_root: Project root directory

        Returns:
            CheckpointConfig with overrides applied, or defaults
        """
        config_path = project_root / WAYMARK_DIRNAME / CONFIG_FILENAME
        config = cls()
        if config_path.exists():
            try:
                with open(config_path) as f:
                    overrides = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Ignoring unreadable config {config_path}: {e}")
                overrides = {}
            config = cls.from_dict(overrides)
        return config.with_env_overrides(os.environ)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CheckpointConfig":
        """Create config from a dict, ignoring unknown keys and invalid values."""
        if not isinstance(data, dict):
            return cls()
        field_types = {f.name: f.type for f in fields(cls)}
        unknown = set(data) - set(field_types)
        if unknown:
            logger.debug(f"Ignoring unknown config keys: {sorted(unknown)}")

        values = {}
        for key, raw in data.items():
            if key not in field_types:
                continue
            value = _coerce(raw, field_types[key])
            if value is None:
                logger.warning(f"Ignoring config {key}={raw!r}: expected {field_types[key].__name__}")
                continue
            values[key] = value
        return cls(**values)

    def with_env_overrides(self, environ: Mapping[str, str]) -> "CheckpointConfig":
        """Return a copy with WAYMARK_* environment variables applied."""
        data = self.to_dict()

        for env_name, key in (
            ("WAYMARK_AUTO_COMMIT", "auto_commit_enabled"),
            ("WAYMARK_AUTO_PUSH", "auto_push_enabled"),
        ):
            raw = environ.get(env_name)
            if raw is None:
                continue
            parsed = _parse_bool(raw)
            if parsed is None:
                logger.warning(f"Ignoring {env_name}={raw!r}: expected true/false")
            else:
                data[key] = parsed

        for env_name, key in (
            ("WAYMARK_PUSH_BATCH_SIZE", "push_batch_size"),
            ("WAYMARK_MIN_CHANGES", "min_changes_threshold"),
        ):
            raw = environ.get(env_name)
            if raw is None:
                continue
            try:
                data[key] = int(raw)
            except ValueError:
                logger.warning(f"Ignoring {env_name}={raw!r}: expected an integer")

        return CheckpointConfig(**data)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "auto_commit_enabled": self.auto_commit_enabled,
            "auto_push_enabled": self.auto_push_enabled,
            "push_batch_size": self.push_batch_size,
            "min_changes_threshold": self.min_changes_threshold,
            "checkpoint_dir": self.checkpoint_dir,
            "metrics_dir": self.metrics_dir,
            "security_audit_path": self.security_audit_path,
            "commit_trailer": self.commit_trailer,
            "git_timeout": self.git_timeout,
        }

    def resolve(self, project_root: Path, setting: str) -> Path:
        """Resolve a path setting against the project root."""
        path = Path(getattr(self, setting))
        if path.is_absolute():
            return path
        return project_root / path


def _parse_bool(raw: str) -> bool | None:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return None


def _coerce(raw: Any, expected: type) -> Any:
    """Convert a config file value to the field's type, or None if it can't be."""
    if expected is bool:
        if isinstance(raw, bool):
            return raw
        return _parse_bool(raw) if isinstance(raw, str) else None
    if expected is int:
        if isinstance(raw, bool):
            return None
        if isinstance(raw, int):
            return raw
        if isinstance(raw, str):
            try:
                return int(raw.strip())
            except ValueError:
                return None
        return None
    if expected is str:
        return raw if isinstance(raw, str) else None
    return raw


def detect_project_root(start_path: Path | None = None) -> Path | None:
    """Detect project root by traversing up from start_path looking for markers.

    Looks for (in order of priority):
    1. A .waymark directory
    2. A .git directory or file (repository root or worktree)

    Args:
        start_path: Starting path for traversal. Defaults to cwd.

    Returns:
        Project root path, or None if no project markers found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    for candidate in (current, *current.parents):
        if (candidate / WAYMARK_DIRNAME).is_dir():
            return candidate
        if (candidate / ".git").exists():
            return candidate

    return None
