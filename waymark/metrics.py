"""External progress documents for Waymark.

Other tooling maintains three JSON documents that checkpoints embed
verbatim: development progress, performance metrics and the security audit
status. Waymark only reads them. Any document that is missing, unreadable or
not a JSON object is replaced by ``{}``.

The progress document also feeds the one-line session summary written at
session end.
"""

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

PROGRESS_FILENAME = "v3-progress.json"
PERFORMANCE_FILENAME = "performance.json"

# Fixed denominators for the session summary line
TOTAL_DOMAINS = 5
TOTAL_AGENTS = 15


class MetricsReader(Protocol):
    """Source of the three documents embedded in every checkpoint."""

    def read_json_or_default(self, path: Path) -> dict[str, Any]: ...

    def progress(self) -> dict[str, Any]: ...

    def performance(self) -> dict[str, Any]: ...

    def security(self) -> dict[str, Any]: ...

    def has_progress(self) -> bool: ...


def read_json_or_default(path: Path, default: dict[str, Any] | None = None) -> dict[str, Any]:
    """Read a JSON object from disk, falling back to a default.

    Args:
        path: File to read
        default: Value returned on any failure (a fresh {} if None)

    Returns:
        Parsed JSON object, or the default
    """
    fallback = {} if default is None else default
    if not path.is_file():
        return fallback

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable metrics file {path}: {e}")
        return fallback

    if not isinstance(data, dict):
        logger.warning(f"Ignoring metrics file {path}: expected a JSON object")
        return fallback

    return data


class FileMetricsReader:
    """MetricsReader over a metrics directory and a security audit file."""

    def __init__(self, metrics_dir: Path, security_audit_path: Path):
        self.metrics_dir = metrics_dir
        self.security_audit_path = security_audit_path

    @property
    def progress_path(self) -> Path:
        return self.metrics_dir / PROGRESS_FILENAME

    @property
    def performance_path(self) -> Path:
        return self.metrics_dir / PERFORMANCE_FILENAME

    def read_json_or_default(self, path: Path) -> dict[str, Any]:
        return read_json_or_default(path)

    def progress(self) -> dict[str, Any]:
        return self.read_json_or_default(self.progress_path)

    def performance(self) -> dict[str, Any]:
        return self.read_json_or_default(self.performance_path)

    def security(self) -> dict[str, Any]:
        return self.read_json_or_default(self.security_audit_path)

    def has_progress(self) -> bool:
        return self.progress_path.is_file()


# =============================================================================
# Session Summary
# =============================================================================


@dataclass(frozen=True)
class SessionSummary:
    """Progress figures reported when a session ends."""

    domains_completed: int
    active_agents: int
    percent_complete: float

    def format(self, timestamp: str) -> str:
        """Render the single summary line."""
        percent = f"{self.percent_complete:g}"
        return (
            f"Session ended {timestamp}: "
            f"domains {self.domains_completed}/{TOTAL_DOMAINS}, "
            f"agents {self.active_agents}/{TOTAL_AGENTS}, "
            f"{percent}% complete"
        )


def _number(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    # json.load accepts NaN and Infinity
    return number if math.isfinite(number) else 0


def summarize_progress(progress: dict[str, Any]) -> SessionSummary:
    """Derive the session summary from a progress document.

    Reads ``domains.completed``, ``swarm.activeAgents`` and ``ddd.progress``;
    anything absent, non-numeric or non-finite counts as 0.
    """
    domains = progress.get("domains") or {}
    swarm = progress.get("swarm") or {}
    ddd = progress.get("ddd") or {}

    return SessionSummary(
        domains_completed=int(_number(domains.get("completed") if isinstance(domains, dict) else 0)),
        active_agents=int(_number(swarm.get("activeAgents") if isinstance(swarm, dict) else 0)),
        percent_complete=_number(ddd.get("progress") if isinstance(ddd, dict) else 0),
    )
