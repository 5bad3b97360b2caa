"""Checkpoint metadata snapshots.

Every checkpoint that passes its gate writes a small JSON record:

    <checkpoint_dir>/latest-checkpoint.json          # overwritten each time
    <checkpoint_dir>/checkpoint-YYYYMMDD-HHMMSS.json  # permanent archive

Both files hold byte-identical content. The archive key uses local time at
second granularity; if that name is already taken a numeric suffix
(``-1``, ``-2``, ...) is appended, so rapid consecutive checkpoints never
overwrite each other. The archive is never pruned.

The JSON field names are read by other tooling and must not change.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from waymark.atomic import atomic_write_text
from waymark.errors import Result, WaymarkError, ok
from waymark.git import UNKNOWN, RepoState
from waymark.metrics import MetricsReader
from waymark.policy import CheckpointCategory

logger = logging.getLogger(__name__)

LATEST_FILENAME = "latest-checkpoint.json"
SUMMARY_FILENAME = "last-session-summary.txt"
ARCHIVE_PREFIX = "checkpoint-"

_ARCHIVE_RE = re.compile(r"^checkpoint-(\d{8}-\d{6})(?:-(\d+))?\.json$")


@dataclass(frozen=True)
class CheckpointRecord:
    """One checkpoint's metadata, as persisted."""

    timestamp: str  # UTC, YYYY-MM-DDTHH:MM:SSZ
    type: str
    message: str
    commit_hash: str = UNKNOWN
    branch: str = UNKNOWN
    v3_progress: dict[str, Any] = field(default_factory=dict)
    performance: dict[str, Any] = field(default_factory=dict)
    security: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the on-disk field names."""
        return {
            "timestamp": self.timestamp,
            "type": self.type,
            "message": self.message,
            "commitHash": self.commit_hash,
            "branch": self.branch,
            "v3Progress": self.v3_progress,
            "performance": self.performance,
            "security": self.security,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CheckpointRecord":
        """Deserialize from the on-disk field names."""
        return cls(
            timestamp=data.get("timestamp", ""),
            type=data.get("type", ""),
            message=data.get("message", ""),
            commit_hash=data.get("commitHash", UNKNOWN),
            branch=data.get("branch", UNKNOWN),
            v3_progress=data.get("v3Progress") or {},
            performance=data.get("performance") or {},
            security=data.get("security") or {},
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"


@dataclass(frozen=True)
class ArchiveEntry:
    """An archived checkpoint and the file it came from."""

    path: Path
    record: CheckpointRecord


def format_timestamp(now: datetime) -> str:
    """UTC ISO-8601 timestamp with a Z suffix."""
    return now.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def archive_key(now: datetime) -> str:
    """Local-time archive key, YYYYMMDD-HHMMSS."""
    return now.astimezone().strftime("%Y%m%d-%H%M%S")


def build_record(
    category: CheckpointCategory,
    message: str,
    state: RepoState,
    metrics: MetricsReader,
    now: datetime,
) -> CheckpointRecord:
    """Combine inspected repository state and metrics documents into a record."""
    return CheckpointRecord(
        timestamp=format_timestamp(now),
        type=category.value,
        message=message,
        commit_hash=state.head_commit or UNKNOWN,
        branch=state.current_branch or UNKNOWN,
        v3_progress=metrics.progress(),
        performance=metrics.performance(),
        security=metrics.security(),
    )


def _unique_archive_path(checkpoint_dir: Path, key: str) -> Path:
    candidate = checkpoint_dir / f"{ARCHIVE_PREFIX}{key}.json"
    counter = 0
    while candidate.exists():
        counter += 1
        candidate = checkpoint_dir / f"{ARCHIVE_PREFIX}{key}-{counter}.json"
    return candidate


def save_record(
    record: CheckpointRecord,
    checkpoint_dir: Path,
    now: datetime,
) -> Result[Path, WaymarkError]:
    """Write the record as the latest checkpoint and as a new archive entry.

    Args:
        record: Record to persist
        checkpoint_dir: Directory holding checkpoint files
        now: Time used for the archive key

    Returns:
        Ok(archive path) on success, Err(WaymarkError) if either write failed
    """
    content = record.to_json()

    latest = atomic_write_text(checkpoint_dir / LATEST_FILENAME, content)
    if latest.is_err():
        return latest

    archive_path = _unique_archive_path(checkpoint_dir, archive_key(now))
    archived = atomic_write_text(archive_path, content)
    if archived.is_err():
        return archived

    logger.debug(f"Saved checkpoint {archive_path.name}")
    return ok(archive_path)


def load_record(path: Path) -> CheckpointRecord | None:
    """Load a record from disk, or None if missing or malformed."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Invalid checkpoint {path}: {e}")
        return None

    if not isinstance(data, dict):
        logger.warning(f"Invalid checkpoint {path}: expected a JSON object")
        return None

    return CheckpointRecord.from_dict(data)


def load_latest(checkpoint_dir: Path) -> CheckpointRecord | None:
    """Read latest-checkpoint.json."""
    return load_record(checkpoint_dir / LATEST_FILENAME)


def _archive_sort_key(path: Path) -> tuple[str, int]:
    match = _ARCHIVE_RE.match(path.name)
    if not match:
        return ("", 0)
    return (match.group(1), int(match.group(2) or 0))


def list_archived(checkpoint_dir: Path, limit: int = 5) -> list[ArchiveEntry]:
    """List archived checkpoints, most recent first."""
    if limit <= 0 or not checkpoint_dir.is_dir():
        return []

    files = [p for p in checkpoint_dir.glob(f"{ARCHIVE_PREFIX}*.json") if _ARCHIVE_RE.match(p.name)]

    entries = []
    for path in sorted(files, key=_archive_sort_key, reverse=True):
        record = load_record(path)
        if record is None:
            continue
        entries.append(ArchiveEntry(path=path, record=record))
        if len(entries) >= limit:
            break

    return entries


def write_session_summary(checkpoint_dir: Path, line: str) -> Result[Path, WaymarkError]:
    """Write the human-readable session summary file."""
    path = checkpoint_dir / SUMMARY_FILENAME
    return atomic_write_text(path, line + "\n")
