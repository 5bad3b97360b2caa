"""Checkpoint orchestration.

Maps a checkpoint category to its sequence of steps:

    auto         threshold gate -> snapshot -> commit -> batched push
    agent, domain, security, performance, milestone
                 snapshot -> commit -> batched push
    session-end  snapshot -> forced commit -> forced push -> summary file

Every run is a single pass with no in-memory state carried between
invocations; continuity lives in git and the checkpoint directory. Outside a
git repository every run is a successful no-op.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from waymark.config import CheckpointConfig
from waymark.errors import format_error
from waymark.git import GitRepository, RepoState, RepositoryGateway
from waymark.metrics import FileMetricsReader, MetricsReader, summarize_progress
from waymark.policy import (
    CheckpointCategory,
    CommitOutcome,
    OutcomeStatus,
    PushOutcome,
    commit_checkpoint,
    parse_category,
    push_if_due,
    should_commit,
)
from waymark.snapshot import (
    ArchiveEntry,
    CheckpointRecord,
    build_record,
    list_archived,
    load_latest,
    save_record,
    write_session_summary,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class CheckpointResult:
    """Everything one checkpoint run did."""

    category: CheckpointCategory
    message: str
    skipped_reason: str | None = None
    record: CheckpointRecord | None = None
    archive_path: Path | None = None
    commit: CommitOutcome | None = None
    push: PushOutcome | None = None
    summary: str | None = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


class Checkpointer:
    """Runs checkpoints against one repository and checkpoint directory."""

    def __init__(
        self,
        config: CheckpointConfig,
        gateway: RepositoryGateway,
        metrics: MetricsReader,
        checkpoint_dir: Path,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config
        self.gateway = gateway
        self.metrics = metrics
        self.checkpoint_dir = checkpoint_dir
        self.clock = clock

    @classmethod
    def for_project(cls, project_root: Path, config: CheckpointConfig | None = None) -> Checkpointer:
        """Build a Checkpointer wired to git and the project's metrics files."""
        if config is None:
            config = CheckpointConfig.load(project_root)
        return cls(
            config=config,
            gateway=GitRepository(project_root, timeout=config.git_timeout),
            metrics=FileMetricsReader(
                config.resolve(project_root, "metrics_dir"),
                config.resolve(project_root, "security_audit_path"),
            ),
            checkpoint_dir=config.resolve(project_root, "checkpoint_dir"),
        )

    # -------------------------------------------------------------------------
    # Checkpoints
    # -------------------------------------------------------------------------

    def run(self, category: str | CheckpointCategory, message: str | None = None) -> CheckpointResult:
        """Run one checkpoint.

        Args:
            category: Category value (e.g. "auto", "session-end")
            message: Free text; the category default when omitted

        Returns:
            CheckpointResult describing every step taken

        Raises:
            UnknownCategoryError: category is not recognised (nothing is written)
        """
        category = parse_category(category)
        message = message or category.default_message

        state = self.gateway.inspect()
        if not state.is_repository:
            logger.info("Not a git repository, skipping checkpoint")
            return CheckpointResult(category, message, skipped_reason="not a git repository")

        changed = state.changed_file_count
        if not should_commit(category, changed, self.config.min_changes_threshold):
            reason = (
                f"{changed} changed file(s), "
                f"below threshold of {self.config.min_changes_threshold}"
            )
            logger.info(f"Skipping {category.value} checkpoint: {reason}")
            return CheckpointResult(category, message, skipped_reason=reason)

        now = self.clock()
        record, archive_path = self._snapshot(category, message, state, now)

        force = category.forces_push
        commit = commit_checkpoint(self.gateway, category, message, changed, self.config, force=force)

        # Also picks up commits left unpushed by earlier runs
        push = push_if_due(self.gateway, self.config, force=force)

        summary = None
        if category is CheckpointCategory.SESSION_END:
            summary = self._write_summary(record.timestamp)

        return CheckpointResult(
            category=category,
            message=message,
            record=record,
            archive_path=archive_path,
            commit=commit,
            push=push,
            summary=summary,
        )

    def _snapshot(
        self, category: CheckpointCategory, message: str, state: RepoState, now: datetime
    ) -> tuple[CheckpointRecord, Path | None]:
        record = build_record(category, message, state, self.metrics, now)
        result = save_record(record, self.checkpoint_dir, now)
        if result.is_err():
            # The commit still goes ahead without metadata
            logger.warning(f"Checkpoint metadata not saved: {format_error(result.unwrap_err())}")
            return record, None
        return record, result.unwrap()

    def _write_summary(self, timestamp: str) -> str | None:
        if not self.metrics.has_progress():
            return None

        line = summarize_progress(self.metrics.progress()).format(timestamp)
        result = write_session_summary(self.checkpoint_dir, line)
        if result.is_err():
            logger.warning(f"Session summary not saved: {format_error(result.unwrap_err())}")
        return line

    # -------------------------------------------------------------------------
    # Push
    # -------------------------------------------------------------------------

    def push(self) -> PushOutcome:
        """Push any unpushed commits now, ignoring the batch size."""
        if not self.gateway.is_repository():
            return PushOutcome(OutcomeStatus.SKIPPED, "not a git repository")
        return push_if_due(self.gateway, self.config, force=True)

    # -------------------------------------------------------------------------
    # Read-only queries
    # -------------------------------------------------------------------------

    def status(self) -> CheckpointRecord | None:
        """Latest checkpoint record, if any."""
        return load_latest(self.checkpoint_dir)

    def history(self, limit: int = 5) -> list[ArchiveEntry]:
        """Most recent archived checkpoints, newest first."""
        return list_archived(self.checkpoint_dir, limit=limit)

    def describe_config(self) -> dict:
        """Effective configuration plus the current unpushed commit count."""
        data = self.config.to_dict()
        data["checkpoint_dir"] = str(self.checkpoint_dir)
        state = self.gateway.inspect()
        data["branch"] = state.current_branch
        data["commits_ahead"] = state.commits_ahead
        return data
