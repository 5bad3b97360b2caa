"""Commit and push policies for checkpoints.

Each policy is split into a pure decision (``should_commit``,
``should_push``) and a best-effort action that consults the repository
gateway and reports an outcome. Actions never raise for git failures: a
failed commit or push is logged as a warning and left for the next
checkpoint to pick up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from waymark.config import CheckpointConfig
from waymark.errors import UnknownCategoryError
from waymark.git import RepositoryGateway

logger = logging.getLogger(__name__)


class CheckpointCategory(str, Enum):
    """Closed set of checkpoint kinds."""

    AUTO = "auto"
    AGENT = "agent"
    DOMAIN = "domain"
    SECURITY = "security"
    PERFORMANCE = "performance"
    MILESTONE = "milestone"
    SESSION_END = "session-end"

    @property
    def prefix(self) -> str:
        """Commit message prefix."""
        return _PREFIXES[self]

    @property
    def default_message(self) -> str:
        return _DEFAULT_MESSAGES[self]

    @property
    def forces_push(self) -> bool:
        """Whether this category bypasses the push batch size."""
        return self is CheckpointCategory.SESSION_END

    @property
    def threshold_gated(self) -> bool:
        """Whether this category only fires above the change threshold."""
        return self is CheckpointCategory.AUTO


_PREFIXES = {
    CheckpointCategory.AUTO: "checkpoint:",
    CheckpointCategory.AGENT: "feat(agent):",
    CheckpointCategory.DOMAIN: "feat(domain):",
    CheckpointCategory.SECURITY: "security:",
    CheckpointCategory.PERFORMANCE: "perf:",
    CheckpointCategory.MILESTONE: "milestone:",
    CheckpointCategory.SESSION_END: "session:",
}

_DEFAULT_MESSAGES = {
    CheckpointCategory.AUTO: "Auto-checkpoint",
    CheckpointCategory.AGENT: "Agent checkpoint",
    CheckpointCategory.DOMAIN: "Domain checkpoint",
    CheckpointCategory.SECURITY: "Security checkpoint",
    CheckpointCategory.PERFORMANCE: "Performance checkpoint",
    CheckpointCategory.MILESTONE: "Milestone reached",
    CheckpointCategory.SESSION_END: "Session ended",
}


def parse_category(value: str | CheckpointCategory) -> CheckpointCategory:
    """Resolve a category string, raising UnknownCategoryError if invalid."""
    if isinstance(value, CheckpointCategory):
        return value
    try:
        return CheckpointCategory(value)
    except ValueError:
        raise UnknownCategoryError(str(value)) from None


# =============================================================================
# Outcomes
# =============================================================================


class OutcomeStatus(str, Enum):
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class CommitOutcome:
    """What the commit policy did."""

    status: OutcomeStatus
    reason: str
    commit_message: str | None = None

    @property
    def committed(self) -> bool:
        return self.status is OutcomeStatus.DONE


@dataclass(frozen=True)
class PushOutcome:
    """What the push policy did."""

    status: OutcomeStatus
    reason: str
    commits_ahead: int = 0

    @property
    def pushed(self) -> bool:
        return self.status is OutcomeStatus.DONE


# =============================================================================
# Commit Policy
# =============================================================================


def should_commit(category: CheckpointCategory, changed_files: int, threshold: int) -> bool:
    """Threshold gate: only auto checkpoints wait for enough changed files."""
    if category.threshold_gated:
        return changed_files >= threshold
    return True


def format_commit_message(category: CheckpointCategory, message: str, trailer: str = "") -> str:
    """Build "<prefix> <message><trailer>"."""
    return f"{category.prefix} {message}{trailer}"


def commit_checkpoint(
    gateway: RepositoryGateway,
    category: CheckpointCategory,
    message: str,
    changed_files: int,
    config: CheckpointConfig,
    force: bool = False,
) -> CommitOutcome:
    """Stage everything and commit, if the policy allows.

    Args:
        gateway: Repository to act on
        category: Checkpoint category (selects prefix and threshold gate)
        message: Caller-supplied commit text
        changed_files: Changed-file count from the inspector
        config: Thresholds and enable flags
        force: Commit even when auto commits are disabled

    Returns:
        CommitOutcome describing what happened
    """
    if not config.auto_commit_enabled and not force:
        logger.info("Auto-commit disabled, skipping commit")
        return CommitOutcome(OutcomeStatus.SKIPPED, "auto-commit disabled")

    if not should_commit(category, changed_files, config.min_changes_threshold):
        reason = (
            f"{changed_files} changed file(s), "
            f"below threshold of {config.min_changes_threshold}"
        )
        logger.info(f"Skipping commit: {reason}")
        return CommitOutcome(OutcomeStatus.SKIPPED, reason)

    if not gateway.has_changes():
        logger.info("No changes to commit")
        return CommitOutcome(OutcomeStatus.SKIPPED, "no changes to commit")

    commit_message = format_commit_message(category, message, config.commit_trailer)

    if not gateway.stage_all():
        logger.warning("Failed to stage changes")
        return CommitOutcome(OutcomeStatus.FAILED, "failed to stage changes")

    if not gateway.commit(commit_message):
        logger.warning(f"Commit failed for {category.value} checkpoint")
        return CommitOutcome(OutcomeStatus.FAILED, "no changes or commit failed")

    logger.debug(f"Created commit: {commit_message.splitlines()[0]}")
    return CommitOutcome(OutcomeStatus.DONE, "committed", commit_message)


# =============================================================================
# Push Policy
# =============================================================================


def should_push(commits_ahead: int, batch_size: int, force: bool = False) -> bool:
    """Push once enough commits have accumulated, or immediately if forced."""
    return force or commits_ahead >= batch_size


def push_if_due(
    gateway: RepositoryGateway,
    config: CheckpointConfig,
    force: bool = False,
) -> PushOutcome:
    """Push unpushed commits when the batch is full or the push is forced.

    A disabled auto-push only stops batched pushes; forced pushes still go
    out. Failures are logged and swallowed.

    Args:
        gateway: Repository to act on
        config: Batch size and enable flag
        force: Bypass the batch size (and the enable flag)

    Returns:
        PushOutcome describing what happened
    """
    branch = gateway.current_branch()
    if not branch:
        logger.info("No current branch, skipping push")
        return PushOutcome(OutcomeStatus.SKIPPED, "no current branch")

    if not gateway.has_upstream():
        logger.info(f"No upstream configured for {branch}, skipping push")
        return PushOutcome(OutcomeStatus.SKIPPED, f"no upstream for {branch}")

    if not config.auto_push_enabled and not force:
        return PushOutcome(OutcomeStatus.SKIPPED, "auto-push disabled")

    ahead = gateway.ahead_count()

    if not should_push(ahead, config.push_batch_size, force):
        remaining = config.push_batch_size - ahead
        reason = f"{ahead} unpushed commit(s), {remaining} more before push"
        logger.info(f"Deferring push: {reason}")
        return PushOutcome(OutcomeStatus.SKIPPED, reason, ahead)

    if not gateway.push():
        # The next checkpoint retries with the same (or larger) batch
        logger.warning(f"Push of {branch} failed, will retry on next checkpoint")
        return PushOutcome(OutcomeStatus.FAILED, "push failed", ahead)

    logger.debug(f"Pushed {ahead} commit(s) on {branch}")
    return PushOutcome(OutcomeStatus.DONE, f"pushed {ahead} commit(s)", ahead)
