"""Git integration for Waymark.

Provides the repository inspector and the gateway the checkpoint policies
act through, both built on the git CLI.

All functions gracefully handle non-git directories and git failures by
returning default values (``""``, ``0``, ``False``, ``"unknown"``) instead of
raising. Checkpointing is an optional enhancement and must never break the
session it runs inside.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

# Read-only queries are local and fast; commit and push get the configured timeout
QUERY_TIMEOUT = 10


# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class RepoState:
    """Repository state at a point in time, as seen by the inspector."""

    is_repository: bool
    changed_file_count: int  # Lines of `git status --porcelain`, untracked included
    current_branch: str  # "" when detached or unresolvable
    has_upstream: bool
    commits_ahead: int  # Commits on HEAD not yet on the upstream
    head_commit: str  # Short SHA or "unknown"

    def to_dict(self) -> dict:
        """Serialize to dict for display."""
        return {
            "is_repository": self.is_repository,
            "changed_file_count": self.changed_file_count,
            "current_branch": self.current_branch,
            "has_upstream": self.has_upstream,
            "commits_ahead": self.commits_ahead,
            "head_commit": self.head_commit,
        }


NOT_A_REPOSITORY = RepoState(
    is_repository=False,
    changed_file_count=0,
    current_branch="",
    has_upstream=False,
    commits_ahead=0,
    head_commit=UNKNOWN,
)


class RepositoryGateway(Protocol):
    """Everything the checkpoint policies need from version control."""

    def inspect(self) -> RepoState: ...

    def is_repository(self) -> bool: ...

    def current_branch(self) -> str: ...

    def has_upstream(self) -> bool: ...

    def ahead_count(self) -> int: ...

    def has_changes(self) -> bool: ...

    def stage_all(self) -> bool: ...

    def commit(self, message: str) -> bool: ...

    def push(self) -> bool: ...


# =============================================================================
# Git CLI Helpers
# =============================================================================


def _run_git(
    args: list[str],
    cwd: Path | None = None,
    timeout: int = QUERY_TIMEOUT,
) -> str | None:
    """Run a git command and return stdout, or None on failure.

    Args:
        args: Git command arguments (without 'git' prefix)
        cwd: Working directory (defaults to current)
        timeout: Seconds before the command is abandoned

    Returns:
        Stdout string on success, None on failure
    """
    try:
        # Security: shell=False (default), args never pass through a shell
        result = subprocess.run(
            ["git", *args],  # noqa: S603, S607
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
        )
        if result.returncode == 0:
            return result.stdout.strip()
        logger.debug(f"git {args[0]} exited {result.returncode}: {result.stderr.strip()}")
        return None
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as e:
        logger.debug(f"Git command failed: {e}")
        return None


def is_git_repo(path: Path | None = None) -> bool:
    """Check if path is inside a git work tree."""
    return _run_git(["rev-parse", "--is-inside-work-tree"], cwd=path) == "true"


def get_status(path: Path | None = None) -> tuple[str, ...]:
    """Get porcelain status lines, one per changed or untracked file."""
    output = _run_git(["status", "--porcelain"], cwd=path)
    if not output:
        return ()
    return tuple(output.split("\n"))


def get_branch(path: Path | None = None) -> str:
    """Get current branch name.

    Returns:
        Branch name, or "" when detached or not a git repo
    """
    return _run_git(["symbolic-ref", "--short", "HEAD"], cwd=path) or ""


def get_upstream(path: Path | None = None) -> str:
    """Get the upstream of the current branch (e.g. "origin/main"), or ""."""
    return (
        _run_git(
            ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"],
            cwd=path,
        )
        or ""
    )


def get_ahead_count(path: Path | None = None) -> int:
    """Count commits on HEAD that are not on the upstream.

    Returns:
        Commit count, or 0 when there is no upstream
    """
    output = _run_git(["rev-list", "--count", "@{u}..HEAD"], cwd=path)
    if not output:
        return 0
    try:
        return int(output)
    except ValueError:
        return 0


def get_commit(path: Path | None = None, short: bool = True) -> str:
    """Get current commit SHA.

    Args:
        path: Repository path
        short: Return short SHA if True

    Returns:
        Commit SHA or "unknown" if there is none
    """
    args = ["rev-parse"]
    if short:
        args.append("--short")
    args.append("HEAD")

    return _run_git(args, cwd=path) or UNKNOWN


def has_uncommitted_changes(path: Path | None = None) -> bool:
    """Check for anything ``stage_all`` would pick up, untracked files included.

    When git cannot answer, assume there are changes and let the commit
    itself decide.
    """
    output = _run_git(["status", "--porcelain"], cwd=path)
    if output is None:
        return True
    return bool(output)


def stage_all(path: Path | None = None, timeout: int = QUERY_TIMEOUT) -> bool:
    """Stage every working-tree change, including deletions and new files."""
    return _run_git(["add", "-A"], cwd=path, timeout=timeout) is not None


def create_commit(message: str, path: Path | None = None, timeout: int = 120) -> bool:
    """Create a commit from the staging area.

    Hooks are allowed to run, so a rejecting hook shows up as False.
    """
    return _run_git(["commit", "-m", message], cwd=path, timeout=timeout) is not None


def push_upstream(path: Path | None = None, timeout: int = 120) -> bool:
    """Push HEAD to the upstream of the current branch.

    Returns:
        True if the push succeeded, False on any failure
    """
    branch = get_branch(path)
    if not branch:
        return False

    remote = _run_git(["config", "--get", f"branch.{branch}.remote"], cwd=path)
    merge_ref = _run_git(["config", "--get", f"branch.{branch}.merge"], cwd=path)
    if not remote or not merge_ref:
        return False

    return _run_git(["push", remote, f"HEAD:{merge_ref}"], cwd=path, timeout=timeout) is not None


# =============================================================================
# High-Level Functions
# =============================================================================


def inspect_repository(path: Path | None = None) -> RepoState:
    """Capture everything the checkpoint policies decide on.

    Args:
        path: Repository path

    Returns:
        RepoState, or NOT_A_REPOSITORY outside a git work tree
    """
    if not is_git_repo(path):
        return NOT_A_REPOSITORY

    upstream = get_upstream(path)
    return RepoState(
        is_repository=True,
        changed_file_count=len(get_status(path)),
        current_branch=get_branch(path),
        has_upstream=bool(upstream),
        commits_ahead=get_ahead_count(path) if upstream else 0,
        head_commit=get_commit(path),
    )


class GitRepository:
    """RepositoryGateway backed by the git CLI, rooted at one directory."""

    def __init__(self, path: Path | None = None, timeout: int = 120):
        self.path = path
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"GitRepository({self.path!r})"

    def inspect(self) -> RepoState:
        return inspect_repository(self.path)

    def is_repository(self) -> bool:
        return is_git_repo(self.path)

    def current_branch(self) -> str:
        return get_branch(self.path)

    def has_upstream(self) -> bool:
        return bool(get_upstream(self.path))

    def ahead_count(self) -> int:
        return get_ahead_count(self.path)

    def has_changes(self) -> bool:
        return has_uncommitted_changes(self.path)

    def stage_all(self) -> bool:
        return stage_all(self.path, timeout=self.timeout)

    def commit(self, message: str) -> bool:
        return create_commit(message, self.path, timeout=self.timeout)

    def push(self) -> bool:
        return push_upstream(self.path, timeout=self.timeout)
