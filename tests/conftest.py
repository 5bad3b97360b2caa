"""Shared fixtures: in-memory fakes and throwaway git repositories."""

import shutil
import subprocess
from pathlib import Path
from typing import Any

import pytest

from waymark.git import NOT_A_REPOSITORY, RepoState


class FakeRepository:
    """In-memory RepositoryGateway for policy and orchestrator tests."""

    def __init__(
        self,
        *,
        is_repository: bool = True,
        status: tuple[str, ...] = (),
        branch: str = "main",
        upstream: bool = True,
        ahead: int = 0,
        head: str = "abc1234",
        changes: bool | None = None,
        stage_ok: bool = True,
        commit_ok: bool = True,
        push_ok: bool = True,
    ):
        self.repository = is_repository
        self.status_lines = status
        self.branch = branch
        self.upstream = upstream
        self.ahead = ahead
        self.head = head
        self.changes = changes
        self.stage_ok = stage_ok
        self.commit_ok = commit_ok
        self.push_ok = push_ok
        self.calls: list[str] = []
        self.commits: list[str] = []

    def inspect(self) -> RepoState:
        if not self.repository:
            return NOT_A_REPOSITORY
        return RepoState(
            is_repository=True,
            changed_file_count=len(self.status_lines),
            current_branch=self.branch,
            has_upstream=self.upstream,
            commits_ahead=self.ahead if self.upstream else 0,
            head_commit=self.head,
        )

    def is_repository(self) -> bool:
        return self.repository

    def current_branch(self) -> str:
        return self.branch

    def has_upstream(self) -> bool:
        return self.upstream

    def ahead_count(self) -> int:
        return self.ahead

    def has_changes(self) -> bool:
        if self.changes is None:
            return bool(self.status_lines)
        return self.changes

    def stage_all(self) -> bool:
        self.calls.append("stage_all")
        return self.stage_ok

    def commit(self, message: str) -> bool:
        self.calls.append("commit")
        if not self.commit_ok:
            return False
        self.commits.append(message)
        self.ahead += 1
        self.status_lines = ()
        return True

    def push(self) -> bool:
        self.calls.append("push")
        if not self.push_ok:
            return False
        self.ahead = 0
        return True


class FakeMetrics:
    """In-memory MetricsReader. A None document counts as missing."""

    def __init__(
        self,
        progress: dict[str, Any] | None = None,
        performance: dict[str, Any] | None = None,
        security: dict[str, Any] | None = None,
    ):
        self._progress = progress
        self._performance = performance
        self._security = security

    def read_json_or_default(self, path: Path) -> dict[str, Any]:
        return {}

    def progress(self) -> dict[str, Any]:
        return dict(self._progress or {})

    def performance(self) -> dict[str, Any]:
        return dict(self._performance or {})

    def security(self) -> dict[str, Any]:
        return dict(self._security or {})

    def has_progress(self) -> bool:
        return self._progress is not None


@pytest.fixture
def fake_repo() -> FakeRepository:
    """A clean repository on main with an upstream and nothing to push."""
    return FakeRepository()


@pytest.fixture
def fake_metrics() -> FakeMetrics:
    """Metrics with every document missing."""
    return FakeMetrics()


# =============================================================================
# Real git repositories
# =============================================================================


def git(path: Path, *args: str) -> str:
    """Run git in path and return stripped stdout, raising on failure."""
    result = subprocess.run(
        ["git", *args],
        cwd=path,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def _init_git_repo(path: Path) -> None:
    """Initialize a repo on main with one commit."""
    git(path, "init", "-q")
    git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    git(path, "config", "user.email", "test@test.com")
    git(path, "config", "user.name", "Test User")
    git(path, "config", "commit.gpgsign", "false")
    (path / "README.md").write_text("Test repo\n")
    git(path, "add", ".")
    git(path, "commit", "-q", "-m", "Initial commit")


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A git repository with one commit and no remote."""
    if shutil.which("git") is None:
        pytest.skip("Git not available")

    repo = tmp_path / "repo"
    repo.mkdir()
    _init_git_repo(repo)
    return repo


@pytest.fixture
def tracked_repo(tmp_path: Path, git_repo: Path) -> Path:
    """A git repository whose main branch tracks a local bare remote."""
    remote = tmp_path / "remote.git"
    git(tmp_path, "init", "-q", "--bare", str(remote))
    git(git_repo, "remote", "add", "origin", str(remote))
    git(git_repo, "push", "-q", "-u", "origin", "main")
    return git_repo
