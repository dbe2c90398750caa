"""Git repository inspection helpers."""

from __future__ import annotations

import subprocess
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from pathlib import Path

from git_guardian.observability import get_logger

logger = get_logger(__name__)

FIELD_SEPARATOR = "\x1f"
LOG_FORMAT = f"--format=%H{FIELD_SEPARATOR}%an{FIELD_SEPARATOR}%ai{FIELD_SEPARATOR}%s"
DEFAULT_GIT_TIMEOUT_SECONDS = 60.0


class GitCommandError(RuntimeError):
    """Raised when a git command fails."""

    def __init__(self, message: str, *, args: Sequence[str], stderr: str = "") -> None:
        super().__init__(message)
        self.git_args = tuple(args)
        self.stderr = stderr


@dataclass(frozen=True, slots=True)
class Commit:
    """One commit as reported by ``git log``."""

    hash: str
    author: str
    date: str
    message: str
    files: tuple[str, ...] = ()
    diff: str | None = None


class GitRepository:
    """Read-only view of a local git repository."""

    def __init__(
        self,
        repo_path: Path | str,
        *,
        timeout_seconds: float = DEFAULT_GIT_TIMEOUT_SECONDS,
    ) -> None:
        self.repo_path = Path(repo_path)
        self.timeout_seconds = timeout_seconds
        self._resolved_path = self.repo_path.resolve()

    def _run_git(self, *args: str) -> str:
        """Run a git subcommand and return its stdout."""
        argv = ["git", "-C", str(self.repo_path), *args]
        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as error:
            raise GitCommandError(
                f"git {args[0]} timed out after {self.timeout_seconds} seconds",
                args=args,
            ) from error
        except OSError as error:
            raise GitCommandError(f"failed to run git: {error}", args=args) from error

        if completed.returncode != 0:
            stderr = completed.stderr.strip()
            raise GitCommandError(
                f"git {args[0]} failed with exit status {completed.returncode}: {stderr}",
                args=args,
                stderr=stderr,
            )
        return completed.stdout

    def _succeeds(self, *args: str) -> bool:
        """Return whether a git subcommand exits cleanly."""
        try:
            self._run_git(*args)
        except GitCommandError:
            return False
        return True

    def current_branch(self) -> str:
        """Return the checked-out branch name, empty on a detached HEAD."""
        try:
            return self._run_git("branch", "--show-current").strip()
        except GitCommandError as error:
            raise GitCommandError(
                f"failed to get current branch: {error}", args=error.git_args, stderr=error.stderr
            ) from error

    def get_unpushed_commits(self, remote: str, branch: str | None = None) -> list[Commit]:
        """List commits on HEAD that are not on ``remote/branch``.

        When the remote-tracking branch does not exist, every commit reachable
        from HEAD is returned instead.
        """
        if not branch:
            branch = self.current_branch()

        remote_branch = f"{remote}/{branch}"
        if not self._succeeds("rev-parse", "--verify", "--quiet", remote_branch):
            logger.info("git.remote_branch_missing", remote_branch=remote_branch)
            return self.get_all_commits()

        output = self._run_git("log", f"{remote_branch}..HEAD", LOG_FORMAT)
        return [
            replace(
                commit,
                files=self._commit_files_or_empty(commit.hash),
                diff=self._commit_diff_or_none(commit.hash),
            )
            for commit in _parse_log(output)
        ]

    def get_all_commits(self) -> list[Commit]:
        """List every commit reachable from HEAD, without diffs."""
        output = self._run_git("log", LOG_FORMAT)
        return [
            replace(commit, files=self._commit_files_or_empty(commit.hash))
            for commit in _parse_log(output)
        ]

    def get_commit_files(self, commit_hash: str) -> tuple[str, ...]:
        """Return paths touched by one commit."""
        output = self._run_git(
            "diff-tree", "--no-commit-id", "--name-only", "-r", "--root", commit_hash
        )
        return tuple(line for line in output.splitlines() if line.strip())

    def get_commit_diff(self, commit_hash: str) -> str:
        """Return the patch introduced by one commit."""
        return self._run_git("show", commit_hash, "--format=", "--no-color")

    def get_changed_files(self, commits: Iterable[Commit]) -> list[str]:
        """Return unique absolute paths touched by the commits, sorted."""
        paths = {
            str(self._resolved_path / file) for commit in commits for file in commit.files
        }
        return sorted(paths)

    def get_staged_files(self) -> list[str]:
        """Return absolute paths of staged files."""
        output = self._run_git("diff", "--cached", "--name-only")
        return [str(self._resolved_path / line) for line in output.splitlines() if line.strip()]

    def _commit_files_or_empty(self, commit_hash: str) -> tuple[str, ...]:
        try:
            return self.get_commit_files(commit_hash)
        except GitCommandError as error:
            logger.warning("git.commit_files_failed", commit=commit_hash, error=str(error))
            return ()

    def _commit_diff_or_none(self, commit_hash: str) -> str | None:
        try:
            return self.get_commit_diff(commit_hash)
        except GitCommandError as error:
            logger.warning("git.commit_diff_failed", commit=commit_hash, error=str(error))
            return None


def _parse_log(output: str) -> list[Commit]:
    """Parse ``git log`` lines written with LOG_FORMAT."""
    commits = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split(FIELD_SEPARATOR, 3)
        if len(parts) < 4:
            continue
        commits.append(Commit(hash=parts[0], author=parts[1], date=parts[2], message=parts[3]))
    return commits
