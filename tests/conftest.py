"""Shared pytest fixtures and test-run configuration."""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
import sys
from collections.abc import Callable
from pathlib import Path

import pytest


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom pytest options for integration test execution."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests marked as integration (real git repositories).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly enabled."""
    run_integration = config.getoption("--run-integration")
    env_enabled = os.getenv("RUN_INTEGRATION_TESTS") == "1"
    if run_integration or env_enabled:
        return

    skip_marker = pytest.mark.skip(
        reason=(
            "Integration tests are disabled by default. "
            "Use --run-integration or set RUN_INTEGRATION_TESTS=1."
        )
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def python_command() -> Callable[[str], str]:
    """Return a builder for command lines that run a snippet with the current interpreter."""

    def build(code: str) -> str:
        return shlex.join([sys.executable, "-c", code])

    return build


@pytest.fixture
def git_repo(tmp_path: Path) -> Callable[..., Path]:
    """Create a throwaway git repository and return a helper that commits files to it."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed.")

    repo_path = tmp_path / "repo"
    repo_path.mkdir()

    def git(*args: str) -> str:
        completed = subprocess.run(
            ["git", "-C", str(repo_path), *args],
            capture_output=True,
            text=True,
            check=True,
        )
        return completed.stdout

    git("init", "--quiet", "--initial-branch=main")
    git("config", "user.email", "dev@example.com")
    git("config", "user.name", "Dev Example")
    git("config", "commit.gpgsign", "false")

    def commit(files: dict[str, str], message: str) -> Path:
        for relative_path, content in files.items():
            target = repo_path / relative_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            git("add", relative_path)
        git("commit", "--quiet", "-m", message)
        return repo_path

    commit.git = git  # type: ignore[attr-defined]
    commit.path = repo_path  # type: ignore[attr-defined]
    return commit
