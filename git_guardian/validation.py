"""Pre-push validation orchestration."""

from __future__ import annotations

from pathlib import Path

from git_guardian.checks import CheckRunner
from git_guardian.config import (
    DEFAULT_CHECK_TIMEOUT_SECONDS,
    DEFAULT_CONFIG_FILENAME,
    ConfigError,
    load_config,
    resolve_config_path,
)
from git_guardian.git_client import GitRepository
from git_guardian.observability import get_logger
from git_guardian.runner import TestRunner
from git_guardian.schema import (
    TestResult,
    ValidationVerdict,
    blocking_tests_passed,
    checks_passed,
)

logger = get_logger(__name__)

NO_COMMITS_MESSAGE = "No unpushed commits to validate"


def validate_push(
    repo_path: Path | str = ".",
    *,
    remote: str = "origin",
    branch: str | None = None,
    config_path: Path | str = DEFAULT_CONFIG_FILENAME,
    check_timeout_seconds: float = DEFAULT_CHECK_TIMEOUT_SECONDS,
) -> ValidationVerdict:
    """Check unpushed commits and run configured tests.

    Git failures propagate as ``GitCommandError``. A test configuration that
    cannot be loaded does not fail validation: the verdict carries a warning
    and no test results.
    """
    repository = GitRepository(Path(repo_path))
    commits = repository.get_unpushed_commits(remote, branch)
    if not commits:
        logger.info("validate.no_commits", repo_path=str(repo_path))
        return ValidationVerdict(success=True, message=NO_COMMITS_MESSAGE)

    changed_files = repository.get_changed_files(commits)
    check_results = CheckRunner(repo_path, timeout_seconds=check_timeout_seconds).run_checks(
        changed_files
    )

    warnings: list[str] = []
    test_results: list[TestResult] = []
    try:
        config = load_config(resolve_config_path(config_path, repo_path))
    except ConfigError as error:
        logger.warning("validate.tests_skipped", error=str(error))
        warnings.append(f"Tests not run: {error}")
    else:
        test_results = TestRunner(repo_path, config.tests).run_all()

    success = checks_passed(check_results) and blocking_tests_passed(test_results)
    logger.info(
        "validate.finish",
        success=success,
        commits=len(commits),
        changed_files=len(changed_files),
    )
    return ValidationVerdict(
        success=success,
        message="Validation passed" if success else "Validation failed",
        commits=len(commits),
        changed_files=len(changed_files),
        checks=check_results,
        tests=test_results,
        warnings=warnings,
    )
