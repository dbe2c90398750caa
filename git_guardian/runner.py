"""Sequential execution of configured test commands."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from git_guardian.config import TestSpec
from git_guardian.executor import run_command
from git_guardian.observability import get_logger
from git_guardian.schema import TestResult

logger = get_logger(__name__)


class TestRunner:
    """Run every configured test in order and collect one result per test."""

    __test__ = False

    def __init__(self, repo_path: Path | str, tests: Sequence[TestSpec]) -> None:
        self._repo_path = Path(repo_path)
        self._tests = tuple(tests)

    def run_all(self) -> list[TestResult]:
        """Run all tests; a failing test never stops the ones after it."""
        return [self.run_test(spec) for spec in self._tests]

    def run_test(self, spec: TestSpec) -> TestResult:
        """Run one test under its own timeout."""
        if not spec.command.strip():
            logger.warning("test.empty_command", test=spec.name)
            return TestResult(
                name=spec.name,
                success=False,
                blocking=spec.blocking,
                duration=0.0,
                error="empty command",
            )

        logger.info("test.start", test=spec.name, timeout=spec.timeout)
        execution = run_command(spec.command, cwd=self._repo_path, timeout_seconds=spec.timeout)

        error = execution.error
        if execution.timed_out:
            error = f"test timed out after {spec.timeout} seconds"

        logger.info(
            "test.finish",
            test=spec.name,
            success=execution.success,
            duration=round(execution.duration_seconds, 3),
            error=error,
        )
        return TestResult(
            name=spec.name,
            success=execution.success,
            blocking=spec.blocking,
            duration=execution.duration_seconds,
            output=execution.output,
            error=error,
        )
