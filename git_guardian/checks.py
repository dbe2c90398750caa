"""Static-analysis check providers and the runner that applies them."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from git_guardian.config import DEFAULT_CHECK_TIMEOUT_SECONDS
from git_guardian.executor import ExecutionResult, command_exists, run_argv
from git_guardian.observability import get_logger
from git_guardian.schema import CheckResult, FileCategory, Severity

logger = get_logger(__name__)

EXTENSION_CATEGORIES: Mapping[str, FileCategory] = MappingProxyType(
    {
        ".go": FileCategory.GO,
        ".dart": FileCategory.DART,
        ".sh": FileCategory.SHELL,
        ".bash": FileCategory.SHELL,
        ".js": FileCategory.JAVASCRIPT,
        ".jsx": FileCategory.JAVASCRIPT,
        ".ts": FileCategory.JAVASCRIPT,
        ".tsx": FileCategory.JAVASCRIPT,
        ".mjs": FileCategory.JAVASCRIPT,
        ".cjs": FileCategory.JAVASCRIPT,
    }
)
CATEGORY_ORDER: tuple[FileCategory, ...] = (
    FileCategory.GO,
    FileCategory.DART,
    FileCategory.SHELL,
    FileCategory.JAVASCRIPT,
)

FAILURE_EXPLANATIONS: Mapping[str, str] = MappingProxyType(
    {
        "gofmt": "Go files must be formatted using 'gofmt'. Run 'gofmt -w .' to fix formatting issues.",
        "go vet": (
            "Go vet found potential issues in your code. "
            "Review the errors and fix them before pushing."
        ),
        "golangci-lint": (
            "The linter found code quality issues. Address the reported problems "
            "or configure exceptions in .golangci.yml."
        ),
        "dart analyze": "Dart analyzer found issues. Run 'dart fix --apply' to auto-fix some issues.",
        "flutter analyze": (
            "Flutter analyzer found issues in your Flutter code. Review and fix them."
        ),
        "shellcheck": (
            "Shellcheck found issues in your shell scripts. "
            "Review the suggestions and fix critical issues."
        ),
        "eslint": (
            "ESLint found JavaScript/TypeScript issues. Run 'eslint --fix' to auto-fix some issues."
        ),
        "test": "Tests failed. Review the test output and fix failing tests before pushing.",
        "timeout": (
            "A check or test exceeded its time limit. Look for hanging processes, "
            "or raise the timeout in the configuration."
        ),
    }
)

ArgvBuilder = Callable[[Sequence[str]], list[str]]


@dataclass(frozen=True, slots=True)
class CheckProvider:
    """Adapter around one external static-analysis tool.

    ``requires`` lists every executable that must be on PATH for the provider to
    run. ``per_file`` providers are invoked once per file and report the file.
    ``fails_on_output`` marks tools that signal problems by printing, not by
    exit status.
    """

    tool: str
    requires: tuple[str, ...]
    build_argv: ArgvBuilder
    success_message: str
    failure_message: str
    per_file: bool = False
    fails_on_output: bool = False
    failure_prefix: str = ""

    def is_available(self) -> bool:
        """Return whether every required executable is on PATH."""
        return all(command_exists(name) for name in self.requires)


CATEGORY_PROVIDERS: Mapping[FileCategory, tuple[CheckProvider, ...]] = MappingProxyType(
    {
        FileCategory.GO: (
            CheckProvider(
                tool="gofmt",
                requires=("go", "gofmt"),
                build_argv=lambda files: ["gofmt", "-l", *files],
                success_message="All Go files properly formatted",
                failure_message="Go formatting issues found",
                fails_on_output=True,
                failure_prefix="Files not formatted:\n",
            ),
            CheckProvider(
                tool="go vet",
                requires=("go",),
                build_argv=lambda files: ["go", "vet", "./..."],
                success_message="No issues found by go vet",
                failure_message="Go vet found issues",
            ),
            CheckProvider(
                tool="golangci-lint",
                requires=("go", "golangci-lint"),
                build_argv=lambda files: ["golangci-lint", "run"],
                success_message="No linting issues found",
                failure_message="Linter found issues",
            ),
        ),
        FileCategory.DART: (
            CheckProvider(
                tool="dart analyze",
                requires=("dart",),
                build_argv=lambda files: ["dart", "analyze"],
                success_message="No Dart issues found",
                failure_message="Dart analysis found issues",
            ),
            CheckProvider(
                tool="flutter analyze",
                requires=("dart", "flutter"),
                build_argv=lambda files: ["flutter", "analyze"],
                success_message="No Flutter issues found",
                failure_message="Flutter analysis found issues",
            ),
        ),
        FileCategory.SHELL: (
            CheckProvider(
                tool="shellcheck",
                requires=("shellcheck",),
                build_argv=lambda files: ["shellcheck", "-f", "gcc", *files],
                success_message="No shell script issues",
                failure_message="Shellcheck found issues",
                per_file=True,
            ),
        ),
        FileCategory.JAVASCRIPT: (
            CheckProvider(
                tool="eslint",
                requires=("eslint",),
                build_argv=lambda files: ["eslint", *files],
                success_message="No ESLint issues found",
                failure_message="ESLint found issues",
            ),
        ),
    }
)


def categorize_file(path: Path | str) -> FileCategory | None:
    """Return the category for a file extension, if it has one."""
    return EXTENSION_CATEGORIES.get(Path(path).suffix.lower())


class CheckRunner:
    """Classify files and run every applicable, available check provider."""

    def __init__(
        self,
        repo_path: Path | str,
        *,
        timeout_seconds: float = DEFAULT_CHECK_TIMEOUT_SECONDS,
        providers: Mapping[FileCategory, Sequence[CheckProvider]] = CATEGORY_PROVIDERS,
    ) -> None:
        self._repo_path = Path(repo_path)
        self._timeout_seconds = timeout_seconds
        self._providers = providers

    def group_files(self, files: Iterable[str]) -> dict[FileCategory, list[str]]:
        """Drop missing paths and group the rest by category."""
        groups: dict[FileCategory, list[str]] = {}
        for file in files:
            path = Path(file)
            if not path.is_absolute():
                path = self._repo_path / path
            if not path.exists():
                continue
            category = categorize_file(path)
            if category is None:
                continue
            groups.setdefault(category, []).append(str(path))
        return groups

    def run_checks(self, files: Iterable[str]) -> list[CheckResult]:
        """Run all checks for the given files, never stopping at a failure."""
        groups = self.group_files(files)
        results: list[CheckResult] = []
        for category in CATEGORY_ORDER:
            category_files = groups.get(category)
            if not category_files:
                continue
            for provider in self._providers.get(category, ()):
                results.extend(self._run_provider(provider, category_files))
        return results

    def _run_provider(self, provider: CheckProvider, files: Sequence[str]) -> list[CheckResult]:
        """Run one provider over its files."""
        if not provider.is_available():
            logger.info("check.skipped", tool=provider.tool, reason="tool not found on PATH")
            return []

        if provider.per_file:
            return [
                self._invoke(provider, provider.build_argv([file]), file=file) for file in files
            ]
        return [self._invoke(provider, provider.build_argv(files))]

    def _invoke(
        self,
        provider: CheckProvider,
        argv: list[str],
        *,
        file: str | None = None,
    ) -> CheckResult:
        """Run the provider command and normalize its outcome."""
        logger.debug("check.start", tool=provider.tool, file=file)
        execution = run_argv(argv, cwd=self._repo_path, timeout_seconds=self._timeout_seconds)
        result = build_check_result(provider, execution, file=file)
        logger.info("check.finish", tool=provider.tool, file=file, success=result.success)
        return result


def build_check_result(
    provider: CheckProvider,
    execution: ExecutionResult,
    *,
    file: str | None = None,
) -> CheckResult:
    """Map a raw execution outcome onto a check result."""
    failed = not execution.success or (provider.fails_on_output and bool(execution.output))
    if not failed:
        return CheckResult(
            tool=provider.tool,
            file=file,
            severity=Severity.INFO,
            message=provider.success_message,
            success=True,
        )

    errors: list[str] = []
    if execution.output:
        errors.append(provider.failure_prefix + execution.output)
    if execution.timed_out or (execution.error and not execution.output):
        errors.append(f"{provider.tool} {execution.error}")
    return CheckResult(
        tool=provider.tool,
        file=file,
        severity=Severity.ERROR,
        message=provider.failure_message,
        success=False,
        output=execution.output,
        errors=errors,
    )


def explain_failure(failure_type: str, details: str = "") -> str:
    """Return remediation guidance for a failed check or test."""
    explanation = FAILURE_EXPLANATIONS.get(failure_type)
    if not explanation:
        explanation = f"Check '{failure_type}' failed. Review the details and fix the issues."
    if details:
        explanation += "\n\nDetails:\n" + details
    return explanation
