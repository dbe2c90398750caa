"""Tool registry and the push-guard tool handlers."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import asdict, dataclass
from types import MappingProxyType
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from git_guardian.checks import CheckRunner, explain_failure
from git_guardian.config import (
    DEFAULT_CHECK_TIMEOUT_SECONDS,
    DEFAULT_CONFIG_FILENAME,
    ConfigError,
    load_config,
    resolve_config_path,
)
from git_guardian.git_client import GitCommandError, GitRepository
from git_guardian.runner import TestRunner
from git_guardian.schema import blocking_tests_passed, checks_passed
from git_guardian.validation import validate_push

ToolHandler = Callable[[Any], dict[str, Any]]
ParamsModel = TypeVar("ParamsModel", bound=BaseModel)


class ToolExecutionError(RuntimeError):
    """Raised by a tool handler when it cannot produce a result."""


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """A named tool exposed over the protocol."""

    name: str
    description: str
    handler: ToolHandler


def build_tool_registry(descriptors: Iterable[ToolDescriptor]) -> Mapping[str, ToolDescriptor]:
    """Build a read-only registry keyed by tool name, in registration order."""
    registry: dict[str, ToolDescriptor] = {}
    for descriptor in descriptors:
        if descriptor.name in registry:
            raise ValueError(f"Duplicate tool name '{descriptor.name}'.")
        registry[descriptor.name] = descriptor
    return MappingProxyType(registry)


class _ToolParams(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AnalyzeCommitsParams(_ToolParams):
    repo_path: str = "."
    remote: str = "origin"
    branch: str | None = None


class RunChecksParams(_ToolParams):
    repo_path: str = "."
    files: list[str] = Field(default_factory=list)


class RunTestsParams(_ToolParams):
    repo_path: str = "."
    config_path: str = DEFAULT_CONFIG_FILENAME


class ExplainFailureParams(_ToolParams):
    failure_type: str
    details: str = ""


class ValidatePushParams(AnalyzeCommitsParams):
    config_path: str = DEFAULT_CONFIG_FILENAME


def parse_params(model: type[ParamsModel], arguments: Any) -> ParamsModel:
    """Validate raw tool arguments; null or empty-string fields take defaults."""
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ToolExecutionError("invalid parameters: arguments must be a JSON object")
    cleaned = {
        key: value for key, value in arguments.items() if value is not None and value != ""
    }
    try:
        return model.model_validate(cleaned)
    except ValidationError as error:
        raise ToolExecutionError(f"invalid parameters: {error}") from error


def handle_analyze_commits(arguments: Any) -> dict[str, Any]:
    """List unpushed commits and the files they touch."""
    params = parse_params(AnalyzeCommitsParams, arguments)
    repository = GitRepository(params.repo_path)
    try:
        commits = repository.get_unpushed_commits(params.remote, params.branch)
    except GitCommandError as error:
        raise ToolExecutionError(f"failed to get unpushed commits: {error}") from error

    return {
        "success": True,
        "commits": [asdict(commit) for commit in commits],
        "total_commits": len(commits),
        "changed_files": repository.get_changed_files(commits),
    }


def make_run_checks_handler(
    check_timeout_seconds: float = DEFAULT_CHECK_TIMEOUT_SECONDS,
) -> ToolHandler:
    """Build the run_checks handler with a fixed per-check deadline."""

    def handle_run_checks(arguments: Any) -> dict[str, Any]:
        params = parse_params(RunChecksParams, arguments)
        results = CheckRunner(
            params.repo_path, timeout_seconds=check_timeout_seconds
        ).run_checks(params.files)
        return {
            "success": checks_passed(results),
            "results": [result.model_dump(mode="json") for result in results],
        }

    return handle_run_checks


def handle_run_tests(arguments: Any) -> dict[str, Any]:
    """Run the configured test suite."""
    params = parse_params(RunTestsParams, arguments)
    try:
        config = load_config(resolve_config_path(params.config_path, params.repo_path))
    except ConfigError as error:
        raise ToolExecutionError(f"failed to load config: {error}") from error

    results = TestRunner(params.repo_path, config.tests).run_all()
    return {
        "success": blocking_tests_passed(results),
        "results": [result.model_dump(mode="json") for result in results],
    }


def handle_explain_failure(arguments: Any) -> dict[str, Any]:
    """Explain how to address a failure type."""
    params = parse_params(ExplainFailureParams, arguments)
    return {
        "success": True,
        "explanation": explain_failure(params.failure_type, params.details),
    }


def make_validate_push_handler(
    check_timeout_seconds: float = DEFAULT_CHECK_TIMEOUT_SECONDS,
) -> ToolHandler:
    """Build the validate_push handler with a fixed per-check deadline."""

    def handle_validate_push(arguments: Any) -> dict[str, Any]:
        params = parse_params(ValidatePushParams, arguments)
        try:
            verdict = validate_push(
                params.repo_path,
                remote=params.remote,
                branch=params.branch,
                config_path=params.config_path,
                check_timeout_seconds=check_timeout_seconds,
            )
        except GitCommandError as error:
            raise ToolExecutionError(f"failed to get unpushed commits: {error}") from error
        return verdict.model_dump(mode="json")

    return handle_validate_push


def default_tools(
    check_timeout_seconds: float = DEFAULT_CHECK_TIMEOUT_SECONDS,
) -> Mapping[str, ToolDescriptor]:
    """Return the registry served by default."""
    return build_tool_registry(
        [
            ToolDescriptor(
                name="analyze_commits",
                description="Analyze unpushed commits for issues",
                handler=handle_analyze_commits,
            ),
            ToolDescriptor(
                name="run_checks",
                description="Run syntax and static analysis checks",
                handler=make_run_checks_handler(check_timeout_seconds),
            ),
            ToolDescriptor(
                name="run_tests",
                description="Execute configured test suites",
                handler=handle_run_tests,
            ),
            ToolDescriptor(
                name="explain_failure",
                description="Get detailed explanation of a failure",
                handler=handle_explain_failure,
            ),
            ToolDescriptor(
                name="validate_push",
                description="Complete validation before push",
                handler=make_validate_push_handler(check_timeout_seconds),
            ),
        ]
    )
