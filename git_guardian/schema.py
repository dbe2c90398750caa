"""Result contracts for checks, tests and push validation."""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Severity(StrEnum):
    """Severity attached to a check outcome."""

    INFO = "info"
    ERROR = "error"


class FileCategory(StrEnum):
    """File groups that share one set of check providers."""

    GO = "go"
    DART = "dart"
    SHELL = "shell"
    JAVASCRIPT = "javascript"


class CheckResult(BaseModel):
    """Normalized outcome of one check provider invocation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    tool: str = Field(min_length=1)
    file: str | None = None
    line: int | None = Field(default=None, ge=1)
    column: int | None = Field(default=None, ge=1)
    severity: Severity
    message: str
    success: bool
    output: str = ""
    errors: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_severity_matches_outcome(self) -> CheckResult:
        """Successful checks are informational, failing checks are errors."""
        expected = Severity.INFO if self.success else Severity.ERROR
        if self.severity != expected:
            raise ValueError(f"severity must be '{expected}' when success={self.success}")
        return self


class TestResult(BaseModel):
    """Outcome of one configured test command."""

    __test__ = False

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    success: bool
    blocking: bool
    duration: float = Field(ge=0.0)
    output: str = ""
    error: str | None = None


class ValidationVerdict(BaseModel):
    """Combined pre-push verdict."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    success: bool
    message: str = ""
    commits: int = Field(default=0, ge=0)
    changed_files: int = Field(default=0, ge=0)
    checks: list[CheckResult] = Field(default_factory=list)
    tests: list[TestResult] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


def checks_passed(results: Iterable[CheckResult]) -> bool:
    """Return whether every check succeeded."""
    return all(result.success for result in results)


def blocking_tests_passed(results: Iterable[TestResult]) -> bool:
    """Return whether no blocking test failed."""
    return not any(not result.success and result.blocking for result in results)
