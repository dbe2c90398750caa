"""Test-suite configuration and process settings."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_FILENAME = ".mcp.yml"
DEFAULT_TEST_TIMEOUT_SECONDS = 300
DEFAULT_CHECK_TIMEOUT_SECONDS = 300.0
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILENAME = "git-guardian-mcp.log"
LOG_LEVEL_ENV_VAR = "GIT_GUARDIAN_LOG_LEVEL"
LOG_FILE_ENV_VAR = "GIT_GUARDIAN_LOG_FILE"
CHECK_TIMEOUT_ENV_VAR = "GIT_GUARDIAN_CHECK_TIMEOUT"
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class ConfigError(ValueError):
    """Raised when configuration cannot be loaded or is invalid."""


class TestSpec(BaseModel):
    """One named test command from the configuration file."""

    __test__ = False

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = Field(min_length=1)
    command: str = ""
    blocking: bool = False
    timeout: int = Field(default=DEFAULT_TEST_TIMEOUT_SECONDS, ge=0)

    @field_validator("command", mode="before")
    @classmethod
    def coerce_missing_command(cls, value: Any) -> Any:
        """Treat an explicit null command as empty."""
        return "" if value is None else value

    @field_validator("timeout", mode="before")
    @classmethod
    def default_unset_timeout(cls, value: Any) -> Any:
        """Map an unset or zero timeout to the default."""
        if value is None or value == 0:
            return DEFAULT_TEST_TIMEOUT_SECONDS
        return value


class GuardianConfig(BaseModel):
    """Parsed configuration file."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    tests: list[TestSpec] = Field(default_factory=list)

    @field_validator("tests", mode="before")
    @classmethod
    def coerce_missing_tests(cls, value: Any) -> Any:
        """Treat an empty ``tests:`` key as an empty list."""
        return [] if value is None else value


def resolve_config_path(config_path: Path | str, repo_path: Path | str) -> Path:
    """Resolve a relative config path against the repository path."""
    path = Path(config_path)
    if path.is_absolute():
        return path
    return Path(repo_path) / path


def load_config(path: Path | str) -> GuardianConfig:
    """Load and parse a YAML test configuration."""
    config_path = Path(path)
    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except OSError as error:
        raise ConfigError(f"failed to read config file {config_path}: {error}") from error

    try:
        document = yaml.safe_load(raw_text)
    except yaml.YAMLError as error:
        raise ConfigError(f"failed to parse config file {config_path}: {error}") from error

    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise ConfigError(f"failed to parse config file {config_path}: expected a mapping")

    try:
        return GuardianConfig.model_validate(document)
    except ValidationError as error:
        raise ConfigError(f"invalid config file {config_path}: {error}") from error


def validate_config(config: GuardianConfig) -> None:
    """Apply strict checks that loading alone does not enforce."""
    if not config.tests:
        raise ConfigError("no tests configured")

    seen: set[str] = set()
    for test in config.tests:
        if not test.name.strip():
            raise ConfigError("test name cannot be empty")
        if not test.command.strip():
            raise ConfigError(f"test command cannot be empty for test '{test.name}'")
        if test.name in seen:
            raise ConfigError(f"duplicate test name '{test.name}'")
        seen.add(test.name)


@dataclass(frozen=True, slots=True)
class GuardianSettings:
    """Process-level settings read from the environment."""

    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Path | None = None
    check_timeout_seconds: float = DEFAULT_CHECK_TIMEOUT_SECONDS


def default_log_file() -> Path:
    """Return the default log file location."""
    return Path(tempfile.gettempdir()) / DEFAULT_LOG_FILENAME


def load_settings() -> GuardianSettings:
    """Read settings from the environment, honouring a local .env file."""
    load_dotenv()

    log_level = (os.getenv(LOG_LEVEL_ENV_VAR) or DEFAULT_LOG_LEVEL).strip().upper()
    if log_level not in VALID_LOG_LEVELS:
        raise ConfigError(
            f"{LOG_LEVEL_ENV_VAR} must be one of {sorted(VALID_LOG_LEVELS)}, got '{log_level}'."
        )

    log_file_value = os.getenv(LOG_FILE_ENV_VAR)
    if log_file_value is None:
        log_file: Path | None = default_log_file()
    elif log_file_value.strip():
        log_file = Path(log_file_value.strip())
    else:
        log_file = None

    timeout_value = os.getenv(CHECK_TIMEOUT_ENV_VAR)
    check_timeout_seconds = DEFAULT_CHECK_TIMEOUT_SECONDS
    if timeout_value is not None and timeout_value.strip():
        try:
            check_timeout_seconds = float(timeout_value)
        except ValueError as error:
            raise ConfigError(
                f"{CHECK_TIMEOUT_ENV_VAR} must be a number, got '{timeout_value}'."
            ) from error
        if check_timeout_seconds <= 0:
            raise ConfigError(f"{CHECK_TIMEOUT_ENV_VAR} must be positive, got '{timeout_value}'.")

    return GuardianSettings(
        log_level=log_level,
        log_file=log_file,
        check_timeout_seconds=check_timeout_seconds,
    )
