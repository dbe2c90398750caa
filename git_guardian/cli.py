"""Typer CLI for the push guard."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Annotated, Any

import typer

from git_guardian.config import (
    DEFAULT_CONFIG_FILENAME,
    ConfigError,
    GuardianSettings,
    load_config,
    load_settings,
    resolve_config_path,
    validate_config,
)
from git_guardian.git_client import GitCommandError, GitRepository
from git_guardian.observability import configure_logging
from git_guardian.output import render_check_lines, render_markdown_report, render_test_lines
from git_guardian.schema import CheckResult, TestResult
from git_guardian.server import SERVER_NAME, SERVER_VERSION, ProtocolServer, ProtocolStreamError
from git_guardian.tools import (
    ToolExecutionError,
    default_tools,
    handle_run_tests,
    make_run_checks_handler,
)
from git_guardian.validation import validate_push

app = typer.Typer(help="Validate unpushed commits before git push.")


def _settings(log_level: str | None, log_file: str | None) -> GuardianSettings:
    """Load environment settings, apply CLI overrides and configure logging."""
    try:
        settings = load_settings()
    except ConfigError as error:
        typer.echo(f"Configuration error: {error}", err=True)
        raise typer.Exit(code=2) from error

    level = (log_level or settings.log_level).upper()
    if log_file is None:
        destination = settings.log_file
    else:
        destination = Path(log_file) if log_file else None
    configure_logging(level=level, log_file=destination)
    return settings


def _emit(payload: dict[str, Any], output_format: str, markdown: str) -> None:
    if output_format == "json":
        typer.echo(json.dumps(payload, indent=2))
    elif output_format == "md":
        typer.echo(markdown)
    else:
        raise typer.BadParameter("Use md or json.", param_hint="--output-format")


LogLevelOption = Annotated[
    str | None, typer.Option(help="Log level, overrides GIT_GUARDIAN_LOG_LEVEL.")
]
LogFileOption = Annotated[
    str | None,
    typer.Option(help="Log file path, overrides GIT_GUARDIAN_LOG_FILE. Empty logs to stderr."),
]
RepoPathOption = Annotated[str, typer.Option(help="Path to the git repository.")]
ConfigPathOption = Annotated[
    str, typer.Option(help="Test configuration file, relative to the repository.")
]
OutputFormatOption = Annotated[str, typer.Option(help="Output format: md|json.")]


@app.command("serve")
def serve_command(
    log_level: LogLevelOption = None,
    log_file: LogFileOption = None,
) -> None:
    """Serve the tools over newline-delimited JSON-RPC on stdin/stdout."""
    settings = _settings(log_level, log_file)
    server = ProtocolServer(
        default_tools(settings.check_timeout_seconds),
        reader=sys.stdin.buffer,
        writer=sys.stdout,
    )
    try:
        server.serve()
    except ProtocolStreamError as error:
        typer.echo(f"Server error: {error}", err=True)
        raise typer.Exit(code=1) from error


@app.command("version")
def version_command() -> None:
    """Print the version."""
    typer.echo(f"{SERVER_NAME} v{SERVER_VERSION}")


@app.command("validate")
def validate_command(
    repo_path: RepoPathOption = ".",
    remote: Annotated[str, typer.Option(help="Remote to compare against.")] = "origin",
    branch: Annotated[
        str | None, typer.Option(help="Branch to compare, defaults to the current branch.")
    ] = None,
    config_path: ConfigPathOption = DEFAULT_CONFIG_FILENAME,
    output_format: OutputFormatOption = "md",
    log_level: LogLevelOption = None,
    log_file: LogFileOption = None,
) -> None:
    """Validate unpushed commits; exits 1 when the push should be blocked."""
    settings = _settings(log_level, log_file)
    try:
        verdict = validate_push(
            repo_path,
            remote=remote,
            branch=branch,
            config_path=config_path,
            check_timeout_seconds=settings.check_timeout_seconds,
        )
    except GitCommandError as error:
        typer.echo(f"Validation failed: {error}", err=True)
        raise typer.Exit(code=1) from error

    _emit(verdict.model_dump(mode="json"), output_format, render_markdown_report(verdict))
    if not verdict.success:
        raise typer.Exit(code=1)


@app.command("check")
def check_command(
    files: Annotated[list[str] | None, typer.Argument(help="Files to check.")] = None,
    staged: Annotated[
        bool, typer.Option("--staged", help="Check the files staged in the index.")
    ] = False,
    repo_path: RepoPathOption = ".",
    output_format: OutputFormatOption = "md",
    log_level: LogLevelOption = None,
    log_file: LogFileOption = None,
) -> None:
    """Run static-analysis checks on files, or on the staged files with --staged."""
    settings = _settings(log_level, log_file)
    targets = list(files or [])
    if staged:
        try:
            targets.extend(GitRepository(repo_path).get_staged_files())
        except GitCommandError as error:
            typer.echo(f"Check failed: {error}", err=True)
            raise typer.Exit(code=1) from error
    elif not targets:
        raise typer.BadParameter("Pass files to check or use --staged.", param_hint="FILES")

    handler = make_run_checks_handler(settings.check_timeout_seconds)
    payload = handler({"repo_path": repo_path, "files": targets})
    markdown = "\n".join(_check_report(payload))
    _emit(payload, output_format, markdown)
    if not payload["success"]:
        raise typer.Exit(code=1)


@app.command("run-tests")
def run_tests_command(
    repo_path: RepoPathOption = ".",
    config_path: ConfigPathOption = DEFAULT_CONFIG_FILENAME,
    output_format: OutputFormatOption = "md",
    log_level: LogLevelOption = None,
    log_file: LogFileOption = None,
) -> None:
    """Run the configured tests; exits 1 on a blocking failure."""
    _settings(log_level, log_file)
    try:
        payload = handle_run_tests({"repo_path": repo_path, "config_path": config_path})
    except ToolExecutionError as error:
        typer.echo(f"Test run failed: {error}", err=True)
        raise typer.Exit(code=1) from error

    markdown = "\n".join(_test_report(payload))
    _emit(payload, output_format, markdown)
    if not payload["success"]:
        raise typer.Exit(code=1)


@app.command("config-check")
def config_check_command(
    repo_path: RepoPathOption = ".",
    config_path: ConfigPathOption = DEFAULT_CONFIG_FILENAME,
) -> None:
    """Load and strictly validate the test configuration."""
    path = resolve_config_path(config_path, repo_path)
    try:
        config = load_config(path)
        validate_config(config)
    except ConfigError as error:
        typer.echo(f"Config check failed: {error}")
        raise typer.Exit(code=1) from error

    typer.echo(f"{path}: {len(config.tests)} test(s) configured.")
    for test in config.tests:
        kind = "blocking" if test.blocking else "non-blocking"
        typer.echo(f"- {test.name} ({kind}, timeout {test.timeout}s): {test.command}")


def _check_report(payload: dict[str, Any]) -> list[str]:
    return render_check_lines([CheckResult.model_validate(row) for row in payload["results"]])


def _test_report(payload: dict[str, Any]) -> list[str]:
    return render_test_lines([TestResult.model_validate(row) for row in payload["results"]])
