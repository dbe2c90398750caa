"""Bounded external command execution."""

from __future__ import annotations

import os
import shlex
import shutil
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

OUTPUT_SEPARATOR = "\n"


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Outcome of one child-process run."""

    output: str
    success: bool
    duration_seconds: float
    exit_code: int | None = None
    timed_out: bool = False
    error: str | None = None


def command_exists(name: str) -> bool:
    """Return whether an executable is discoverable on PATH."""
    return shutil.which(name) is not None


def combine_output(stdout: str, stderr: str) -> str:
    """Join stdout and stderr, with stderr appended after a separator."""
    output = stdout
    if stderr:
        output += OUTPUT_SEPARATOR + stderr
    return output.strip()


def run_command(
    command: str,
    *,
    cwd: Path | str,
    timeout_seconds: float | None = None,
) -> ExecutionResult:
    """Run a command line and capture its combined output.

    The command is tokenised with shell quoting rules but no shell is spawned.
    When ``timeout_seconds`` is set, the child process group is killed once the
    deadline passes and the result is marked as timed out.
    """
    try:
        argv = shlex.split(command)
    except ValueError as error:
        return ExecutionResult(
            output="",
            success=False,
            duration_seconds=0.0,
            error=f"invalid command: {error}",
        )
    if not argv:
        return ExecutionResult(output="", success=False, duration_seconds=0.0, error="empty command")
    return run_argv(argv, cwd=cwd, timeout_seconds=timeout_seconds)


def run_argv(
    argv: list[str],
    *,
    cwd: Path | str,
    timeout_seconds: float | None = None,
) -> ExecutionResult:
    """Run an already tokenised command."""
    if not argv:
        return ExecutionResult(output="", success=False, duration_seconds=0.0, error="empty command")

    start = time.monotonic()
    try:
        process = subprocess.Popen(
            argv,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            start_new_session=True,
        )
    except OSError as error:
        return ExecutionResult(
            output="",
            success=False,
            duration_seconds=time.monotonic() - start,
            error=str(error),
        )
    except ValueError as error:
        # Popen rejects arguments it cannot pass to exec, e.g. embedded NUL bytes.
        return ExecutionResult(
            output="",
            success=False,
            duration_seconds=time.monotonic() - start,
            error=f"invalid command: {error}",
        )

    try:
        stdout, stderr = process.communicate(timeout=timeout_seconds)
    except subprocess.TimeoutExpired:
        _kill_process_group(process)
        stdout, stderr = process.communicate()
        return ExecutionResult(
            output=combine_output(stdout or "", stderr or ""),
            success=False,
            duration_seconds=time.monotonic() - start,
            exit_code=process.returncode,
            timed_out=True,
            error=f"timed out after {_format_seconds(timeout_seconds)} seconds",
        )

    duration = time.monotonic() - start
    exit_code = process.returncode
    return ExecutionResult(
        output=combine_output(stdout, stderr),
        success=exit_code == 0,
        duration_seconds=duration,
        exit_code=exit_code,
        error=None if exit_code == 0 else f"exit status {exit_code}",
    )


def _kill_process_group(process: subprocess.Popen[str]) -> None:
    """Kill the child and anything it spawned in its session."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        process.kill()


def _format_seconds(seconds: float | None) -> str:
    """Render a timeout without a trailing .0 for whole seconds."""
    if seconds is None:
        return "0"
    if float(seconds).is_integer():
        return str(int(seconds))
    return str(seconds)
