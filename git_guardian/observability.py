"""Logging setup.

Stdout carries protocol responses only, so logs go to a file or to stderr.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog

LOGGER_NAMESPACE = "git_guardian"


def configure_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Route structlog output to ``log_file``, or to stderr when it is None."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))

    package_logger = logging.getLogger(LOGGER_NAMESPACE)
    for existing in list(package_logger.handlers):
        package_logger.removeHandler(existing)
        existing.close()
    package_logger.addHandler(handler)
    package_logger.setLevel(log_level)
    package_logger.propagate = False

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a logger bound under the package namespace."""
    return structlog.get_logger(name)


def _stderr_logger(*args: object) -> structlog.PrintLogger:
    return structlog.PrintLogger(sys.stderr)


def configure_default_logging() -> None:
    """Send logs to stderr until ``configure_logging`` runs.

    Does nothing when structlog has already been configured.
    """
    if structlog.is_configured():
        return
    structlog.configure(logger_factory=_stderr_logger, cache_logger_on_first_use=False)


configure_default_logging()
