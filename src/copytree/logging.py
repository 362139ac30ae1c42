from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

_LOGGING_CONFIGURED = False


def setup_logging(filename: str | Path | None = None, *, level: int = logging.INFO) -> structlog.BoundLogger:
    """Set up structured logging for the copytree package.

    The first call wins: later calls return the shared logger without
    reconfiguring handlers, unless a log file is requested, in which case the
    root handlers are replaced so events go to that file.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        level: Minimum level of emitted events.

    Returns:
        A structlog logger instance configured for the copytree package.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if not _LOGGING_CONFIGURED or filename:
        handlers: list[logging.Handler] = []
        if filename:
            handlers.append(logging.FileHandler(str(filename), encoding="utf-8"))
        else:
            handlers.append(logging.StreamHandler(sys.stderr))

        logging.basicConfig(
            level=level,
            handlers=handlers,
            format="%(message)s",
            force=bool(filename),
        )
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(ensure_ascii=False),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_CONFIGURED = True

    return structlog.get_logger("copytree")


logger = setup_logging()
