"""Logging setup for the ``borgreport`` command.

Both the stdlib loggers used across the pipeline and the structlog loggers
used by the delivery sinks end up on stderr, leaving stdout to the report.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


def level_for_verbosity(verbosity: int) -> int:
    return _LEVELS[max(0, min(verbosity, len(_LEVELS) - 1))]


def configure_logging(verbosity: int = 0, *, stream: TextIO | None = None) -> int:
    """Configure stdlib logging and structlog; return the effective level."""

    level = level_for_verbosity(verbosity)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    return level


__all__ = ["configure_logging", "level_for_verbosity"]
