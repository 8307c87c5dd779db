"""Structured logging for the timetable engine using structlog.

Console output while developing, JSON lines in production. Everything goes to
stderr: stdout belongs to the CLI's JSON / table / ICS output.

Use get_logger(__name__) in modules, and course_context() around per-course
work so every event of that stretch carries the course ID.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from src.timetable.config import get_config


def setup_logging(json_output: bool | None = None, log_level: str | None = None) -> None:
    """Configure structlog for the engine and the CLI.

    Args:
        json_output: JSON lines if True, console format if False.
                     Defaults to the LOG_JSON setting.
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
                   Defaults to the LOG_LEVEL setting.
    """
    config = get_config()
    if json_output is None:
        json_output = config.log_json
    level = getattr(logging, (log_level or config.log_level).upper(), logging.INFO)

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors += [
            structlog.dev.set_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Third-party stdlib loggers share the level and stream
    root = logging.getLogger()
    root.handlers = [logging.StreamHandler(sys.stderr)]
    root.setLevel(level)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger bound with the module name."""
    return structlog.get_logger(name)


@contextmanager
def course_context(course_id: str) -> Iterator[None]:
    """Attach course_id to every log event emitted inside the block."""
    with structlog.contextvars.bound_contextvars(course_id=course_id):
        yield
