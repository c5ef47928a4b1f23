"""Structured logging configuration using structlog.

Core modules log through plain ``logging.getLogger(__name__)`` loggers; the
handler installed here renders those records with the same structlog
processors as loggers obtained from :func:`get_logger`.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

import structlog


def _renderer(json_output: bool) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_logger_name,
    ]


def build_formatter(json_output: bool = False) -> structlog.stdlib.ProcessorFormatter:
    """Formatter rendering both structlog events and foreign stdlib records."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(json_output),
        ],
    )


def configure_logging(
    json_output: bool = False, level: str = "INFO", stream: Optional[TextIO] = None
) -> None:
    """Configure structlog and the root logger for einc.

    Args:
        json_output: If True, output JSON; otherwise plain console output.
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        stream: Destination of log lines; defaults to stderr so stdout stays
            free for command output.
    """
    structlog.configure(
        processors=_shared_processors()
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(build_formatter(json_output))
    root.addHandler(handler)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
