"""Structured logging setup using structlog.

One shared processor chain (context vars, log level, stack info, exception
info, ISO timestamps) ends in either a coloured ConsoleRenderer during
development or a JSONRenderer in production.  ``APP_ENV=production`` or the
``json_output`` flag selects JSON.

Standard-library ``logging`` goes through the same chain, so aiosqlite and
PyMuPDF warnings come out in the indexer's format.  Indexing runs bind
``source_id`` and ``origin`` with :func:`indexing_log_context`; every event
logged inside the run carries both keys.
"""

import contextlib
import logging
import os
import sys
from collections.abc import Iterator

import structlog

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("aiosqlite", "PIL")


def _shared_processors() -> list[structlog.types.Processor]:
    # contextvars first so bound run keys appear on every event.
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _select_renderer(json_output: bool) -> structlog.types.Processor:
    if json_output or os.environ.get("APP_ENV", "development") == "production":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog and bridge stdlib logging into it.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output regardless of ``APP_ENV``.

    Returns:
        A configured structlog BoundLogger.
    """
    level = log_level.upper()
    shared = _shared_processors()
    renderer = _select_renderer(json_output)

    structlog.configure(
        processors=[*shared, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *shared,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root_logger.level))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a logger bound with *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


@contextlib.contextmanager
def indexing_log_context(source_id: str, origin: str) -> Iterator[None]:
    """Bind ``source_id`` and ``origin`` to every event logged in the block."""
    with structlog.contextvars.bound_contextvars(source_id=source_id, origin=origin):
        yield
