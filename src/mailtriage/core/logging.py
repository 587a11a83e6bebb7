"""Structured logging for the mail triage service.

structlog renders JSON to stdout under the server and colored console
output under the CLI. The triage cycle ID is bound into structlog's
context variables, so every entry logged while a cycle runs (including
entries from the per-email tasks it spawns) carries `triage_cycle_id`.

Usage:
    from mailtriage.core.logging import get_logger, set_correlation_id

    logger = get_logger(__name__)

    set_correlation_id(cycle_id)
    logger.info("clarification_sent", email_id="abc123", thread_id="t-1")
    set_correlation_id(None)
"""

import logging
import sys

import structlog

CORRELATION_KEY = "triage_cycle_id"

# Client libraries that are chatty at INFO (request lines, discovery cache)
_NOISY_LOGGERS = ("googleapiclient.discovery_cache", "httpx", "httpcore", "apscheduler")


def set_correlation_id(correlation_id: str | None) -> None:
    """Bind (or with None, clear) the triage cycle ID for this context.

    asyncio tasks copy the context when created, so tasks gathered by a
    cycle after this call log under the cycle's ID.
    """
    if correlation_id is None:
        structlog.contextvars.unbind_contextvars(CORRELATION_KEY)
    else:
        structlog.contextvars.bind_contextvars(**{CORRELATION_KEY: correlation_id})


def get_correlation_id() -> str | None:
    """Return the triage cycle ID bound to this context, if any."""
    return structlog.contextvars.get_contextvars().get(CORRELATION_KEY)


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        json_output: JSON lines if True, colored console output otherwise
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, typically named after the calling module."""
    return structlog.get_logger(name)
