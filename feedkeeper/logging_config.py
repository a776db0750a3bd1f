"""structlog setup for the command-line entry points."""

import logging
import sys

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Render key/value console logs to stderr at the given level.

    Library code only calls structlog.get_logger(); nothing is configured on
    import.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
