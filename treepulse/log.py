"""
TreePulse — Logging wrapper (structlog, JSON lines)

VERBOSE_LOGGING lets debug events through; otherwise INFO and above.
"""
import logging

import structlog

from .config import get_settings


def configure_logging(verbose: bool = False) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        # module-level loggers must pick up a later reconfigure
        cache_logger_on_first_use=False,
    )


configure_logging(get_settings().VERBOSE_LOGGING)


def get_logger(name: str = "treepulse"):
    return structlog.get_logger(name)
