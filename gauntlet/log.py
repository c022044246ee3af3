"""
Structured logging setup.

Call configure_logging() once at process start (the API app and the CLI do).
Modules log through structlog.get_logger(__name__) with key/value events.
"""

import logging

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog with JSON output and a level filter."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=numeric_level)

    # httpx logs every judge request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
