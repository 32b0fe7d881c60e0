"""Structured logging setup."""

import logging
import os

import structlog

ENV_ENVIRONMENT = "PLODLOG_ENVIRONMENT"


def setup_structured_logging(level=logging.INFO, production=None):
    """Render every stdlib ``logging`` record through structlog.

    JSON lines when ``PLODLOG_ENVIRONMENT=production`` (or *production* is true), console
    output otherwise. Returns the installed root handler.
    """
    if production is None:
        production = os.getenv(ENV_ENVIRONMENT, "development") == "production"

    pre_chain = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if production:
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderers = [structlog.dev.ConsoleRenderer()]

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    return handler
