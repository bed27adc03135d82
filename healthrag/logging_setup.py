"""Structured logging setup shared by the API and the command line scripts."""
import logging
import sys

import structlog

from healthrag import config


def configure_logging(level: str = None, json_output: bool = None) -> None:
    """Configure stdlib logging and structlog.

    Args:
        level: Log level name (default from config)
        json_output: Render JSON lines instead of console output (default from config)
    """
    level = (level or config.LOG_LEVEL).upper()
    if json_output is None:
        json_output = config.LOG_JSON

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer(ensure_ascii=False)
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
