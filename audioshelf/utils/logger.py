import logging
import sys

import structlog

from audioshelf.core.config import settings


def setup_logging(level: str = None, json_logs: bool = None) -> None:
    """Configure structlog and route stdlib logging through the same level."""
    level = (level or settings.log_level).upper()
    json_logs = settings.log_json if json_logs is None else json_logs
    log_level = getattr(logging, level, logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    # uvicorn installs its own handlers; keep its access log at our level
    logging.getLogger("uvicorn.access").setLevel(log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
