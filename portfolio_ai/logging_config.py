"""structlog setup: console output locally, JSON lines everywhere else."""
import logging
import sys
from typing import Optional

import structlog

from portfolio_ai.config import get_settings

SERVICE_NAME = "portfolio_ai"

# Client libraries that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "asyncio")


def configure_logging(level_name: Optional[str] = None) -> None:
    """Configure structlog and the stdlib root logger. Safe to call more than once."""
    settings = get_settings()
    level = getattr(logging, (level_name or settings.log_level).upper(), logging.INFO)
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.app_env == "local"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=SERVICE_NAME, env=settings.app_env)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
