# plastik/core/logging_config.py
"""
Centralized logging configuration for the application.

Quietens the HTTP, database, cache and payment client libraries while keeping
the storefront's own loggers at the configured level.
"""

import logging
import os


NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "urllib3",
    "sqlalchemy",
    "sqlalchemy.engine",
    "asyncpg",
    "aiosqlite",
    "redis",
    "stripe",
)


def configure_logging(level: str = None):
    """
    Configure logging for the application.

    - App code: INFO (or whatever LOG_LEVEL says)
    - HTTP clients, database drivers, redis, stripe: WARNING only
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("plastik").setLevel(getattr(logging, log_level, logging.INFO))
    logging.getLogger("__main__").setLevel(getattr(logging, log_level, logging.INFO))

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at level: {log_level}")
