"""
Logging setup for the catalog engine.

All modules log under the ``catalog`` namespace. The level comes from
``LOG_LEVEL`` at import time and can be reset from config through
``configure_logging``.
"""
import logging
import os
import sys
from typing import Optional

ROOT_LOGGER_NAME = "catalog"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(ROOT_LOGGER_NAME)


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.set_name("catalog-console")
    return handler


def configure_logging(level: Optional[str] = None, log_sql: bool = False) -> logging.Logger:
    """
    (Re)configure the ``catalog`` logger.

    Args:
        level: Level name; falls back to ``LOG_LEVEL`` then INFO
        log_sql: Also route SQLAlchemy engine statements at INFO

    Returns:
        The package root logger
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    logger.setLevel(level_name)
    if not any(h.get_name() == "catalog-console" for h in logger.handlers):
        logger.addHandler(_console_handler())
    for handler in logger.handlers:
        handler.setLevel(level_name)
    # Keep records out of the root logger so they are not printed twice
    logger.propagate = False

    sql_logger = logging.getLogger("sqlalchemy.engine")
    sql_logger.setLevel(logging.INFO if log_sql else logging.WARNING)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return ``catalog.<name>``, or the package root logger without a name."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return logger


configure_logging()
