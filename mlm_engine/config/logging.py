"""
Logging setup.

Configures loguru sinks for engine processes and workers.
"""

import sys

from loguru import logger

from mlm_engine.config.settings import settings


def setup_logging(log_file: str | None = None, level: str | None = None) -> None:
    """Configure stderr and rotating file sinks."""
    level = level or settings.log_level
    log_file = log_file if log_file is not None else settings.log_file

    logger.remove()
    logger.add(sys.stderr, level=level)

    if log_file:
        logger.add(
            log_file,
            rotation="1 day",
            retention="7 days",
            level=level,
            encoding="utf-8",
        )

    logger.info(f"MLM engine logging configured (level={level})")
