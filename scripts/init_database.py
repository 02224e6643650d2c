#!/usr/bin/env python3
"""Initialize engine database tables (development; production uses alembic)."""

import asyncio
import sys

from loguru import logger

from mlm_engine.config.database import create_engine
from mlm_engine.config.settings import settings
from mlm_engine.models import Base

# Configure logger for script
logger.remove()
logger.add(sys.stderr, level="INFO")


async def init_database() -> None:
    """Create all database tables."""
    logger.info("Connecting to database...")
    engine = create_engine(settings.database_url)

    async with engine.begin() as conn:
        logger.info("Creating tables (checkfirst=True)...")
        await conn.run_sync(
            Base.metadata.create_all,
            checkfirst=True
        )

    await engine.dispose()
    logger.success("Database tables created successfully!")


if __name__ == "__main__":
    asyncio.run(init_database())
