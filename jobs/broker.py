"""
Dramatiq broker configuration.

Redis-based message broker for task queue.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from mlm_engine.config.settings import settings
from mlm_engine.utils.exceptions import (
    BatchAlreadyRunningError,
    GraphIntegrityError,
    ValidationError,
)

# Errors that a retry cannot fix
NON_RETRYABLE = (ValidationError, GraphIntegrityError, BatchAlreadyRunningError)

redis_broker = RedisBroker(
    host=settings.redis_host,
    port=settings.redis_port,
    password=settings.redis_password if settings.redis_password else None,
    db=settings.redis_db,
)

# ShutdownNotifications: Allows workers to gracefully shutdown
# CurrentMessage: Provides access to current message in actors
# Retries: Exponential backoff for failed tasks
redis_broker.add_middleware(ShutdownNotifications())
redis_broker.add_middleware(CurrentMessage())
redis_broker.add_middleware(
    Retries(
        max_retries=3,
        min_backoff=1000,  # 1 second
        max_backoff=60000,  # 1 minute
        retry_when=lambda retries_so_far, exception: (
            retries_so_far < 3 and not isinstance(exception, NON_RETRYABLE)
        ),
    )
)

dramatiq.set_broker(redis_broker)

broker = redis_broker

logger.info(
    f"Dramatiq broker initialized: "
    f"redis://{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
)
