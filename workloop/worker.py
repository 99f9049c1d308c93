"""
Dramatiq worker entry-point for durable mode.

Run with::

    dramatiq workloop.worker

Importing this module configures the Redis broker, builds the container with
an unpooled database engine and registers the report handler as the
``reports`` actor.
"""

from __future__ import annotations

import asyncio

from workloop.config import settings
from workloop.container import build_container
from workloop.errors import ConfigError
from workloop.jobs.queue import QueueConfig
from workloop.logger import get_logger

logger = get_logger(__name__)

queue_config = QueueConfig.from_settings(settings)
if not queue_config.durable:
    raise ConfigError("REDIS_URL must be set to run a Dramatiq worker", setting="redis_url")

container = build_container(settings, queue_config=queue_config, pooled=False)
asyncio.run(container.start())
broker = container.queue.broker  # type: ignore[attr-defined]

logger.info("Worker ready, consuming queues: %s", ", ".join(container.queue.registry.names()))
