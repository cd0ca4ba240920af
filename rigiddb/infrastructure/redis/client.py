"""Redis connection factory.

Builds a redis.asyncio client from rigiddb.core.config settings. Stores
accept an already built client instead (tests, shared pools).
"""

from __future__ import annotations

import logging

import redis.asyncio as redis

from rigiddb.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_redis_client(settings: Settings | None = None) -> redis.Redis:
    """Return a new client; the connection is opened on first command.

    Args:
        settings: Optional settings; defaults to get_settings().

    Returns:
        redis.asyncio.Redis with decoded (str) responses.
    """
    settings = settings or get_settings()
    logger.debug(
        "Creating Redis client for %s:%s db=%s",
        settings.redis_host,
        settings.redis_port,
        settings.redis_db,
    )
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        password=settings.redis_password.get_secret_value() if settings.redis_password else None,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
        socket_keepalive=True,
        max_connections=settings.redis_max_connections,
    )
