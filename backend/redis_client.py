"""Construction of the Redis client handed to the cache layer."""

import logging
from typing import Optional

import redis

from config import REDIS_SOCKET_TIMEOUT_SECONDS, get_redis_settings

logger = logging.getLogger(__name__)


def build_redis_client(settings: Optional[dict] = None) -> Optional[redis.Redis]:
    """
    Build a Redis client from settings (defaults to the environment).

    Returns None when no Redis is configured, which leaves caching off.
    Creating the client does not connect; connection failures surface on
    the first command and are absorbed by the cache layer.
    """
    settings = settings if settings is not None else get_redis_settings()
    if not settings:
        logger.info("Redis not configured, caching disabled")
        return None

    timeouts = {
        "socket_connect_timeout": REDIS_SOCKET_TIMEOUT_SECONDS,
        "socket_timeout": REDIS_SOCKET_TIMEOUT_SECONDS,
        "decode_responses": True,
    }

    if "url" in settings:
        return redis.Redis.from_url(settings["url"], **timeouts)

    return redis.Redis(
        host=settings["host"],
        port=settings["port"],
        username=settings.get("username"),
        password=settings.get("password"),
        ssl=settings.get("ssl", False),
        socket_keepalive=True,
        **timeouts,
    )
