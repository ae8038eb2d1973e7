"""
Shared Redis connection setup for the cache and the event sink.
"""

import redis

from shortlink_app.config import settings


def connect(url: str = None) -> redis.Redis:
    """
    Open a client and ping it.

    Raises:
        redis.RedisError: If the server is unreachable
    """
    client = redis.from_url(
        url or settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    client.ping()
    return client
