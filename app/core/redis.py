"""
Redis Connection
Shared connection pool backing the report queue.
"""

import logging
from functools import lru_cache
from typing import Optional
from urllib.parse import urlsplit

from redis import ConnectionPool, Redis
from redis.exceptions import RedisError

from app.core.config import settings

logger = logging.getLogger(__name__)


class Queues:
    """RQ queue names."""
    REPORTS = "reports"


def mask_url(url: str) -> str:
    """redis://:secret@host:6379/0 -> redis://***@host:6379/0"""
    parts = urlsplit(url)
    if parts.username is None and parts.password is None:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return f"{parts.scheme}://***@{host}{parts.path}"


class RedisManager:
    """
    Owns one lazily created connection pool.

    Responses stay as bytes because RQ pickles job payloads.
    """

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self._client: Optional[Redis] = None

    @property
    def client(self) -> Redis:
        if self._client is None:
            pool = ConnectionPool.from_url(
                self.url,
                max_connections=10,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            self._client = Redis(connection_pool=pool)
            logger.info(f"[Redis] Connection pool ready for {mask_url(self.url)}")
        return self._client

    def health_check(self) -> dict:
        """Ping the server; never raises."""
        result = {"url": mask_url(self.url)}
        try:
            self.client.ping()
            info = self.client.info("server")
        except RedisError as e:
            logger.warning(f"[Redis] Health check failed: {e}")
            result.update(connected=False, error=str(e))
            return result

        result.update(connected=True, redis_version=info.get("redis_version", "unknown"))
        return result

    def close(self):
        if self._client is not None:
            self._client.connection_pool.disconnect()
            self._client = None
            logger.info("[Redis] Connection pool closed")


@lru_cache()
def get_redis_manager() -> RedisManager:
    return RedisManager()


def get_redis() -> Redis:
    return get_redis_manager().client


def redis_health_check() -> dict:
    return get_redis_manager().health_check()


__all__ = [
    "Queues",
    "RedisManager",
    "get_redis_manager",
    "get_redis",
    "redis_health_check",
    "mask_url",
]
