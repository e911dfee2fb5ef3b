"""
Redis caching layer for the User Directory Service.
"""

import asyncio
import json
from typing import List, Optional, Sequence, Tuple, Union

import redis.asyncio as redis
from redis.asyncio.cluster import ClusterNode
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import CacheError
from ..models import User
from .base import UserCache, user_cache_key

DEFAULT_TTL_SECONDS = 300
DEFAULT_REDIS_PORT = 6379
CONNECT_TIMEOUT_SECONDS = 5.0

# Failures a redis call can surface besides RedisError itself
_BACKEND_ERRORS = (RedisError, OSError, asyncio.TimeoutError)

RedisClient = Union[redis.Redis, redis.RedisCluster]


def parse_address(addr: str) -> Tuple[str, int]:
    """Split ``host:port`` (port optional) into its parts."""
    host, sep, port = addr.strip().rpartition(":")
    if not sep:
        return addr.strip(), DEFAULT_REDIS_PORT
    if not host or not port.isdigit():
        raise CacheError("Invalid redis address", {"addr": addr})
    return host, int(port)


class RedisUserCache(UserCache):
    """Redis mirror of user records keyed by ``user:<id>``."""

    def __init__(self, client: RedisClient, default_ttl: int = DEFAULT_TTL_SECONDS, logger=None):
        self.client = client
        self.default_ttl = default_ttl
        self.logger = logger or get_logger("users.cache.redis")

    @classmethod
    async def connect(
        cls,
        addrs: Sequence[str],
        default_ttl: int = DEFAULT_TTL_SECONDS,
        *,
        cluster: bool = False,
        password: Optional[str] = None,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        logger=None,
    ) -> "RedisUserCache":
        """Build a client for ``addrs`` and verify it answers PING.

        Raises CacheError when no address is given or the probe fails; the
        caller decides whether to run without a cache.
        """
        logger = logger or get_logger("users.cache.redis")
        op = "cache.redis.connect"

        if not addrs:
            logger.error("No redis address provided", op=op)
            raise CacheError("No redis address provided")

        nodes: List[Tuple[str, int]] = [parse_address(addr) for addr in addrs]
        client = cls._build_client(nodes, cluster or len(nodes) > 1, password, connect_timeout)

        try:
            await asyncio.wait_for(client.ping(), timeout=connect_timeout)
        except _BACKEND_ERRORS as e:
            logger.error("Redis PING failed", op=op, addrs=list(addrs), error=str(e))
            try:
                await client.aclose()
            except _BACKEND_ERRORS as close_error:
                logger.warning("Redis client close failed", op=op, error=str(close_error))
            raise CacheError("Redis PING failed", {"addrs": list(addrs), "error": str(e)}) from e

        logger.info("Redis cache started", op=op, addrs=list(addrs), cluster=cluster or len(nodes) > 1)
        return cls(client, default_ttl=default_ttl, logger=logger)

    @staticmethod
    def _build_client(
        nodes: List[Tuple[str, int]],
        cluster: bool,
        password: Optional[str],
        connect_timeout: float,
    ) -> RedisClient:
        if cluster:
            return redis.RedisCluster(
                startup_nodes=[ClusterNode(host, port) for host, port in nodes],
                password=password,
                decode_responses=True,
                socket_connect_timeout=connect_timeout,
                socket_timeout=connect_timeout,
            )
        host, port = nodes[0]
        return redis.Redis(
            host=host,
            port=port,
            password=password,
            decode_responses=True,
            socket_connect_timeout=connect_timeout,
            socket_timeout=connect_timeout,
            health_check_interval=30,
        )

    async def get(self, user_id: int) -> Optional[User]:
        """Get cached user record."""
        op = "cache.redis.get"
        key = user_cache_key(user_id)

        try:
            cached_data = await self.client.get(key)
        except _BACKEND_ERRORS as e:
            self.logger.error("Redis GET failed", op=op, key=key, error=str(e))
            raise CacheError("Redis GET failed", {"key": key, "error": str(e)}) from e

        if cached_data is None:
            return None

        try:
            user = User.from_dict(json.loads(cached_data))
        except (ValueError, KeyError, TypeError) as e:
            self.logger.error("Unmarshal failed", op=op, key=key, error=str(e))
            raise CacheError("Corrupt cache entry", {"key": key, "error": str(e)}) from e

        self.logger.debug("Cache hit for user", key=key)
        return user

    async def set(self, user: Optional[User], ttl: Optional[int] = None) -> None:
        """Cache a user record."""
        op = "cache.redis.set"

        if user is None:
            return

        if ttl is None or ttl <= 0:
            ttl = self.default_ttl

        key = user_cache_key(user.id)
        try:
            await self.client.set(key, json.dumps(user.to_dict()), ex=ttl)
        except _BACKEND_ERRORS as e:
            self.logger.error("Redis SET failed", op=op, user_id=user.id, error=str(e))
            raise CacheError("Redis SET failed", {"key": key, "error": str(e)}) from e

        self.logger.debug("Cached user", key=key, ttl=ttl)

    async def delete(self, user_id: int) -> None:
        """Drop a cached user record."""
        op = "cache.redis.delete"
        key = user_cache_key(user_id)

        try:
            await self.client.delete(key)
        except _BACKEND_ERRORS as e:
            self.logger.error("Redis DEL failed", op=op, key=key, error=str(e))
            raise CacheError("Redis DEL failed", {"key": key, "error": str(e)}) from e

    async def close(self) -> None:
        """Stop the Redis cache."""
        try:
            await self.client.aclose()
        except _BACKEND_ERRORS as e:
            self.logger.error("Redis client close failed", op="cache.redis.close", error=str(e))
            raise CacheError("Redis client close failed", {"error": str(e)}) from e
        self.logger.info("Redis cache stopped")

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.client.ping()
            return True
        except _BACKEND_ERRORS:
            return False
