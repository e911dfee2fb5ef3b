"""
Cache package for the User Directory Service.

Provides the UserCache contract and a Redis-backed implementation that
mirrors individual user records under ``user:<id>`` keys with a TTL.
The cache is optional; the service runs against the store alone when no
cache is configured or reachable.
"""

from .base import UserCache, user_cache_key, USER_KEY_PREFIX
from .redis_cache import RedisUserCache

__all__ = ["UserCache", "RedisUserCache", "user_cache_key", "USER_KEY_PREFIX"]
