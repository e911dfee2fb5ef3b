"""
Cache contract and key derivation.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..models import User

USER_KEY_PREFIX = "user:"


def user_cache_key(user_id: int) -> str:
    """Cache key for a user id; every component addresses records this way."""
    return f"{USER_KEY_PREFIX}{int(user_id)}"


class UserCache(ABC):
    """Volatile TTL-bounded mirror of individual user records.

    Failures are raised as CacheError; a missing key is never an error.
    """

    @abstractmethod
    async def get(self, user_id: int) -> Optional[User]:
        """Return the cached record or None on a miss."""

    @abstractmethod
    async def set(self, user: Optional[User], ttl: Optional[int] = None) -> None:
        """Store a record; ``ttl`` of None or <= 0 uses the default."""

    @abstractmethod
    async def delete(self, user_id: int) -> None:
        """Drop a record; deleting a missing key succeeds."""

    @abstractmethod
    async def close(self) -> None:
        """Release the client."""

    async def health_check(self) -> bool:
        """Check cache health."""
        return True
