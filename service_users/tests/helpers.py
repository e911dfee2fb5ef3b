"""
Test helpers and in-memory backends for the User Directory service.

The fakes implement the store and cache contracts without a running
backend and count every call, so tests can assert which backend an
operation touched.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional

from shared.errors import AlreadyExistsError, CacheError, NotFoundError
from service_users.app.cache.base import UserCache
from service_users.app.models import User
from service_users.app.persistence.base import UserStore


class InMemoryUserStore(UserStore):
    """Dict-backed UserStore with id assignment and email uniqueness."""

    def __init__(self, users: Optional[List[User]] = None):
        self.users: Dict[int, User] = {}
        self.calls: Counter = Counter()
        self.closed = False
        self.healthy = True
        self._next_id = 1
        for user in users or []:
            self.users[user.id] = user
            self._next_id = max(self._next_id, user.id + 1)

    def _email_taken(self, email: str, exclude_id: Optional[int] = None) -> bool:
        return any(u.email == email and u.id != exclude_id for u in self.users.values())

    async def create(self, email: str, name: str) -> User:
        self.calls["create"] += 1
        if self._email_taken(email):
            raise AlreadyExistsError("User already exists", {"email": email})
        user = User(id=self._next_id, email=email, name=name, created_at=datetime.now(timezone.utc))
        self._next_id += 1
        self.users[user.id] = user
        return User(**vars(user))

    async def get_by_id(self, user_id: int) -> Optional[User]:
        self.calls["get_by_id"] += 1
        user = self.users.get(user_id)
        return User(**vars(user)) if user else None

    async def update(self, user: User) -> User:
        self.calls["update"] += 1
        current = self.users.get(user.id)
        if current is None:
            raise NotFoundError("User not found", {"user_id": user.id})
        if user.email and self._email_taken(user.email, exclude_id=user.id):
            raise AlreadyExistsError("User already exists", {"email": user.email})
        current.email = user.email or current.email
        current.name = user.name or current.name
        return User(**vars(current))

    async def delete(self, user_id: int) -> None:
        self.calls["delete"] += 1
        if self.users.pop(user_id, None) is None:
            raise NotFoundError("User not found", {"user_id": user_id})

    async def close(self) -> None:
        self.calls["close"] += 1
        self.closed = True

    async def health_check(self) -> bool:
        return self.healthy


class FakeUserCache(UserCache):
    """Dict-backed UserCache; ``fail`` names operations that raise CacheError."""

    def __init__(self, fail: Optional[set] = None, default_ttl: int = 300):
        self.entries: Dict[int, User] = {}
        self.ttls: Dict[int, int] = {}
        self.calls: Counter = Counter()
        self.fail = set(fail or ())
        self.default_ttl = default_ttl
        self.closed = False

    def _maybe_fail(self, operation: str):
        if operation in self.fail:
            raise CacheError(f"cache {operation} unavailable")

    async def get(self, user_id: int) -> Optional[User]:
        self.calls["get"] += 1
        self._maybe_fail("get")
        return self.entries.get(user_id)

    async def set(self, user: Optional[User], ttl: Optional[int] = None) -> None:
        self.calls["set"] += 1
        self._maybe_fail("set")
        if user is None:
            return
        self.entries[user.id] = user
        self.ttls[user.id] = ttl if ttl and ttl > 0 else self.default_ttl

    async def delete(self, user_id: int) -> None:
        self.calls["delete"] += 1
        self._maybe_fail("delete")
        self.entries.pop(user_id, None)

    async def close(self) -> None:
        self.calls["close"] += 1
        self.closed = True

    async def health_check(self) -> bool:
        return "ping" not in self.fail


class TestDataFactory:
    """Factory for creating test data."""

    __test__ = False

    @staticmethod
    def create_user(user_id: int = 7, email: str = "john.doe@example.com", name: str = "John Doe") -> User:
        return User(
            id=user_id,
            email=email,
            name=name,
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)
        )

    @staticmethod
    def create_users() -> List[User]:
        return [
            TestDataFactory.create_user(1, "john.doe@example.com", "John Doe"),
            TestDataFactory.create_user(2, "jane.smith@example.com", "Jane Smith"),
            TestDataFactory.create_user(3, "admin@example.com", "Admin"),
        ]
