"""
Cache-aside orchestration for user records.

UserService is the only component that talks to both the record store and
the cache. Reads consult the cache first and fall back to the store; a
cache failure never fails a read. Mutations go to the store first and are
then mirrored into the cache; a cache failure after a confirmed mutation
is surfaced unless ``strict_cache_writes`` is disabled, because a reader
could otherwise see the old cached value after the caller was told the
change succeeded.
"""

import asyncio
from contextlib import nullcontext
from typing import Any, Awaitable, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.errors import (
    CacheError,
    InternalError,
    InvalidInputError,
    ServiceException,
    ensure_service_exception,
)
from .cache.base import UserCache
from .models import User
from .persistence.base import UserStore

DEFAULT_CACHE_TTL_SECONDS = 300

# Ids are BIGINT in the store
MAX_USER_ID = 2**63 - 1


class UserService:
    """Mediates every user operation between the store and the optional cache."""

    def __init__(
        self,
        store: UserStore,
        cache: Optional[UserCache] = None,
        *,
        cache_ttl: int = DEFAULT_CACHE_TTL_SECONDS,
        operation_timeout: Optional[float] = None,
        strict_cache_writes: bool = True,
        logger=None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.operation_timeout = operation_timeout
        self.strict_cache_writes = strict_cache_writes
        self.logger = logger or get_logger("users.service")
        self.metrics = metrics

    async def create_user(self, email: str, name: str, timeout: Optional[float] = None) -> User:
        """Create a user. The cache is left alone; the first read fills it."""
        op = "service.create_user"
        self.logger.info(op)

        if not email or not name:
            self.logger.warning("Invalid input", op=op)
            raise InvalidInputError("email and name are required")

        deadline = self._deadline(timeout)
        try:
            with self._timed("create"):
                return await self._call(self.store.create(email, name), deadline, "store create")
        except ServiceException as e:
            self.logger.error("Create failed", op=op, code=e.code, error=e.message)
            raise

    async def get_user(self, user_id: int, timeout: Optional[float] = None) -> Optional[User]:
        """Get a user by id, or None when the store has no such record."""
        op = "service.get_user"
        self.logger.info(op, user_id=user_id)

        if not 0 < user_id <= MAX_USER_ID:
            self.logger.warning("Invalid input", op=op, user_id=user_id)
            raise InvalidInputError("id must be in 1..2^63-1", {"user_id": user_id})

        deadline = self._deadline(timeout)

        if self.cache is not None:
            try:
                cached = await self._call(self.cache.get(user_id), deadline, "cache get")
            except ServiceException as e:
                self.logger.warning("Cache read failed, using store", op=op, user_id=user_id, error=e.message)
                self._record_cache("get", "error")
            else:
                if cached is not None:
                    self._record_cache("get", "hit")
                    return cached
                self._record_cache("get", "miss")

        try:
            with self._timed("get"):
                user = await self._call(self.store.get_by_id(user_id), deadline, "store get")
        except ServiceException as e:
            self.logger.error("Get failed", op=op, user_id=user_id, code=e.code, error=e.message)
            raise

        if user is None:
            return None

        if self.cache is not None:
            try:
                await self._call(self.cache.set(user, self.cache_ttl), deadline, "cache set")
            except ServiceException as e:
                self.logger.warning("Cache fill failed", op=op, user_id=user_id, error=e.message)
                self._record_cache("set", "error")
            else:
                self._record_cache("set", "ok")

        return user

    async def update_user(self, user: Optional[User], timeout: Optional[float] = None) -> User:
        """Update email and/or name; empty fields keep their stored value."""
        op = "service.update_user"
        self.logger.info(op, user_id=getattr(user, "id", None))

        if user is None or not 0 < user.id <= MAX_USER_ID:
            self.logger.warning("Invalid input", op=op)
            raise InvalidInputError("id must be in 1..2^63-1")
        if not user.email and not user.name:
            self.logger.warning("Nothing to update", op=op, user_id=user.id)
            raise InvalidInputError("nothing to update", {"user_id": user.id})

        deadline = self._deadline(timeout)
        try:
            with self._timed("update"):
                updated = await self._call(self.store.update(user), deadline, "store update")
        except ServiceException as e:
            self.logger.error("Update failed", op=op, user_id=user.id, code=e.code, error=e.message)
            raise

        if self.cache is not None:
            try:
                await self._call(self.cache.set(updated, self.cache_ttl), deadline, "cache set")
            except ServiceException as e:
                self._record_cache("set", "error")
                self._after_mutation_cache_failure(op, updated.id, e)
            else:
                self._record_cache("set", "ok")

        return updated

    async def delete_user(self, user_id: int, timeout: Optional[float] = None) -> None:
        """Delete a user from the store, then drop its cache entry."""
        op = "service.delete_user"
        self.logger.info(op, user_id=user_id)

        if not 0 < user_id <= MAX_USER_ID:
            self.logger.warning("Invalid input", op=op, user_id=user_id)
            raise InvalidInputError("id must be in 1..2^63-1", {"user_id": user_id})

        deadline = self._deadline(timeout)
        try:
            with self._timed("delete"):
                await self._call(self.store.delete(user_id), deadline, "store delete")
        except ServiceException as e:
            self.logger.error("Delete failed", op=op, user_id=user_id, code=e.code, error=e.message)
            raise

        if self.cache is not None:
            try:
                await self._call(self.cache.delete(user_id), deadline, "cache delete")
            except ServiceException as e:
                self._record_cache("delete", "error")
                self._after_mutation_cache_failure(op, user_id, e)
            else:
                self._record_cache("delete", "ok")

    def _after_mutation_cache_failure(self, op: str, user_id: int, error: ServiceException):
        if not self.strict_cache_writes:
            self.logger.warning("Cache sync failed after mutation", op=op, user_id=user_id, error=error.message)
            return
        self.logger.error("Cache sync failed after mutation", op=op, user_id=user_id, error=error.message)
        if isinstance(error, CacheError):
            raise error
        raise CacheError("Cache sync failed after mutation", {"user_id": user_id, "error": error.message}) from error

    def _deadline(self, timeout: Optional[float]) -> Optional[float]:
        timeout = self.operation_timeout if timeout is None else timeout
        if timeout is None:
            return None
        return asyncio.get_running_loop().time() + timeout

    async def _call(self, awaitable: Awaitable[Any], deadline: Optional[float], what: str) -> Any:
        """Await a backend call within the deadline; errors come out classified."""
        remaining = None
        if deadline is not None:
            remaining = deadline - asyncio.get_running_loop().time()
            if remaining <= 0:
                if asyncio.iscoroutine(awaitable):
                    awaitable.close()
                raise InternalError(f"{what} deadline exceeded", {"operation": what}, code="DEADLINE_EXCEEDED")

        try:
            return await asyncio.wait_for(awaitable, timeout=remaining)
        except asyncio.TimeoutError as e:
            raise InternalError(f"{what} deadline exceeded", {"operation": what}, code="DEADLINE_EXCEEDED") from e
        except ServiceException:
            raise
        except Exception as e:
            raise ensure_service_exception(e, f"{what} failed") from e

    def _record_cache(self, operation: str, result: str):
        if self.metrics is not None:
            self.metrics.record_cache_operation(operation, result)

    def _timed(self, operation: str):
        if self.metrics is not None:
            return self.metrics.time_operation("store_operation_duration_seconds", operation=operation)
        return nullcontext()
