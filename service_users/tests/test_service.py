"""
Unit tests for the cache-aside UserService.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from shared.errors import (
    AlreadyExistsError, CacheError, ErrorKind, InternalError, InvalidInputError,
    NotFoundError, ServiceException, StoreError, classify,
)
from shared.metrics import MetricsCollector
from service_users.app.models import User
from service_users.app.service import UserService
from service_users.tests.helpers import FakeUserCache, InMemoryUserStore, TestDataFactory


class TestCreateUser:
    """Test cases for UserService.create_user."""

    @pytest.fixture
    def store(self):
        return InMemoryUserStore()

    @pytest.fixture
    def cache(self):
        return FakeUserCache()

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_timestamp(self, store):
        service = UserService(store, None)

        user = await service.create_user("a@b.com", "A")

        assert user.id > 0
        assert user.created_at is not None
        assert user.email == "a@b.com"
        assert user.name == "A"
        assert store.calls["create"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email,name", [("", "A"), ("a@b.com", ""), ("", "")])
    async def test_create_rejects_empty_fields_before_store(self, store, cache, email, name):
        service = UserService(store, cache)

        with pytest.raises(InvalidInputError):
            await service.create_user(email, name)

        assert sum(store.calls.values()) == 0
        assert sum(cache.calls.values()) == 0

    @pytest.mark.asyncio
    async def test_duplicate_email_already_exists(self, store):
        service = UserService(store, None)
        await service.create_user("a@b.com", "A")

        with pytest.raises(AlreadyExistsError) as exc_info:
            await service.create_user("a@b.com", "Another A")

        assert classify(exc_info.value) == ErrorKind.ALREADY_EXISTS

    @pytest.mark.asyncio
    async def test_create_does_not_populate_cache(self, store, cache):
        service = UserService(store, cache)

        await service.create_user("a@b.com", "A")

        assert sum(cache.calls.values()) == 0

    @pytest.mark.asyncio
    async def test_create_succeeds_during_cache_outage(self, store):
        cache = FakeUserCache(fail={"get", "set", "delete"})
        service = UserService(store, cache)

        user = await service.create_user("a@b.com", "A")

        assert user.id > 0

    @pytest.mark.asyncio
    async def test_raw_store_error_is_classified_internal(self):
        store = AsyncMock()
        store.create.side_effect = RuntimeError("db error")
        service = UserService(store, None)

        with pytest.raises(InternalError) as exc_info:
            await service.create_user("a@b.com", "A")

        assert classify(exc_info.value) == ErrorKind.INTERNAL
        assert "db error" in exc_info.value.details["error"]

    @pytest.mark.asyncio
    async def test_store_error_propagates_unchanged(self):
        store = AsyncMock()
        error = StoreError("connection reset")
        store.create.side_effect = error
        service = UserService(store, None)

        with pytest.raises(StoreError) as exc_info:
            await service.create_user("a@b.com", "A")

        assert exc_info.value is error


class TestGetUser:
    """Test cases for UserService.get_user."""

    @pytest.fixture
    def user(self):
        return TestDataFactory.create_user(7)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", [0, -1, -100, 2**63, 2**70])
    async def test_out_of_range_id_is_invalid(self, user_id):
        store = InMemoryUserStore()
        cache = FakeUserCache()
        service = UserService(store, cache)

        with pytest.raises(InvalidInputError):
            await service.get_user(user_id)

        assert sum(store.calls.values()) == 0
        assert sum(cache.calls.values()) == 0

    @pytest.mark.asyncio
    async def test_cache_hit_skips_store(self, user):
        store = InMemoryUserStore()
        cache = FakeUserCache()
        cache.entries[7] = user
        service = UserService(store, cache)

        result = await service.get_user(7)

        assert result == user
        assert store.calls["get_by_id"] == 0
        assert cache.calls["set"] == 0

    @pytest.mark.asyncio
    async def test_cache_miss_reads_store_and_fills_cache(self, user):
        store = InMemoryUserStore([user])
        cache = FakeUserCache()
        service = UserService(store, cache, cache_ttl=120)

        result = await service.get_user(7)

        assert result == user
        assert store.calls["get_by_id"] == 1
        assert cache.calls["set"] == 1
        assert cache.entries[7] == user
        assert cache.ttls[7] == 120

    @pytest.mark.asyncio
    async def test_missing_record_without_cache_is_absent(self):
        store = InMemoryUserStore()
        service = UserService(store, None)

        result = await service.get_user(42)

        assert result is None
        assert store.calls["get_by_id"] == 1

    @pytest.mark.asyncio
    async def test_missing_record_is_not_cached(self):
        store = InMemoryUserStore()
        cache = FakeUserCache()
        service = UserService(store, cache)

        assert await service.get_user(42) is None
        assert cache.calls["get"] == 1
        assert cache.calls["set"] == 0

    @pytest.mark.asyncio
    async def test_cache_read_error_falls_back_to_store(self, user):
        store = InMemoryUserStore([user])
        cache = FakeUserCache(fail={"get"})
        service = UserService(store, cache)

        result = await service.get_user(7)

        assert result == user
        assert store.calls["get_by_id"] == 1
        assert cache.calls["set"] == 1

    @pytest.mark.asyncio
    async def test_cache_outage_does_not_fail_read(self, user):
        store = InMemoryUserStore([user])
        cache = FakeUserCache(fail={"get", "set"})
        service = UserService(store, cache)

        result = await service.get_user(7)

        assert result == user

    @pytest.mark.asyncio
    async def test_unclassified_cache_error_is_swallowed_on_read(self, user):
        store = InMemoryUserStore([user])
        cache = AsyncMock()
        cache.get.side_effect = ConnectionError("cluster down")
        cache.set.side_effect = ConnectionError("cluster down")
        service = UserService(store, cache)

        assert await service.get_user(7) == user

    @pytest.mark.asyncio
    async def test_store_error_is_surfaced(self):
        store = AsyncMock()
        store.get_by_id.side_effect = StoreError("db error")
        cache = FakeUserCache()
        service = UserService(store, cache)

        with pytest.raises(StoreError):
            await service.get_user(2)

        assert cache.calls["set"] == 0

    @pytest.mark.asyncio
    async def test_round_trip_create_then_get(self):
        store = InMemoryUserStore()
        cache = FakeUserCache()
        service = UserService(store, cache)

        created = await service.create_user("a@b.com", "A")
        fetched = await service.get_user(created.id)

        assert fetched.email == "a@b.com"
        assert fetched.name == "A"
        assert fetched.id == created.id

        again = await service.get_user(created.id)
        assert again == fetched
        assert store.calls["get_by_id"] == 1

    @pytest.mark.asyncio
    async def test_metrics_record_hit_and_miss(self, user):
        metrics = MetricsCollector("users")
        store = InMemoryUserStore([user])
        service = UserService(store, FakeUserCache(), metrics=metrics)

        await service.get_user(7)
        await service.get_user(7)

        assert metrics.sample("cache_operations_total", operation="get", result="miss") == 1
        assert metrics.sample("cache_operations_total", operation="get", result="hit") == 1
        assert metrics.sample("cache_operations_total", operation="set", result="ok") == 1


class TestUpdateUser:
    """Test cases for UserService.update_user."""

    @pytest.fixture
    def store(self):
        return InMemoryUserStore(TestDataFactory.create_users())

    @pytest.mark.asyncio
    async def test_update_writes_store_then_cache(self, store):
        cache = FakeUserCache()
        service = UserService(store, cache)

        updated = await service.update_user(User(id=1, email="new@example.com", name="New Name"))

        assert updated.email == "new@example.com"
        assert updated.name == "New Name"
        assert store.calls["update"] == 1
        assert cache.entries[1] == updated

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_field(self, store):
        service = UserService(store, None)

        updated = await service.update_user(User(id=1, email="", name="Johnny"))

        assert updated.name == "Johnny"
        assert updated.email == "john.doe@example.com"

    @pytest.mark.asyncio
    async def test_empty_update_is_invalid(self, store):
        cache = FakeUserCache()
        service = UserService(store, cache)

        with pytest.raises(InvalidInputError):
            await service.update_user(User(id=1, email="", name=""))

        assert store.calls["update"] == 0
        assert sum(cache.calls.values()) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user", [
        None,
        User(id=0, email="a@b.com", name="A"),
        User(id=2**63, email="a@b.com", name="A"),
    ])
    async def test_invalid_target_is_rejected(self, store, user):
        service = UserService(store, None)

        with pytest.raises(InvalidInputError):
            await service.update_user(user)

    @pytest.mark.asyncio
    async def test_update_missing_user_not_found(self, store):
        cache = FakeUserCache()
        service = UserService(store, cache)

        with pytest.raises(NotFoundError):
            await service.update_user(User(id=99, email="x@example.com", name="X"))

        assert cache.calls["set"] == 0

    @pytest.mark.asyncio
    async def test_update_email_conflict(self, store):
        cache = FakeUserCache()
        service = UserService(store, cache)

        with pytest.raises(AlreadyExistsError):
            await service.update_user(User(id=1, email="jane.smith@example.com", name=""))

        assert cache.calls["set"] == 0

    @pytest.mark.asyncio
    async def test_cache_write_failure_is_surfaced(self, store):
        cache = FakeUserCache(fail={"set"})
        service = UserService(store, cache)

        with pytest.raises(CacheError) as exc_info:
            await service.update_user(User(id=1, email="", name="Johnny"))

        assert classify(exc_info.value) == ErrorKind.INTERNAL
        assert store.users[1].name == "Johnny"

    @pytest.mark.asyncio
    async def test_cache_write_failure_tolerated_when_not_strict(self, store):
        cache = FakeUserCache(fail={"set"})
        service = UserService(store, cache, strict_cache_writes=False)

        updated = await service.update_user(User(id=1, email="", name="Johnny"))

        assert updated.name == "Johnny"

    @pytest.mark.asyncio
    async def test_raw_cache_write_failure_is_classified(self, store):
        cache = AsyncMock()
        cache.set.side_effect = TimeoutError("slow")
        service = UserService(store, cache)

        with pytest.raises(ServiceException) as exc_info:
            await service.update_user(User(id=1, email="", name="Johnny"))

        assert classify(exc_info.value) == ErrorKind.INTERNAL


class TestDeleteUser:
    """Test cases for UserService.delete_user."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", [0, -5, 2**63])
    async def test_out_of_range_id_is_invalid(self, user_id):
        store = InMemoryUserStore()
        cache = FakeUserCache()
        service = UserService(store, cache)

        with pytest.raises(InvalidInputError):
            await service.delete_user(user_id)

        assert sum(store.calls.values()) == 0
        assert sum(cache.calls.values()) == 0

    @pytest.mark.asyncio
    async def test_delete_removes_store_row_and_cache_entry(self):
        user = TestDataFactory.create_user(7)
        store = InMemoryUserStore([user])
        cache = FakeUserCache()
        cache.entries[7] = user
        service = UserService(store, cache)

        await service.delete_user(7)

        assert 7 not in store.users
        assert 7 not in cache.entries
        assert await service.get_user(7) is None

    @pytest.mark.asyncio
    async def test_delete_missing_user_skips_cache(self):
        store = InMemoryUserStore()
        cache = FakeUserCache()
        service = UserService(store, cache)

        with pytest.raises(NotFoundError):
            await service.delete_user(5)

        assert cache.calls["delete"] == 0

    @pytest.mark.asyncio
    async def test_cache_delete_failure_is_surfaced(self):
        store = InMemoryUserStore([TestDataFactory.create_user(7)])
        cache = FakeUserCache(fail={"delete"})
        service = UserService(store, cache)

        with pytest.raises(CacheError):
            await service.delete_user(7)

        assert 7 not in store.users

    @pytest.mark.asyncio
    async def test_delete_without_cache(self):
        store = InMemoryUserStore([TestDataFactory.create_user(7)])
        service = UserService(store, None)

        await service.delete_user(7)

        assert store.calls["delete"] == 1


class TestDeadlines:
    """Backend calls are bounded by the operation timeout."""

    @pytest.mark.asyncio
    async def test_slow_store_exceeds_deadline(self):
        store = AsyncMock()

        async def slow_get(user_id):
            await asyncio.sleep(1)

        store.get_by_id.side_effect = slow_get
        service = UserService(store, None, operation_timeout=0.01)

        with pytest.raises(InternalError) as exc_info:
            await service.get_user(1)

        assert exc_info.value.code == "DEADLINE_EXCEEDED"

    @pytest.mark.asyncio
    async def test_deadline_spent_on_cache_rejects_store_call(self):
        store = AsyncMock()
        cache = AsyncMock()

        async def slow_get(user_id):
            await asyncio.sleep(1)

        cache.get.side_effect = slow_get
        store.get_by_id.side_effect = slow_get
        service = UserService(store, cache, operation_timeout=0.5)

        with pytest.raises(InternalError) as exc_info:
            await service.get_user(7, timeout=0.05)

        assert exc_info.value.code == "DEADLINE_EXCEEDED"
        cache.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_per_call_timeout_overrides_default(self):
        store = InMemoryUserStore([TestDataFactory.create_user(7)])
        service = UserService(store, None, operation_timeout=0.0001)

        result = await service.get_user(7, timeout=5)

        assert result.id == 7
