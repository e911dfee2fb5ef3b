"""
User Directory service.
"""

from typing import Dict, Optional

from fastapi import Path

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import CacheError, NotFoundError, ServiceException

from .cache.base import UserCache
from .cache.redis_cache import RedisUserCache
from .models import (
    User, UserCreateRequest, UserUpdateRequest, UserResponse, DeleteUserResponse
)
from .persistence.base import UserStore
from .persistence.postgres import PostgreSQLUserStore
from .service import UserService

SERVICE_NAME = "users"
SERVICE_PORT = 8020


class UsersService(BaseService):
    """User Directory service implementation.

    ``store`` and ``cache`` may be injected (tests, embedding); otherwise the
    store is built from config and the cache is connected on startup when
    Redis addresses are configured.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[UserStore] = None,
        cache: Optional[UserCache] = None,
    ):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config)

        self._owns_store = store is None
        self._owns_cache = cache is None
        self.store: UserStore = store or PostgreSQLUserStore(
            self.config.postgres_dsn,
            min_size=self.config.postgres_min_pool_size,
            max_size=self.config.postgres_max_pool_size,
            command_timeout=self.config.postgres_command_timeout,
        )
        self.cache: Optional[UserCache] = cache
        self.users = self._build_user_service()

        self._setup_user_routes()

    def _build_user_service(self) -> UserService:
        return UserService(
            self.store,
            self.cache,
            cache_ttl=self.config.cache_ttl_seconds,
            operation_timeout=self.config.operation_timeout_seconds,
            strict_cache_writes=self.config.strict_cache_writes,
            logger=self.logger.bind(component="service"),
            metrics=self.metrics,
        )

    def _setup_user_routes(self):
        """Set up user routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "User Directory Service",
                "version": "1.0.0",
                "capabilities": ["persistence", "caching" if self.cache is not None else "no_cache"]
            }

        @self.app.post("/users", status_code=201, response_model=UserResponse)
        async def create_user(request: UserCreateRequest):
            """Create a user."""
            user = await self.users.create_user(request.email, request.name)
            return UserResponse.from_user(user)

        @self.app.get("/users/{user_id}", response_model=UserResponse)
        async def get_user(user_id: int = Path(..., description="User ID")):
            """Get a user by id."""
            user = await self.users.get_user(user_id)
            if user is None:
                raise NotFoundError("User not found", {"user_id": user_id})
            return UserResponse.from_user(user)

        @self.app.put("/users/{user_id}", response_model=UserResponse)
        async def update_user(request: UserUpdateRequest, user_id: int = Path(..., description="User ID")):
            """Update a user's email and/or name."""
            user = await self.users.update_user(
                User(id=user_id, email=request.email, name=request.name)
            )
            return UserResponse.from_user(user)

        @self.app.delete("/users/{user_id}", response_model=DeleteUserResponse)
        async def delete_user(user_id: int = Path(..., description="User ID")):
            """Delete a user."""
            await self.users.delete_user(user_id)
            return DeleteUserResponse(success=True)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check user service dependencies."""
        dependencies = {}

        dependencies["postgres"] = "ok" if await self.store.health_check() else "error"

        if self.cache is None:
            dependencies["redis"] = "disabled"
        else:
            dependencies["redis"] = "ok" if await self.cache.health_check() else "error"

        return dependencies

    async def start(self):
        """Start user service components."""
        if self._owns_store:
            await self.store.start(apply_migrations=self.config.migrations_on_startup)

        addrs = self.config.redis_addresses
        if self._owns_cache and addrs:
            try:
                self.cache = await RedisUserCache.connect(
                    addrs,
                    self.config.cache_ttl_seconds,
                    cluster=self.config.redis_cluster,
                    password=self.config.redis_password,
                    connect_timeout=self.config.redis_connect_timeout,
                )
            except CacheError as e:
                self.logger.warning(
                    "Redis disabled, service will run without cache",
                    error=e.message,
                    details=e.details
                )
                self.cache = None

        self.users = self._build_user_service()
        self.logger.info("User service started", cache_enabled=self.cache is not None)

    async def stop(self):
        """Stop user service components, cache first."""
        if self._owns_cache and self.cache is not None:
            try:
                await self.cache.close()
            except ServiceException as e:
                self.logger.error("Cache close failed", error=e.message)
            self.cache = None

        if self._owns_store:
            try:
                await self.store.close()
            except ServiceException as e:
                self.logger.error("Store close failed", error=e.message)

        self.logger.info("User service stopped")


def create_app(config: Optional[ServiceConfig] = None, **components):
    """Create user service application."""
    service = UsersService(config or get_config(SERVICE_NAME, SERVICE_PORT), **components)
    return service.app


if __name__ == "__main__":
    service = UsersService()
    service.run()
