"""
Shared configuration management for the User Directory service.
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="USERS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # PostgreSQL
    postgres_dsn: str = Field(default="postgresql://localhost:5432/users")
    postgres_min_pool_size: int = Field(default=2, ge=1)
    postgres_max_pool_size: int = Field(default=10, ge=1)
    postgres_command_timeout: float = Field(default=30.0, gt=0)
    migrations_on_startup: bool = Field(default=True)

    # Redis, comma separated host:port list (empty disables the cache)
    redis_addrs: str = Field(default="")
    redis_cluster: bool = Field(default=False)
    redis_password: Optional[str] = Field(default=None)
    redis_connect_timeout: float = Field(default=5.0, gt=0)

    # Cache-aside behaviour
    cache_ttl_seconds: int = Field(default=300, gt=0)
    strict_cache_writes: bool = Field(default=True)
    operation_timeout_seconds: Optional[float] = Field(default=5.0)

    @property
    def redis_addresses(self) -> List[str]:
        """Configured Redis addresses as a list."""
        return [part.strip() for part in self.redis_addrs.split(",") if part.strip()]

    @field_validator("operation_timeout_seconds")
    @classmethod
    def _non_positive_timeout_disables(cls, value):
        if value is not None and value <= 0:
            return None
        return value


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
