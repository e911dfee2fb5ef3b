"""
PostgreSQL persistence layer for the User Directory Service.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg

from shared.logging import get_logger
from shared.errors import AlreadyExistsError, NotFoundError, StoreError
from ..models import User
from .base import UserStore
from .migrations import migrate_up

# Failures asyncpg can surface that carry no domain meaning
_BACKEND_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

_USER_COLUMNS = "id, email, name, created_at"


class PostgreSQLUserStore(UserStore):
    """PostgreSQL persistence layer for user records."""

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 30.0,
        logger=None,
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = logger or get_logger("users.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self, apply_migrations: bool = True):
        """Create the connection pool and bring the schema up to date."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )
            if apply_migrations:
                async with self.pool.acquire() as conn:
                    applied = await migrate_up(conn)
                if applied:
                    self.logger.info("Schema migrations applied", versions=applied)
        except _BACKEND_ERRORS as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            await self.close()
            raise StoreError("PostgreSQL start failed", {"error": str(e)}) from e

        self.logger.info("PostgreSQL persistence started")

    @asynccontextmanager
    async def _connection(self):
        if self.pool is None:
            raise StoreError("PostgreSQL persistence is not started")
        async with self.pool.acquire() as conn:
            yield conn

    async def create(self, email: str, name: str) -> User:
        """Insert a user; the database assigns id and created_at."""
        op = "storage.postgres.create"
        try:
            async with self._connection() as conn:
                row = await conn.fetchrow(f"""
                    INSERT INTO users (email, name) VALUES ($1, $2)
                    RETURNING {_USER_COLUMNS}
                """, email, name)
        except asyncpg.UniqueViolationError as e:
            self.logger.warning("Email already registered", op=op, email=email)
            raise AlreadyExistsError("User already exists", {"email": email}) from e
        except _BACKEND_ERRORS as e:
            self.logger.error("Error creating user", op=op, error=str(e))
            raise StoreError("Error creating user", {"error": str(e)}) from e

        user = self._row_to_user(row)
        self.logger.info("User created", op=op, user_id=user.id)
        return user

    async def get_by_id(self, user_id: int) -> Optional[User]:
        """Load a user, or None when no row matches."""
        op = "storage.postgres.get_by_id"
        try:
            async with self._connection() as conn:
                row = await conn.fetchrow(f"""
                    SELECT {_USER_COLUMNS} FROM users WHERE id = $1
                """, user_id)
        except _BACKEND_ERRORS as e:
            self.logger.error("Error loading user", op=op, user_id=user_id, error=str(e))
            raise StoreError("Error loading user", {"user_id": user_id, "error": str(e)}) from e

        if row is None:
            return None
        return self._row_to_user(row)

    async def update(self, user: User) -> User:
        """Update non-empty fields of a user and return the stored row."""
        op = "storage.postgres.update"
        try:
            async with self._connection() as conn:
                row = await conn.fetchrow(f"""
                    UPDATE users
                    SET email = COALESCE(NULLIF($1, ''), email),
                        name = COALESCE(NULLIF($2, ''), name)
                    WHERE id = $3
                    RETURNING {_USER_COLUMNS}
                """, user.email, user.name, user.id)
        except asyncpg.UniqueViolationError as e:
            self.logger.warning("Email already registered", op=op, user_id=user.id)
            raise AlreadyExistsError("User already exists", {"email": user.email}) from e
        except _BACKEND_ERRORS as e:
            self.logger.error("Error updating user", op=op, user_id=user.id, error=str(e))
            raise StoreError("Error updating user", {"user_id": user.id, "error": str(e)}) from e

        if row is None:
            raise NotFoundError("User not found", {"user_id": user.id})

        self.logger.info("User updated", op=op, user_id=user.id)
        return self._row_to_user(row)

    async def delete(self, user_id: int) -> None:
        """Delete a user."""
        op = "storage.postgres.delete"
        try:
            async with self._connection() as conn:
                result = await conn.execute("""
                    DELETE FROM users WHERE id = $1
                """, user_id)
        except _BACKEND_ERRORS as e:
            self.logger.error("Error deleting user", op=op, user_id=user_id, error=str(e))
            raise StoreError("Error deleting user", {"user_id": user_id, "error": str(e)}) from e

        # Command tag is "DELETE <rows>"
        if result.split()[-1] == "0":
            self.logger.warning("User not found for deletion", op=op, user_id=user_id)
            raise NotFoundError("User not found", {"user_id": user_id})

        self.logger.info("User deleted", op=op, user_id=user_id)

    async def close(self) -> None:
        """Close the connection pool."""
        if self.pool is None:
            return
        pool, self.pool = self.pool, None
        try:
            await pool.close()
        except _BACKEND_ERRORS as e:
            self.logger.error("PostgreSQL pool close failed", error=str(e))
            raise StoreError("PostgreSQL pool close failed", {"error": str(e)}) from e
        self.logger.info("PostgreSQL persistence stopped")

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self._connection() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except (StoreError,) + _BACKEND_ERRORS:
            return False

    def _row_to_user(self, row) -> User:
        """Convert database row to User object."""
        return User(
            id=row['id'],
            email=row['email'],
            name=row['name'],
            created_at=row['created_at']
        )
