"""
Versioned schema migrations for the users database.

Migrations are applied in version order inside one transaction while
holding an advisory lock, so concurrent service instances starting at
the same time apply each version exactly once.
"""

from typing import List, Tuple

import asyncpg

from shared.logging import get_logger

logger = get_logger("users.persistence.migrations")

# Arbitrary constant identifying this schema's advisory lock
MIGRATION_LOCK_ID = 724_311_001

MIGRATIONS: List[Tuple[int, str, str]] = [
    (
        1,
        "create users table",
        """
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            email TEXT NOT NULL,
            name TEXT NOT NULL,
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
            CONSTRAINT users_email_key UNIQUE (email),
            CONSTRAINT users_email_not_empty CHECK (email <> ''),
            CONSTRAINT users_name_not_empty CHECK (name <> '')
        );
        """,
    ),
    (
        2,
        "index users by creation time",
        """
        CREATE INDEX IF NOT EXISTS idx_users_created_at ON users(created_at);
        """,
    ),
]


async def applied_versions(conn: asyncpg.Connection) -> List[int]:
    """Versions recorded in schema_migrations, ascending."""
    rows = await conn.fetch("SELECT version FROM schema_migrations ORDER BY version")
    return [row["version"] for row in rows]


async def migrate_up(conn: asyncpg.Connection) -> List[int]:
    """Apply pending migrations and return the versions that were applied."""
    applied: List[int] = []

    async with conn.transaction():
        await conn.execute("SELECT pg_advisory_xact_lock($1)", MIGRATION_LOCK_ID)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                description TEXT NOT NULL,
                applied_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
            );
        """)

        done = set(await applied_versions(conn))
        for version, description, sql in sorted(MIGRATIONS):
            if version in done:
                continue
            logger.info("Applying migration", version=version, description=description)
            await conn.execute(sql)
            await conn.execute(
                "INSERT INTO schema_migrations (version, description) VALUES ($1, $2)",
                version, description
            )
            applied.append(version)

    if not applied:
        logger.debug("Schema is up to date")
    return applied
