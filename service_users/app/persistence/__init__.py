"""
Persistence package for the User Directory Service.

PostgreSQL is the source of truth for user records: it assigns ids and
creation timestamps and enforces email uniqueness.
"""

from .base import UserStore
from .postgres import PostgreSQLUserStore
from .migrations import migrate_up, MIGRATIONS

__all__ = ["UserStore", "PostgreSQLUserStore", "migrate_up", "MIGRATIONS"]
