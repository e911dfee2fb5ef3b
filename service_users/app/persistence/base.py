"""
Record store contract.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..models import User


class UserStore(ABC):
    """Authoritative persistence for user records.

    Implementations own id assignment and email uniqueness, and raise only
    ServiceException subclasses:

    - create: AlreadyExistsError, StoreError
    - get_by_id: StoreError (absence is ``None``)
    - update: NotFoundError, AlreadyExistsError, StoreError
    - delete: NotFoundError, StoreError
    """

    @abstractmethod
    async def create(self, email: str, name: str) -> User:
        """Insert a new record and return it with id and created_at set."""

    @abstractmethod
    async def get_by_id(self, user_id: int) -> Optional[User]:
        """Return the record or None when no row matches."""

    @abstractmethod
    async def update(self, user: User) -> User:
        """Apply non-empty fields of ``user`` and return the stored record."""

    @abstractmethod
    async def delete(self, user_id: int) -> None:
        """Remove the record."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""

    async def health_check(self) -> bool:
        """Check store health."""
        return True
