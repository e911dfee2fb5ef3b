"""
User data models for the User Directory Service.
"""

from typing import Any, Dict, Optional
from dataclasses import dataclass, asdict
from datetime import datetime

from pydantic import BaseModel, Field


@dataclass
class User:
    """User record as held by the store."""
    id: int
    email: str
    name: str
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        """Build a User from the output of to_dict."""
        created_at = data.get("created_at")
        return cls(
            id=int(data["id"]),
            email=data["email"],
            name=data["name"],
            created_at=datetime.fromisoformat(created_at) if created_at else None
        )


class UserCreateRequest(BaseModel):
    """Request model for creating a user."""
    email: str = Field(..., description="Unique email address")
    name: str = Field(..., description="Display name")


class UserUpdateRequest(BaseModel):
    """Request model for updating a user. Empty fields keep their value."""
    email: str = Field("", description="New email address")
    name: str = Field("", description="New display name")


class UserResponse(BaseModel):
    """Response model for user operations."""
    id: int
    email: str
    name: str
    created_at: Optional[datetime]

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, email=user.email, name=user.name, created_at=user.created_at)


class DeleteUserResponse(BaseModel):
    """Response model for user deletion."""
    success: bool = True
