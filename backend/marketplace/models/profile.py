"""
User profile models.
"""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from marketplace.models.records import optional, require


class Role(str, Enum):
    """Profile role."""

    USER = "user"
    ADMIN = "admin"


class ProfileCreate(BaseModel):
    """Create a profile for a newly registered user."""

    id: str = Field(..., min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255)
    avatar_url: Optional[str] = Field(None, max_length=1000)
    role: Role = Role.USER


class Profile(BaseModel):
    """User profile as shown to other users."""

    id: str
    name: str
    email: str
    role: Role = Role.USER
    avatar_url: Optional[str] = None
    whatsapp_number: Optional[str] = None
    member_since: Optional[datetime] = None
    items_sold: int = 0
    wishlist: list[int] = Field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class ProfileUpdate(BaseModel):
    """
    Update profile fields.

    avatar_url may be a regular URL or a ``data:image/...`` URL; the latter is
    re-encoded to WebP and uploaded before the profile is saved.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    whatsapp_number: Optional[str] = Field(None, max_length=50)
    avatar_url: Optional[str] = None


def profile_from_record(record: Mapping[str, Any]) -> Profile:
    """Map a profiles row to Profile."""
    return Profile(
        id=str(require(record, "id", "profile")),
        name=require(record, "name", "profile"),
        email=require(record, "email", "profile"),
        role=Role(optional(record, "role", Role.USER.value)),
        avatar_url=optional(record, "avatar_url"),
        whatsapp_number=optional(record, "whatsapp_number"),
        member_since=optional(record, "created_at"),
        items_sold=optional(record, "items_sold", 0),
        wishlist=list(optional(record, "wishlist", [])),
    )
