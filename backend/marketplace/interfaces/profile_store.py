"""
Profile store interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from marketplace.models.profile import Profile, ProfileCreate, ProfileUpdate


class IProfileStore(ABC):
    """Abstract interface for user profile persistence."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Profile]:
        """Get a profile by user ID."""
        pass

    @abstractmethod
    async def create_profile(self, data: ProfileCreate) -> Profile:
        """Create a profile. Raises DuplicateError if it already exists."""
        pass

    @abstractmethod
    async def update_profile(self, user_id: str, update: ProfileUpdate) -> Profile:
        """Update profile fields. avatar_url must already be a stored URL."""
        pass

    @abstractmethod
    async def toggle_wishlist(self, user_id: str, listing_id: int) -> Profile:
        """Add the listing to the wishlist, or remove it if present."""
        pass

    @abstractmethod
    async def list_profiles(self, limit: int = 100, offset: int = 0) -> list[Profile]:
        """List profiles (admin view)."""
        pass
