"""
Listing repository interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from marketplace.models.listing import Listing, ListingCreate, ListingUpdate


class IListingRepository(ABC):
    """Abstract interface for listing persistence."""

    @abstractmethod
    async def get(self, listing_id: int) -> Optional[Listing]:
        """Get a listing by ID."""
        pass

    @abstractmethod
    async def list(self, limit: Optional[int] = 200, offset: int = 0) -> list[Listing]:
        """List listings, newest first. A limit of None returns every listing."""
        pass

    @abstractmethod
    async def list_by_seller(self, seller_id: str) -> list[Listing]:
        """List a seller's listings, newest first."""
        pass

    @abstractmethod
    async def create(self, seller_id: str, data: ListingCreate) -> Listing:
        """Create a listing owned by seller_id."""
        pass

    @abstractmethod
    async def update(self, listing_id: int, update: ListingUpdate) -> Listing:
        """Update a listing. Raises NotFoundError if missing."""
        pass

    @abstractmethod
    async def delete(self, listing_id: int) -> bool:
        """Delete a listing. Returns False if it did not exist."""
        pass
