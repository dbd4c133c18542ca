"""
Listing (product for sale) models.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from marketplace.models.records import optional, require


class ListingLocation(BaseModel):
    """Where the item is offered."""

    province: str = Field(..., max_length=100)
    city: str = Field(..., max_length=100)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class ListingCategory(BaseModel):
    """Two-level category."""

    primary: str = Field(..., max_length=100)
    secondary: str = Field("", max_length=100)


class ContactInfo(BaseModel):
    """How buyers may reach the seller."""

    chat: bool = True
    whatsapp: Optional[str] = Field(None, max_length=50)


class ListingBase(BaseModel):
    """Base listing fields."""

    name: str = Field(..., min_length=1, max_length=200)
    price: float = Field(..., ge=0)
    description: str = Field("", max_length=5000)
    image_urls: list[str] = Field(default_factory=list)
    location: ListingLocation
    category: ListingCategory
    contact_info: ContactInfo = Field(default_factory=ContactInfo)


class ListingCreate(ListingBase):
    """Schema for creating a listing."""

    pass


class ListingUpdate(BaseModel):
    """Schema for updating a listing (partial)."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=5000)
    image_urls: Optional[list[str]] = None
    location: Optional[ListingLocation] = None
    category: Optional[ListingCategory] = None
    contact_info: Optional[ContactInfo] = None


class Listing(ListingBase):
    """Listing model."""

    id: int
    seller_id: str
    posted_at: datetime


class ListingFilter(BaseModel):
    """Catalogue filter. Empty values match everything."""

    search: str = ""
    province: str = ""
    city: str = ""
    category_primary: str = ""
    category_secondary: str = ""

    @property
    def is_active(self) -> bool:
        return bool(self.category_primary or self.province)


def listing_from_record(record: Mapping[str, Any]) -> Listing:
    """Map a listings row to Listing."""
    return Listing(
        id=require(record, "id", "listing"),
        seller_id=str(require(record, "seller_id", "listing")),
        name=require(record, "name", "listing"),
        price=require(record, "price", "listing"),
        description=optional(record, "description", ""),
        image_urls=list(optional(record, "image_urls", [])),
        location=ListingLocation(**require(record, "location", "listing")),
        category=ListingCategory(**require(record, "category", "listing")),
        contact_info=ContactInfo(**optional(record, "contact_info", {})),
        posted_at=require(record, "created_at", "listing"),
    )
