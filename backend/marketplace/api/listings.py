"""
Listings API endpoints.

Catalogue browsing (search, filters, nearby sort) and seller/admin management.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from marketplace.api.deps import CurrentProfile, ListingSvc
from marketplace.core.config import get_settings
from marketplace.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from marketplace.models.listing import Listing, ListingCreate, ListingFilter, ListingUpdate

router = APIRouter()


class ListingResponse(Listing):
    """Listing with its distance from the caller, when a position was given."""

    distance_km: Optional[float] = None


class ListingListResponse(BaseModel):
    listings: list[ListingResponse]
    total: int
    location_sorted: bool


@router.get("", response_model=ListingListResponse)
async def list_listings(
    listing_service: ListingSvc,
    search: str = Query("", description="Case-insensitive name match"),
    province: str = Query(""),
    city: str = Query(""),
    category_primary: str = Query(""),
    category_secondary: str = Query(""),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lon: Optional[float] = Query(None, ge=-180, le=180),
):
    """Browse listings. With lat/lon, nearest listings come first."""
    listing_filter = ListingFilter(
        search=search,
        province=province,
        city=city,
        category_primary=category_primary,
        category_secondary=category_secondary,
    )
    results = await listing_service.search(
        listing_filter,
        latitude=lat,
        longitude=lon,
        limit=get_settings().LISTING_PAGE_LIMIT,
    )
    return ListingListResponse(
        listings=[
            ListingResponse(**listing.model_dump(), distance_km=distance)
            for listing, distance in results
        ],
        total=len(results),
        location_sorted=lat is not None and lon is not None,
    )


@router.get("/{listing_id}", response_model=Listing)
async def get_listing(listing_id: int, listing_service: ListingSvc):
    try:
        return await listing_service.get(listing_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("", response_model=Listing, status_code=status.HTTP_201_CREATED)
async def create_listing(
    data: ListingCreate,
    profile: CurrentProfile,
    listing_service: ListingSvc,
):
    """Create a listing owned by the caller. data:image URLs are uploaded as WebP."""
    try:
        return await listing_service.create(profile.id, data)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.patch("/{listing_id}", response_model=Listing)
async def update_listing(
    listing_id: int,
    update: ListingUpdate,
    profile: CurrentProfile,
    listing_service: ListingSvc,
):
    """Update a listing. Seller or admin only."""
    try:
        return await listing_service.update(profile.id, listing_id, update)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ForbiddenError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{listing_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_listing(
    listing_id: int,
    profile: CurrentProfile,
    listing_service: ListingSvc,
):
    """Delete a listing. Seller or admin only."""
    try:
        await listing_service.delete(profile.id, listing_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ForbiddenError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
