"""
Profiles API endpoints.
"""

from fastapi import APIRouter, HTTPException, Query, status

from marketplace.api.deps import CurrentProfile, ListingRepo, ProfileStore, ProfileSvc
from marketplace.core.exceptions import NotFoundError, ValidationError
from marketplace.models.listing import Listing
from marketplace.models.profile import Profile, ProfileUpdate

router = APIRouter()


@router.get("/me", response_model=Profile)
async def get_my_profile(profile: CurrentProfile):
    return profile


@router.patch("/me", response_model=Profile)
async def update_my_profile(
    update: ProfileUpdate,
    profile: CurrentProfile,
    profile_service: ProfileSvc,
):
    """Update name, WhatsApp number or avatar (URL or data:image URL)."""
    try:
        return await profile_service.update(profile.id, update)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/me/listings", response_model=list[Listing])
async def list_my_listings(profile: CurrentProfile, listing_repo: ListingRepo):
    return await listing_repo.list_by_seller(profile.id)


@router.post("/me/wishlist/{listing_id}", response_model=Profile)
async def toggle_wishlist(
    listing_id: int,
    profile: CurrentProfile,
    profile_service: ProfileSvc,
    listing_repo: ListingRepo,
):
    """Add the listing to the wishlist, or remove it if already there."""
    if listing_id not in profile.wishlist and not await listing_repo.get(listing_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Listing {listing_id} not found",
        )
    return await profile_service.toggle_wishlist(profile.id, listing_id)


@router.get("", response_model=list[Profile])
async def list_profiles(
    profile: CurrentProfile,
    profile_store: ProfileStore,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """List all profiles. Admin only."""
    if not profile.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return await profile_store.list_profiles(limit=limit, offset=offset)


@router.get("/{user_id}", response_model=Profile)
async def get_profile(user_id: str, profile_service: ProfileSvc):
    try:
        return await profile_service.get(user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
