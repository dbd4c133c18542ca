"""
Listing catalogue: filtering, distance sorting and owner checks.
"""

import math
from typing import Optional

from marketplace.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from marketplace.core.logger import setup_logger
from marketplace.interfaces.listing_repository import IListingRepository
from marketplace.interfaces.profile_store import IProfileStore
from marketplace.interfaces.storage_provider import IStorageProvider
from marketplace.models.listing import Listing, ListingCreate, ListingFilter, ListingUpdate
from marketplace.services.image_service import decode_data_url, is_data_url, store_webp

logger = setup_logger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def matches_filter(listing: Listing, listing_filter: ListingFilter) -> bool:
    if listing_filter.search and listing_filter.search.lower() not in listing.name.lower():
        return False
    if listing_filter.province and listing.location.province != listing_filter.province:
        return False
    if listing_filter.city and listing.location.city != listing_filter.city:
        return False
    if listing_filter.category_primary and listing.category.primary != listing_filter.category_primary:
        return False
    if (
        listing_filter.category_secondary
        and listing.category.secondary != listing_filter.category_secondary
    ):
        return False
    return True


def filter_listings(listings: list[Listing], listing_filter: ListingFilter) -> list[Listing]:
    return [listing for listing in listings if matches_filter(listing, listing_filter)]


def sort_by_distance(
    listings: list[Listing],
    latitude: float,
    longitude: float,
) -> list[tuple[Listing, float]]:
    """Pair each listing with its distance from the point, nearest first."""
    with_distance = [
        (
            listing,
            haversine_km(latitude, longitude, listing.location.latitude, listing.location.longitude),
        )
        for listing in listings
    ]
    return sorted(with_distance, key=lambda pair: pair[1])


def ensure_can_manage(listing: Listing, user_id: str, is_admin: bool = False) -> None:
    """Only the seller or an admin may change a listing."""
    if is_admin or listing.seller_id == user_id:
        return
    raise ForbiddenError(f"User {user_id} cannot modify listing {listing.id}")


class ListingService:
    """Listing use cases on top of the repository."""

    def __init__(
        self,
        listing_repo: IListingRepository,
        profile_store: IProfileStore,
        storage: Optional[IStorageProvider] = None,
        webp_quality: int = 80,
        max_image_bytes: int = 5 * 1024 * 1024,
        max_images: int = 10,
    ):
        self._listings = listing_repo
        self._profiles = profile_store
        self._storage = storage
        self._webp_quality = webp_quality
        self._max_image_bytes = max_image_bytes
        self._max_images = max_images

    async def search(
        self,
        listing_filter: ListingFilter,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        limit: int = 200,
    ) -> list[tuple[Listing, Optional[float]]]:
        """
        Filter the catalogue; sort by distance when a position is given.

        Without a position the repository order (newest first) is kept and
        distances are None. The limit applies after filtering and sorting.
        """
        listings = filter_listings(await self._listings.list(limit=None), listing_filter)
        if latitude is None or longitude is None:
            results = [(listing, None) for listing in listings]
        else:
            results = sort_by_distance(listings, latitude, longitude)
        return results[:limit]

    async def get(self, listing_id: int) -> Listing:
        listing = await self._listings.get(listing_id)
        if not listing:
            raise NotFoundError(f"Listing {listing_id} not found")
        return listing

    async def create(self, seller_id: str, data: ListingCreate) -> Listing:
        image_urls = await self._store_images(seller_id, data.image_urls)
        data = data.model_copy(update={"image_urls": image_urls})
        listing = await self._listings.create(seller_id, data)
        logger.info("Listing %s created by %s", listing.id, seller_id)
        return listing

    async def update(self, user_id: str, listing_id: int, update: ListingUpdate) -> Listing:
        listing = await self.get(listing_id)
        ensure_can_manage(listing, user_id, await self._is_admin(user_id))
        if update.image_urls is not None:
            image_urls = await self._store_images(listing.seller_id, update.image_urls)
            update = update.model_copy(update={"image_urls": image_urls})
        return await self._listings.update(listing_id, update)

    async def delete(self, user_id: str, listing_id: int) -> None:
        listing = await self.get(listing_id)
        ensure_can_manage(listing, user_id, await self._is_admin(user_id))
        await self._listings.delete(listing_id)
        logger.info("Listing %s deleted by %s", listing_id, user_id)

    async def _store_images(self, seller_id: str, image_urls: list[str]) -> list[str]:
        """Upload data URL images as WebP; plain URLs are kept as they are."""
        if len(image_urls) > self._max_images:
            raise ValidationError(f"A listing can have at most {self._max_images} images")

        stored = []
        for url in image_urls:
            if not is_data_url(url):
                stored.append(url)
                continue
            if self._storage is None:
                raise ValidationError("Image upload is not available")
            _, raw = decode_data_url(url)
            stored.append(
                await store_webp(
                    self._storage,
                    f"listings/{seller_id}",
                    raw,
                    quality=self._webp_quality,
                    max_bytes=self._max_image_bytes,
                )
            )
        return stored

    async def _is_admin(self, user_id: str) -> bool:
        profile = await self._profiles.get_profile(user_id)
        return bool(profile and profile.is_admin)
