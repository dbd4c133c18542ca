"""
Profile use cases: first-visit provisioning and profile edits with avatar upload.
"""

from typing import Iterable, Optional

from marketplace.core.exceptions import DuplicateError, NotFoundError
from marketplace.core.logger import setup_logger
from marketplace.interfaces.auth_provider import User
from marketplace.interfaces.profile_store import IProfileStore
from marketplace.interfaces.storage_provider import IStorageProvider
from marketplace.models.profile import Profile, ProfileCreate, ProfileUpdate, Role
from marketplace.services.image_service import decode_data_url, is_data_url, store_webp

logger = setup_logger(__name__)


class ProfileService:
    def __init__(
        self,
        profile_store: IProfileStore,
        storage: IStorageProvider,
        default_avatar_url: str = "https://i.pravatar.cc/150?u={user_id}",
        webp_quality: int = 80,
        max_image_bytes: int = 5 * 1024 * 1024,
        admin_user_ids: Optional[Iterable[str]] = None,
    ):
        self._profiles = profile_store
        self._storage = storage
        self._default_avatar_url = default_avatar_url
        self._webp_quality = webp_quality
        self._max_image_bytes = max_image_bytes
        self._admin_user_ids = frozenset(admin_user_ids or ())

    async def get_or_create(self, user: User) -> Profile:
        """Return the caller's profile, creating it on first access."""
        profile = await self._profiles.get_profile(user.id)
        if profile:
            return profile

        data = ProfileCreate(
            id=user.id,
            name=user.display_name or user.id,
            email=user.email or "",
            avatar_url=self._default_avatar_url.format(user_id=user.id),
            role=Role.ADMIN if user.id in self._admin_user_ids else Role.USER,
        )
        try:
            profile = await self._profiles.create_profile(data)
        except DuplicateError:
            # Created by a concurrent request
            profile = await self._profiles.get_profile(user.id)
            if profile is None:
                raise
        else:
            logger.info("Created profile for %s", user.id)
        return profile

    async def get(self, user_id: str) -> Profile:
        profile = await self._profiles.get_profile(user_id)
        if not profile:
            raise NotFoundError(f"Profile {user_id} not found")
        return profile

    async def update(self, user_id: str, update: ProfileUpdate) -> Profile:
        """Apply an update; a data URL avatar is re-encoded and uploaded first."""
        if update.avatar_url and is_data_url(update.avatar_url):
            _, raw = decode_data_url(update.avatar_url)
            url = await store_webp(
                self._storage,
                f"avatars/{user_id}",
                raw,
                quality=self._webp_quality,
                max_bytes=self._max_image_bytes,
            )
            update = update.model_copy(update={"avatar_url": url})
        return await self._profiles.update_profile(user_id, update)

    async def toggle_wishlist(self, user_id: str, listing_id: int) -> Profile:
        return await self._profiles.toggle_wishlist(user_id, listing_id)
