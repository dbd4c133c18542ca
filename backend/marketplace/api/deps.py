"""
Dependency injection for API endpoints.

This module provides FastAPI dependencies that inject the correct
infrastructure implementations based on environment configuration.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from marketplace.core.config import get_settings
from marketplace.interfaces.auth_provider import IAuthProvider, User
from marketplace.interfaces.listing_repository import IListingRepository
from marketplace.interfaces.message_stream import IMessageStream
from marketplace.interfaces.profile_store import IProfileStore
from marketplace.interfaces.session_directory import ISessionDirectory
from marketplace.interfaces.storage_provider import IStorageProvider
from marketplace.models.profile import Profile
from marketplace.services.chat_service import ChatService
from marketplace.services.listing_service import ListingService
from marketplace.services.profile_service import ProfileService


# ===========================================
# Repository Dependencies
# ===========================================


@lru_cache()
def get_session_factory():
    """Shared async session factory for the local adapters."""
    from marketplace.infrastructure.local.database import get_session_factory as factory

    return factory()


@lru_cache()
def get_session_directory() -> ISessionDirectory:
    """Get chat session directory instance."""
    settings = get_settings()
    if settings.is_gcp:
        raise NotImplementedError("Hosted session directory not implemented yet")
    from marketplace.infrastructure.local.session_directory import SqliteSessionDirectory

    return SqliteSessionDirectory(session_factory=get_session_factory())


@lru_cache()
def get_profile_store() -> IProfileStore:
    """Get profile store instance."""
    settings = get_settings()
    if settings.is_gcp:
        raise NotImplementedError("Hosted profile store not implemented yet")
    from marketplace.infrastructure.local.profile_store import SqliteProfileStore

    return SqliteProfileStore(session_factory=get_session_factory())


@lru_cache()
def get_message_stream() -> IMessageStream:
    """Get chat message stream instance."""
    settings = get_settings()
    if settings.is_gcp:
        raise NotImplementedError("Hosted message stream not implemented yet")
    from marketplace.infrastructure.local.message_stream import SqliteMessageStream
    from marketplace.services.realtime_service import realtime_hub

    return SqliteMessageStream(realtime_hub, session_factory=get_session_factory())


@lru_cache()
def get_listing_repository() -> IListingRepository:
    """Get listing repository instance."""
    settings = get_settings()
    if settings.is_gcp:
        raise NotImplementedError("Hosted listing repository not implemented yet")
    from marketplace.infrastructure.local.listing_repository import SqliteListingRepository

    return SqliteListingRepository(session_factory=get_session_factory())


@lru_cache()
def get_storage_provider() -> IStorageProvider:
    """Get storage provider instance."""
    settings = get_settings()
    if settings.is_gcp:
        raise NotImplementedError("Cloud storage not implemented yet")
    from marketplace.infrastructure.local.storage_provider import LocalStorageProvider

    return LocalStorageProvider(settings.STORAGE_BASE_PATH, settings.BASE_URL)


@lru_cache()
def get_auth_provider() -> IAuthProvider:
    """Get auth provider instance."""
    from marketplace.infrastructure.local.mock_auth import MockAuthProvider

    return MockAuthProvider(enabled=get_settings().AUTH_ENABLED)


# ===========================================
# Service Dependencies
# ===========================================


def get_chat_service(
    sessions: ISessionDirectory = Depends(get_session_directory),
    profiles: IProfileStore = Depends(get_profile_store),
    stream: IMessageStream = Depends(get_message_stream),
    listings: IListingRepository = Depends(get_listing_repository),
) -> ChatService:
    return ChatService(
        sessions=sessions,
        profiles=profiles,
        stream=stream,
        listings=listings,
        history_limit=get_settings().CHAT_HISTORY_LIMIT,
    )


def get_listing_service(
    listings: IListingRepository = Depends(get_listing_repository),
    profiles: IProfileStore = Depends(get_profile_store),
    storage: IStorageProvider = Depends(get_storage_provider),
) -> ListingService:
    settings = get_settings()
    return ListingService(
        listings,
        profiles,
        storage=storage,
        webp_quality=settings.IMAGE_WEBP_QUALITY,
        max_image_bytes=settings.IMAGE_MAX_BYTES,
        max_images=settings.LISTING_MAX_IMAGES,
    )


def get_profile_service(
    profiles: IProfileStore = Depends(get_profile_store),
    storage: IStorageProvider = Depends(get_storage_provider),
) -> ProfileService:
    settings = get_settings()
    return ProfileService(
        profiles,
        storage,
        default_avatar_url=settings.DEFAULT_AVATAR_URL,
        webp_quality=settings.IMAGE_WEBP_QUALITY,
        max_image_bytes=settings.IMAGE_MAX_BYTES,
        admin_user_ids=settings.ADMIN_USER_IDS,
    )


# ===========================================
# User Authentication
# ===========================================


async def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    auth_provider: IAuthProvider = Depends(get_auth_provider),
) -> User:
    """
    Get current authenticated user.

    With auth disabled, every request acts as dev_user.
    """
    if not auth_provider.is_enabled():
        return User(id="dev_user", email="dev@example.com", display_name="Developer")

    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
        )

    # Extract token from "Bearer <token>"
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("Invalid scheme")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
        )

    try:
        return await auth_provider.verify_token(token)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        )


async def get_current_profile(
    user: User = Depends(get_current_user),
    profile_service: ProfileService = Depends(get_profile_service),
) -> Profile:
    """Profile of the caller, provisioned on first request."""
    return await profile_service.get_or_create(user)


# ===========================================
# Type Aliases for Dependency Injection
# ===========================================

ProfileStore = Annotated[IProfileStore, Depends(get_profile_store)]
ListingRepo = Annotated[IListingRepository, Depends(get_listing_repository)]
ChatSvc = Annotated[ChatService, Depends(get_chat_service)]
ListingSvc = Annotated[ListingService, Depends(get_listing_service)]
ProfileSvc = Annotated[ProfileService, Depends(get_profile_service)]
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentProfile = Annotated[Profile, Depends(get_current_profile)]
