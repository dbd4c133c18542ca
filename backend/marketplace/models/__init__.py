"""Pydantic models (schemas) for the application."""

from marketplace.models.chat import (
    ChatMessage,
    ChatMessageCreate,
    ChatSession,
    message_from_record,
    session_from_record,
)
from marketplace.models.listing import (
    ContactInfo,
    Listing,
    ListingCategory,
    ListingCreate,
    ListingFilter,
    ListingLocation,
    ListingUpdate,
    listing_from_record,
)
from marketplace.models.profile import (
    Profile,
    ProfileCreate,
    ProfileUpdate,
    Role,
    profile_from_record,
)

__all__ = [
    # Chat
    "ChatSession",
    "ChatMessage",
    "ChatMessageCreate",
    "session_from_record",
    "message_from_record",
    # Listings
    "Listing",
    "ListingCreate",
    "ListingUpdate",
    "ListingFilter",
    "ListingLocation",
    "ListingCategory",
    "ContactInfo",
    "listing_from_record",
    # Profiles
    "Profile",
    "ProfileCreate",
    "ProfileUpdate",
    "Role",
    "profile_from_record",
]
