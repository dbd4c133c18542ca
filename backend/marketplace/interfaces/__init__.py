"""Abstract interfaces for infrastructure abstraction."""

from marketplace.interfaces.auth_provider import IAuthProvider, User
from marketplace.interfaces.listing_repository import IListingRepository
from marketplace.interfaces.message_stream import IMessageStream, MessageSubscription
from marketplace.interfaces.profile_store import IProfileStore
from marketplace.interfaces.session_directory import ISessionDirectory
from marketplace.interfaces.storage_provider import IStorageProvider

__all__ = [
    "ISessionDirectory",
    "IProfileStore",
    "IMessageStream",
    "MessageSubscription",
    "IListingRepository",
    "IStorageProvider",
    "IAuthProvider",
    "User",
]
