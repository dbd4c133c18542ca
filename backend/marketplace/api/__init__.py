"""API routers."""

from marketplace.api import chats, listings, profiles

__all__ = [
    "chats",
    "listings",
    "profiles",
]
