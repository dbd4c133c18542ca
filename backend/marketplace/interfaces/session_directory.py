"""
Session directory interface.

Defines the contract for resolving and creating chat sessions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from marketplace.models.chat import ChatSession


class ISessionDirectory(ABC):
    """Abstract interface for chat session lookup."""

    @abstractmethod
    async def get_session(self, session_id: int) -> Optional[ChatSession]:
        """
        Get session metadata.

        Args:
            session_id: Session ID

        Returns:
            ChatSession, or None if it does not exist
        """
        pass

    @abstractmethod
    async def find_or_create_session(
        self,
        listing_id: int,
        buyer_id: str,
        seller_id: str,
    ) -> ChatSession:
        """
        Resolve the session for (listing, buyer), creating it if missing.

        Implementations must make this an atomic upsert: concurrent calls for
        the same (listing, buyer) return the same session.

        Args:
            listing_id: Listing being discussed
            buyer_id: Interested user
            seller_id: Listing owner

        Returns:
            ChatSession
        """
        pass

    @abstractmethod
    async def list_sessions_for_user(self, user_id: str) -> list[ChatSession]:
        """
        List sessions where the user is buyer or seller.

        Most recently active first; sessions without messages last.
        """
        pass
