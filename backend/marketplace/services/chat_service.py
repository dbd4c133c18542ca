"""
Chat use cases: starting a conversation about a listing, listing a user's
conversations and building per-screen sync controllers.
"""

from typing import Optional

from marketplace.core.exceptions import (
    BusinessLogicError,
    ForbiddenError,
    NotFoundError,
    SendFailed,
)
from marketplace.core.logger import setup_logger
from marketplace.interfaces.listing_repository import IListingRepository
from marketplace.interfaces.message_stream import IMessageStream
from marketplace.interfaces.profile_store import IProfileStore
from marketplace.interfaces.session_directory import ISessionDirectory
from marketplace.models.chat import ChatMessage, ChatSession
from marketplace.services.chat_sync import ChatSyncController, ErrorListener, MessageListener

logger = setup_logger(__name__)


class ChatService:
    def __init__(
        self,
        sessions: ISessionDirectory,
        profiles: IProfileStore,
        stream: IMessageStream,
        listings: IListingRepository,
        history_limit: int = 500,
    ):
        self._sessions = sessions
        self._profiles = profiles
        self._stream = stream
        self._listings = listings
        self._history_limit = history_limit

    async def start_chat(self, buyer_id: str, listing_id: int) -> ChatSession:
        """Resolve or create the buyer's conversation about a listing."""
        listing = await self._listings.get(listing_id)
        if not listing:
            raise NotFoundError(f"Listing {listing_id} not found")
        if not listing.contact_info.chat:
            raise BusinessLogicError(f"Listing {listing_id} does not accept chat")
        if listing.seller_id == buyer_id:
            raise BusinessLogicError("You cannot start a chat about your own listing")

        session = await self._sessions.find_or_create_session(
            listing_id, buyer_id, listing.seller_id
        )
        logger.debug("Chat %s resolved for listing %s / buyer %s", session.id, listing_id, buyer_id)
        return session

    async def list_chats(self, user_id: str) -> list[ChatSession]:
        return await self._sessions.list_sessions_for_user(user_id)

    async def get_session_for(self, user_id: str, session_id: int) -> ChatSession:
        """Session metadata, only for its participants."""
        session = await self._sessions.get_session(session_id)
        if not session:
            raise NotFoundError(f"Chat session {session_id} not found")
        if not session.is_participant(user_id):
            raise ForbiddenError(f"User {user_id} is not a participant of chat {session_id}")
        return session

    async def history(self, user_id: str, session_id: int) -> list[ChatMessage]:
        """Stored messages in display order."""
        await self.get_session_for(user_id, session_id)
        messages = await self._stream.fetch_history(session_id, limit=self._history_limit)
        return sorted(messages, key=lambda m: (m.timestamp, m.id))

    async def send_message(
        self,
        user_id: str,
        session_id: int,
        text: str,
    ) -> Optional[ChatMessage]:
        """
        Append a message without keeping a live view open.

        Blank text is ignored and returns None.

        Raises:
            SendFailed: Transport rejected the append
        """
        await self.get_session_for(user_id, session_id)
        body = text.strip()
        if not body:
            return None
        try:
            return await self._stream.append(session_id, user_id, body)
        except Exception as e:
            logger.error("Chat %s: send failed: %s", session_id, e)
            raise SendFailed(f"Could not send message to chat {session_id}: {e}") from e

    def open_controller(
        self,
        session_id: int,
        user_id: str,
        on_message: Optional[MessageListener] = None,
        on_error: Optional[ErrorListener] = None,
    ) -> ChatSyncController:
        """Build an unstarted controller wired to this service's capabilities."""
        return ChatSyncController(
            session_id=session_id,
            local_user_id=user_id,
            sessions=self._sessions,
            profiles=self._profiles,
            stream=self._stream,
            history_limit=self._history_limit,
            on_message=on_message,
            on_error=on_error,
        )
