"""
Chat session and message models.

A session is one conversation about one listing between its buyer and seller.
Messages are append-only; ids and timestamps are assigned by the transport.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from marketplace.models.records import optional, require


class ChatSession(BaseModel):
    """Chat session model."""

    id: int
    listing_id: int
    buyer_id: str = Field(..., description="User who opened the conversation")
    seller_id: str = Field(..., description="Owner of the listing")

    # Display data joined from the listing (may be missing)
    listing_name: Optional[str] = None
    listing_image_url: Optional[str] = None

    # Denormalized cache of the latest message
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None

    created_at: Optional[datetime] = None

    def participants(self) -> tuple[str, str]:
        return (self.buyer_id, self.seller_id)

    def is_participant(self, user_id: str) -> bool:
        return user_id in self.participants()

    def counterpart_of(self, user_id: str) -> str:
        """Return the other participant's id."""
        return self.seller_id if user_id == self.buyer_id else self.buyer_id


class ChatMessageCreate(BaseModel):
    """Schema for sending a chat message."""

    # Blank text is accepted here and ignored by the service
    text: str = Field(..., description="Message body")


class ChatMessage(BaseModel):
    """Chat message model."""

    id: int
    session_id: int
    sender_id: str
    text: str = Field(..., min_length=1)
    timestamp: datetime


def session_from_record(record: Mapping[str, Any]) -> ChatSession:
    """Map a chat_sessions row (optionally joined with its listing) to ChatSession."""
    listing = optional(record, "listing", {})
    image_urls = optional(listing, "image_urls", [])
    return ChatSession(
        id=require(record, "id", "chat_session"),
        listing_id=require(record, "listing_id", "chat_session"),
        buyer_id=str(require(record, "buyer_id", "chat_session")),
        seller_id=str(require(record, "seller_id", "chat_session")),
        listing_name=optional(listing, "name"),
        listing_image_url=image_urls[0] if image_urls else None,
        last_message=optional(record, "last_message"),
        last_message_at=optional(record, "last_message_at"),
        created_at=optional(record, "created_at"),
    )


def message_from_record(record: Mapping[str, Any]) -> ChatMessage:
    """Map a chat_messages row to ChatMessage. created_at becomes the timestamp."""
    return ChatMessage(
        id=require(record, "id", "chat_message"),
        session_id=require(record, "session_id", "chat_message"),
        sender_id=str(require(record, "sender_id", "chat_message")),
        text=require(record, "text", "chat_message"),
        timestamp=require(record, "created_at", "chat_message"),
    )
