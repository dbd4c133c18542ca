"""
SQLite implementation of the chat session directory.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError

from marketplace.core.exceptions import BusinessLogicError
from marketplace.core.logger import setup_logger
from marketplace.infrastructure.local.database import (
    ChatSessionORM,
    ListingORM,
    get_session_factory,
    row_to_dict,
)
from marketplace.interfaces.session_directory import ISessionDirectory
from marketplace.models.chat import ChatSession, session_from_record

logger = setup_logger(__name__)


class SqliteSessionDirectory(ISessionDirectory):
    """SQLite implementation of the session directory."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_session_factory()

    def _orm_to_model(
        self,
        orm: ChatSessionORM,
        listing: Optional[ListingORM] = None,
    ) -> ChatSession:
        """Convert session ORM object (plus its listing) to Pydantic model."""
        record = row_to_dict(orm)
        if listing is not None:
            record["listing"] = {"name": listing.name, "image_urls": listing.image_urls or []}
        return session_from_record(record)

    async def get_session(self, session_id: int) -> Optional[ChatSession]:
        """Get session metadata joined with its listing."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatSessionORM, ListingORM)
                .outerjoin(ListingORM, ListingORM.id == ChatSessionORM.listing_id)
                .where(ChatSessionORM.id == session_id)
            )
            row = result.first()
            if not row:
                return None
            return self._orm_to_model(row[0], row[1])

    async def find_or_create_session(
        self,
        listing_id: int,
        buyer_id: str,
        seller_id: str,
    ) -> ChatSession:
        """Resolve the (listing, buyer) session, creating it if missing."""
        if buyer_id == seller_id:
            raise BusinessLogicError("Seller cannot open a chat with themselves")

        existing = await self._find(listing_id, buyer_id)
        if existing:
            return existing

        async with self._session_factory() as session:
            orm = ChatSessionORM(
                listing_id=listing_id,
                buyer_id=buyer_id,
                seller_id=seller_id,
            )
            session.add(orm)
            try:
                await session.commit()
            except IntegrityError:
                # Lost the race against a concurrent create for the same pair
                await session.rollback()
                logger.info(
                    "Chat session for listing %s / buyer %s created concurrently",
                    listing_id,
                    buyer_id,
                )
            else:
                logger.info("Created chat session %s for listing %s", orm.id, listing_id)

        created = await self._find(listing_id, buyer_id)
        if created is None:
            raise BusinessLogicError(
                f"Chat session for listing {listing_id} could not be created"
            )
        return created

    async def _find(self, listing_id: int, buyer_id: str) -> Optional[ChatSession]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatSessionORM, ListingORM)
                .outerjoin(ListingORM, ListingORM.id == ChatSessionORM.listing_id)
                .where(
                    and_(
                        ChatSessionORM.listing_id == listing_id,
                        ChatSessionORM.buyer_id == buyer_id,
                    )
                )
            )
            row = result.first()
            if not row:
                return None
            return self._orm_to_model(row[0], row[1])

    async def list_sessions_for_user(self, user_id: str) -> list[ChatSession]:
        """List the user's sessions, most recent message first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatSessionORM, ListingORM)
                .outerjoin(ListingORM, ListingORM.id == ChatSessionORM.listing_id)
                .where(
                    or_(
                        ChatSessionORM.buyer_id == user_id,
                        ChatSessionORM.seller_id == user_id,
                    )
                )
            )
            sessions = [self._orm_to_model(orm, listing) for orm, listing in result.all()]

        return sorted(
            sessions,
            key=lambda s: (s.last_message_at is not None, s.last_message_at or datetime.min),
            reverse=True,
        )
