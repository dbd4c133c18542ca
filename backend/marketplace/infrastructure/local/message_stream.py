"""
SQLite-backed chat message stream.

Messages are stored in SQLite; live delivery goes through the in-process
realtime hub, one channel per chat session.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from marketplace.core.exceptions import InfrastructureError, NotFoundError, ValidationError
from marketplace.core.logger import setup_logger
from marketplace.infrastructure.local.database import (
    ChatMessageORM,
    ChatSessionORM,
    get_session_factory,
    row_to_dict,
)
from marketplace.interfaces.message_stream import IMessageStream, MessageSubscription
from marketplace.models.chat import ChatMessage, message_from_record
from marketplace.services.realtime_service import RealtimeHub, chat_channel

logger = setup_logger(__name__)


class SqliteMessageStream(IMessageStream):
    """Chat message transport over SQLite plus the realtime hub."""

    def __init__(self, hub: RealtimeHub, session_factory=None):
        self._hub = hub
        self._session_factory = session_factory or get_session_factory()

    def _orm_to_model(self, orm: ChatMessageORM) -> ChatMessage:
        """Convert message ORM object to Pydantic model."""
        return message_from_record(row_to_dict(orm))

    async def fetch_history(self, session_id: int, limit: int = 500) -> list[ChatMessage]:
        """Most recent `limit` messages of a session."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ChatMessageORM)
                    .where(ChatMessageORM.session_id == session_id)
                    .order_by(ChatMessageORM.id.desc())
                    .limit(limit)
                )
                return [self._orm_to_model(orm) for orm in result.scalars().all()]
        except SQLAlchemyError as e:
            raise InfrastructureError(f"Failed to fetch chat history: {e}")

    async def subscribe(self, session_id: int) -> MessageSubscription:
        """Open a live feed on the session's hub channel."""
        return await self._hub.connect(chat_channel(session_id))

    async def append(self, session_id: int, sender_id: str, text: str) -> ChatMessage:
        """Store a message, update the session preview and publish it."""
        if not text or not text.strip():
            raise ValidationError("Message text must not be empty")

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ChatSessionORM).where(ChatSessionORM.id == session_id)
                )
                session_orm = result.scalar_one_or_none()
                if not session_orm:
                    raise NotFoundError(f"Chat session {session_id} not found")
                if sender_id not in (session_orm.buyer_id, session_orm.seller_id):
                    raise ValidationError(
                        f"User {sender_id} is not a participant of chat {session_id}"
                    )

                message_orm = ChatMessageORM(
                    session_id=session_id,
                    sender_id=sender_id,
                    text=text,
                )
                session.add(message_orm)
                await session.flush()
                await session.refresh(message_orm)

                session_orm.last_message = text
                session_orm.last_message_at = message_orm.created_at

                await session.commit()
                message = self._orm_to_model(message_orm)
        except SQLAlchemyError as e:
            raise InfrastructureError(f"Failed to append chat message: {e}")

        await self._hub.publish(chat_channel(session_id), message)
        logger.debug("Published message %s to chat %s", message.id, session_id)
        return message
