"""
Message stream interface.

A message stream is the transport for one kind of append-only log keyed by
chat session: it serves history, pushes newly appended messages to
subscribers and accepts appends.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from marketplace.models.chat import ChatMessage


class MessageSubscription(ABC):
    """
    Live feed of messages for one session.

    Iterating yields each message appended after the subscription opened.
    cancel() is idempotent; once called, iteration stops and transport
    resources are released.
    """

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[ChatMessage]:
        pass

    @abstractmethod
    def cancel(self) -> None:
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class IMessageStream(ABC):
    """Abstract interface for the chat message transport."""

    @abstractmethod
    async def fetch_history(self, session_id: int, limit: int = 500) -> list[ChatMessage]:
        """
        Fetch stored messages for a session.

        Callers must not rely on the returned order.
        """
        pass

    @abstractmethod
    async def subscribe(self, session_id: int) -> MessageSubscription:
        """
        Open a live subscription for a session.

        Raises:
            SubscriptionError: The subscription could not be opened
        """
        pass

    @abstractmethod
    async def append(self, session_id: int, sender_id: str, text: str) -> ChatMessage:
        """
        Durably append a message and publish it to subscribers.

        The session's last_message / last_message_at are updated as part of
        the append.

        Returns:
            The stored message with transport-assigned id and timestamp
        """
        pass
