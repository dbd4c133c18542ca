import asyncio
from typing import Any, Optional

from marketplace.core.exceptions import SubscriptionError
from marketplace.core.logger import setup_logger
from marketplace.interfaces.message_stream import MessageSubscription
from marketplace.models.chat import ChatMessage

logger = setup_logger(__name__)

# Pushed into a queue to end iteration
_CLOSED = object()


def chat_channel(session_id: int) -> str:
    return f"chat_messages:{session_id}"


class _Dropped:
    def __init__(self, reason: str) -> None:
        self.reason = reason


class QueueSubscription(MessageSubscription):
    """Subscription backed by one hub queue."""

    def __init__(self, hub: "RealtimeHub", channel: str, queue: asyncio.Queue[Any]) -> None:
        self._hub = hub
        self._channel = channel
        self._queue = queue
        self._cancelled = False

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __aiter__(self) -> "QueueSubscription":
        return self

    async def __anext__(self) -> ChatMessage:
        if self._cancelled:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self._cancelled:
            raise StopAsyncIteration
        if isinstance(item, _Dropped):
            self.cancel()
            raise SubscriptionError(
                f"Subscription to {self._channel} dropped: {item.reason}",
                details={"channel": self._channel},
            )
        return item

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._hub.detach(self._channel, self._queue)
        # Wake a consumer blocked in __anext__
        self._queue.put_nowait(_CLOSED)


class RealtimeHub:
    def __init__(self) -> None:
        self._connections: dict[str, set[asyncio.Queue[Any]]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, channel: str) -> QueueSubscription:
        queue: asyncio.Queue[Any] = asyncio.Queue()
        async with self._lock:
            self._connections.setdefault(channel, set()).add(queue)
        return QueueSubscription(self, channel, queue)

    async def disconnect(self, subscription: QueueSubscription) -> None:
        async with self._lock:
            subscription.cancel()

    def detach(self, channel: str, queue: asyncio.Queue[Any]) -> None:
        queues = self._connections.get(channel)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            self._connections.pop(channel, None)

    async def publish(self, channel: str, payload: Any) -> None:
        async with self._lock:
            queues = list(self._connections.get(channel, set()))
        for queue in queues:
            queue.put_nowait(payload)

    async def drop_channel(self, channel: str, reason: str = "closed by server") -> None:
        """Terminate every subscription on a channel with a SubscriptionError."""
        async with self._lock:
            queues = self._connections.pop(channel, set())
        for queue in queues:
            queue.put_nowait(_Dropped(reason))
        if queues:
            logger.warning("Dropped %d subscriber(s) on %s: %s", len(queues), channel, reason)

    async def shutdown(self) -> None:
        """End all subscriptions cleanly."""
        async with self._lock:
            connections = self._connections
            self._connections = {}
        for queues in connections.values():
            for queue in queues:
                queue.put_nowait(_CLOSED)

    def subscriber_count(self, channel: Optional[str] = None) -> int:
        if channel is not None:
            return len(self._connections.get(channel, ()))
        return sum(len(queues) for queues in self._connections.values())


realtime_hub = RealtimeHub()
