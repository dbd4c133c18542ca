"""
Chat synchronization controller.

Keeps one chat session's message list correct while it is open: resolves the
session and the other participant, loads history, follows the live feed and
sends new messages. History and live deliveries go through the same
ingest() path, so their relative order and any redelivery do not matter.

Lifecycle:
    INITIALIZING -> LIVE -> CLOSED
    INITIALIZING -> FAILED

Sent messages are not inserted locally. They show up when the subscription
delivers them back from the transport.
"""

import asyncio
from enum import Enum
from typing import Callable, Optional

from marketplace.core.exceptions import (
    ChatError,
    NotActiveError,
    ProfileResolutionFailed,
    SendFailed,
    SessionResolutionFailed,
    SubscriptionError,
)
from marketplace.core.logger import setup_logger
from marketplace.interfaces.message_stream import IMessageStream, MessageSubscription
from marketplace.interfaces.profile_store import IProfileStore
from marketplace.interfaces.session_directory import ISessionDirectory
from marketplace.models.chat import ChatMessage, ChatSession
from marketplace.models.profile import Profile

logger = setup_logger(__name__)

MessageListener = Callable[[ChatMessage], None]
ErrorListener = Callable[[ChatError], None]


class ChatState(str, Enum):
    """Controller lifecycle state."""

    INITIALIZING = "initializing"
    LIVE = "live"
    CLOSED = "closed"
    FAILED = "failed"


def _order_key(message: ChatMessage) -> tuple:
    # id breaks timestamp ties so every delivery order gives the same list
    return (message.timestamp, message.id)


class ChatSyncController:
    """Ordered, duplicate-free live view of one chat session."""

    def __init__(
        self,
        session_id: int,
        local_user_id: str,
        sessions: ISessionDirectory,
        profiles: IProfileStore,
        stream: IMessageStream,
        history_limit: int = 500,
        on_message: Optional[MessageListener] = None,
        on_error: Optional[ErrorListener] = None,
    ):
        """
        Args:
            session_id: Chat session to follow
            local_user_id: Authenticated user, must be a participant
            sessions: Session metadata lookup
            profiles: Profile lookup for the counterpart
            stream: Message transport
            history_limit: Max history messages to load on start
            on_message: Called with each newly accepted message
            on_error: Called with non-fatal errors (profile, history, drop)
        """
        self.session_id = session_id
        self.local_user_id = local_user_id
        self._sessions = sessions
        self._profiles = profiles
        self._stream = stream
        self._history_limit = history_limit
        self._on_message = on_message
        self._on_error = on_error

        self._state = ChatState.INITIALIZING
        self._messages: list[ChatMessage] = []
        self._ids: set[int] = set()
        self._subscription: Optional[MessageSubscription] = None
        self._pump_task: Optional[asyncio.Task] = None

        self.session: Optional[ChatSession] = None
        self.counterpart: Optional[Profile] = None
        self.errors: list[ChatError] = []

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def is_live(self) -> bool:
        return self._state is ChatState.LIVE

    @property
    def messages(self) -> list[ChatMessage]:
        """Snapshot of the local sequence, ascending by timestamp."""
        return list(self._messages)

    async def __aenter__(self) -> "ChatSyncController":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ===========================================
    # Startup
    # ===========================================

    async def start(self) -> "ChatSyncController":
        """
        Resolve the session, open the live feed and load history.

        Raises:
            SessionResolutionFailed: Session missing, unreachable, or the
                local user is not a participant. State becomes FAILED.
            SubscriptionError: Live feed could not be opened. State becomes FAILED.
            NotActiveError: start() was already called.
        """
        if self._state is not ChatState.INITIALIZING:
            raise NotActiveError(f"Chat {self.session_id} already started ({self._state.value})")

        session = await self._resolve_session()
        self.session = session
        await self._resolve_counterpart(session)

        try:
            subscription = await self._stream.subscribe(self.session_id)
        except SubscriptionError:
            self._state = ChatState.FAILED
            raise
        except Exception as e:
            self._state = ChatState.FAILED
            raise SubscriptionError(
                f"Could not subscribe to chat {self.session_id}: {e}"
            ) from e

        if self._state is not ChatState.INITIALIZING:
            # close() ran while we were waiting on the transport
            subscription.cancel()
            return self

        self._subscription = subscription
        self._state = ChatState.LIVE
        self._pump_task = asyncio.create_task(self._pump(subscription))
        logger.debug("Chat %s live for user %s", self.session_id, self.local_user_id)

        await self._load_history()
        return self

    async def _resolve_session(self) -> ChatSession:
        try:
            session = await self._sessions.get_session(self.session_id)
        except Exception as e:
            self._state = ChatState.FAILED
            logger.warning("Chat %s: session lookup failed: %s", self.session_id, e)
            raise SessionResolutionFailed(
                f"Could not resolve chat session {self.session_id}: {e}"
            ) from e

        if session is None:
            self._state = ChatState.FAILED
            logger.warning("Chat %s: session not found", self.session_id)
            raise SessionResolutionFailed(
                f"Chat session {self.session_id} not found",
                details={"reason": "not_found"},
            )

        if not session.is_participant(self.local_user_id):
            self._state = ChatState.FAILED
            logger.warning(
                "Chat %s: user %s is not a participant", self.session_id, self.local_user_id
            )
            raise SessionResolutionFailed(
                f"User {self.local_user_id} is not a participant of chat {self.session_id}",
                details={"reason": "not_participant"},
            )
        return session

    async def _resolve_counterpart(self, session: ChatSession) -> None:
        counterpart_id = session.counterpart_of(self.local_user_id)
        try:
            profile = await self._profiles.get_profile(counterpart_id)
        except Exception as e:
            error = ProfileResolutionFailed(f"Could not load profile {counterpart_id}: {e}")
            error.__cause__ = e
        else:
            if profile is not None:
                self.counterpart = profile
                return
            error = ProfileResolutionFailed(f"Profile {counterpart_id} not found")

        logger.warning("Chat %s: %s", self.session_id, error.message)
        self._report(error)

    async def _load_history(self) -> None:
        try:
            history = await self._stream.fetch_history(self.session_id, limit=self._history_limit)
        except Exception as e:
            error = SubscriptionError(f"Could not load history for chat {self.session_id}: {e}")
            error.__cause__ = e
            logger.warning("Chat %s: %s", self.session_id, error.message)
            self._report(error)
            return

        for message in history:
            self.ingest(message)

    # ===========================================
    # Ingestion
    # ===========================================

    def ingest(self, message: ChatMessage) -> bool:
        """
        Merge one delivered message into the local sequence.

        Returns True if the message was added. Messages arriving when the
        controller is not live, for another session, or with an id already
        present are dropped.
        """
        if self._state is not ChatState.LIVE:
            return False
        if message.session_id != self.session_id:
            logger.debug(
                "Chat %s: ignoring message %s for session %s",
                self.session_id, message.id, message.session_id,
            )
            return False
        if message.id in self._ids:
            logger.debug("Chat %s: duplicate message %s discarded", self.session_id, message.id)
            return False

        self._ids.add(message.id)
        self._messages.append(message)
        self._messages.sort(key=_order_key)

        if self._on_message is not None:
            try:
                self._on_message(message)
            except Exception:
                logger.exception("Chat %s: message listener failed", self.session_id)
        return True

    async def _pump(self, subscription: MessageSubscription) -> None:
        try:
            async for message in subscription:
                self.ingest(message)
        except SubscriptionError as e:
            self._on_drop(e)
        except Exception as e:
            error = SubscriptionError(f"Chat {self.session_id} feed failed: {e}")
            error.__cause__ = e
            self._on_drop(error)
        else:
            if self._state is ChatState.LIVE:
                self._on_drop(SubscriptionError(f"Chat {self.session_id} feed ended"))

    def _on_drop(self, error: SubscriptionError) -> None:
        # No reconnect: the owner opens a new controller to recover
        if self._state is not ChatState.LIVE:
            return
        logger.warning("Chat %s: subscription dropped: %s", self.session_id, error.message)
        self._state = ChatState.CLOSED
        if self._subscription is not None:
            self._subscription.cancel()
        self._report(error)

    def _report(self, error: ChatError) -> None:
        self.errors.append(error)
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                logger.exception("Chat %s: error listener failed", self.session_id)

    # ===========================================
    # Commands
    # ===========================================

    async def send_message(self, text: str) -> Optional[ChatMessage]:
        """
        Append a message from the local user.

        Blank text (after trimming) is ignored and returns None. The local
        sequence is not touched; the message appears once the feed delivers it.

        Raises:
            NotActiveError: Controller is not live
            SendFailed: Transport rejected the append
        """
        if self._state is not ChatState.LIVE:
            raise NotActiveError(f"Chat {self.session_id} is {self._state.value}")

        body = text.strip()
        if not body:
            return None

        try:
            return await self._stream.append(self.session_id, self.local_user_id, body)
        except Exception as e:
            logger.error("Chat %s: send failed: %s", self.session_id, e)
            raise SendFailed(f"Could not send message to chat {self.session_id}: {e}") from e

    async def close(self) -> None:
        """
        Stop following the session. Safe to call repeatedly or concurrently.
        """
        if self._state in (ChatState.CLOSED, ChatState.FAILED):
            return
        self._state = ChatState.CLOSED

        if self._subscription is not None:
            self._subscription.cancel()

        task = self._pump_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        logger.debug("Chat %s closed", self.session_id)
