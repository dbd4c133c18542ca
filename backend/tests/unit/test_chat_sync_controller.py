"""
Unit tests for ChatSyncController.

Capabilities are in-memory fakes; the live side of the fake transport is a
real RealtimeHub so delivery goes through an actual subscription.
"""

import asyncio
import itertools
from datetime import datetime, timedelta
from typing import Optional

import pytest

from marketplace.core.exceptions import (
    InfrastructureError,
    NotActiveError,
    ProfileResolutionFailed,
    SendFailed,
    SessionResolutionFailed,
    SubscriptionError,
)
from marketplace.interfaces.message_stream import IMessageStream, MessageSubscription
from marketplace.interfaces.profile_store import IProfileStore
from marketplace.interfaces.session_directory import ISessionDirectory
from marketplace.models.chat import ChatMessage, ChatSession
from marketplace.models.profile import Profile
from marketplace.services.chat_sync import ChatState, ChatSyncController
from marketplace.services.realtime_service import RealtimeHub, chat_channel

BASE_TIME = datetime(2026, 3, 1, 9, 0, 0)
SESSION_ID = 1
BUYER = "U1"
SELLER = "U2"


def _msg(message_id: int, seconds: int, session_id: int = SESSION_ID, sender: str = BUYER) -> ChatMessage:
    return ChatMessage(
        id=message_id,
        session_id=session_id,
        sender_id=sender,
        text=f"message {message_id}",
        timestamp=BASE_TIME + timedelta(seconds=seconds),
    )


def _assert_consistent(messages: list[ChatMessage]) -> None:
    ids = [m.id for m in messages]
    assert len(ids) == len(set(ids))
    stamps = [m.timestamp for m in messages]
    assert stamps == sorted(stamps)


async def _settle() -> None:
    """Let the subscription pump drain what was published."""
    for _ in range(10):
        await asyncio.sleep(0)


class FakeSessionDirectory(ISessionDirectory):
    def __init__(self, sessions: Optional[dict[int, ChatSession]] = None, error: Optional[Exception] = None):
        self.sessions = sessions or {}
        self.error = error

    async def get_session(self, session_id):
        if self.error:
            raise self.error
        return self.sessions.get(session_id)

    async def find_or_create_session(self, listing_id, buyer_id, seller_id):
        raise NotImplementedError

    async def list_sessions_for_user(self, user_id):
        return []


class FakeProfileStore(IProfileStore):
    def __init__(self, profiles: Optional[dict[str, Profile]] = None, error: Optional[Exception] = None):
        self.profiles = profiles or {}
        self.error = error
        self.requested: list[str] = []

    async def get_profile(self, user_id):
        self.requested.append(user_id)
        if self.error:
            raise self.error
        return self.profiles.get(user_id)

    async def create_profile(self, data):
        raise NotImplementedError

    async def update_profile(self, user_id, update):
        raise NotImplementedError

    async def toggle_wishlist(self, user_id, listing_id):
        raise NotImplementedError

    async def list_profiles(self, limit=100, offset=0):
        return list(self.profiles.values())


class FakeMessageStream(IMessageStream):
    """History from a list, live feed from a RealtimeHub, appends echo back."""

    def __init__(self, hub: RealtimeHub):
        self.hub = hub
        self.history: list[ChatMessage] = []
        self.history_error: Optional[Exception] = None
        self.subscribe_error: Optional[Exception] = None
        self.append_error: Optional[Exception] = None
        self.echo = True
        self.before_history: list[ChatMessage] = []
        self.appended: list[tuple[int, str, str]] = []
        self._next_id = 100

    async def fetch_history(self, session_id, limit=500):
        # Live deliveries that race the history read
        for message in self.before_history:
            await self.hub.publish(chat_channel(session_id), message)
        await _settle()
        if self.history_error:
            raise self.history_error
        return list(self.history)

    async def subscribe(self, session_id) -> MessageSubscription:
        if self.subscribe_error:
            raise self.subscribe_error
        return await self.hub.connect(chat_channel(session_id))

    async def append(self, session_id, sender_id, text):
        if self.append_error:
            raise self.append_error
        self.appended.append((session_id, sender_id, text))
        self._next_id += 1
        message = ChatMessage(
            id=self._next_id,
            session_id=session_id,
            sender_id=sender_id,
            text=text,
            timestamp=BASE_TIME + timedelta(minutes=self._next_id),
        )
        if self.echo:
            await self.hub.publish(chat_channel(session_id), message)
        return message

    async def deliver(self, message: ChatMessage) -> None:
        await self.hub.publish(chat_channel(message.session_id), message)


@pytest.fixture
def session():
    return ChatSession(id=SESSION_ID, listing_id=7, buyer_id=BUYER, seller_id=SELLER)


@pytest.fixture
def directory(session):
    return FakeSessionDirectory({SESSION_ID: session})


@pytest.fixture
def profiles():
    return FakeProfileStore(
        {
            BUYER: Profile(id=BUYER, name="Buyer", email="buyer@example.com"),
            SELLER: Profile(id=SELLER, name="Seller", email="seller@example.com"),
        }
    )


@pytest.fixture
def stream(hub):
    return FakeMessageStream(hub)


@pytest.fixture
def make_controller(directory, profiles, stream):
    def factory(user_id: str = BUYER, session_id: int = SESSION_ID, **kwargs) -> ChatSyncController:
        return ChatSyncController(
            session_id=session_id,
            local_user_id=user_id,
            sessions=directory,
            profiles=profiles,
            stream=stream,
            **kwargs,
        )

    return factory


# ============================================
# Startup
# ============================================


class TestStart:
    @pytest.mark.asyncio
    async def test_start_goes_live_and_resolves_counterpart(self, make_controller):
        controller = make_controller(BUYER)
        await controller.start()

        assert controller.state is ChatState.LIVE
        assert controller.session.id == SESSION_ID
        assert controller.counterpart.id == SELLER
        assert controller.errors == []
        await controller.close()

    @pytest.mark.asyncio
    async def test_seller_sees_buyer_as_counterpart(self, make_controller, profiles):
        controller = make_controller(SELLER)
        await controller.start()

        assert controller.counterpart.id == BUYER
        assert profiles.requested == [BUYER]
        await controller.close()

    @pytest.mark.asyncio
    async def test_history_is_loaded_sorted(self, make_controller, stream):
        stream.history = [_msg(3, 30), _msg(1, 10), _msg(2, 20)]
        controller = make_controller()
        await controller.start()

        assert [m.id for m in controller.messages] == [1, 2, 3]
        await controller.close()

    @pytest.mark.asyncio
    async def test_start_twice_is_rejected(self, make_controller):
        controller = make_controller()
        await controller.start()
        with pytest.raises(NotActiveError):
            await controller.start()
        await controller.close()


class TestSessionResolution:
    @pytest.mark.asyncio
    async def test_missing_session_fails(self, make_controller):
        controller = make_controller(session_id=999)

        with pytest.raises(SessionResolutionFailed):
            await controller.start()

        assert controller.state is ChatState.FAILED

    @pytest.mark.asyncio
    async def test_send_in_failed_state_is_not_active(self, make_controller, stream):
        controller = make_controller(session_id=999)
        with pytest.raises(SessionResolutionFailed):
            await controller.start()

        with pytest.raises(NotActiveError):
            await controller.send_message("hello?")
        assert stream.appended == []

    @pytest.mark.asyncio
    async def test_directory_error_is_wrapped(self, profiles, stream):
        directory = FakeSessionDirectory(error=InfrastructureError("directory unreachable"))
        controller = ChatSyncController(SESSION_ID, BUYER, directory, profiles, stream)

        with pytest.raises(SessionResolutionFailed) as exc_info:
            await controller.start()

        assert isinstance(exc_info.value.__cause__, InfrastructureError)
        assert controller.state is ChatState.FAILED

    @pytest.mark.asyncio
    async def test_non_participant_fails(self, make_controller, hub):
        controller = make_controller("someone_else")

        with pytest.raises(SessionResolutionFailed) as exc_info:
            await controller.start()

        assert exc_info.value.details == {"reason": "not_participant"}
        assert controller.state is ChatState.FAILED
        assert hub.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_close_after_failure_is_noop(self, make_controller):
        controller = make_controller(session_id=999)
        with pytest.raises(SessionResolutionFailed):
            await controller.start()

        await controller.close()
        assert controller.state is ChatState.FAILED


class TestProfileResolution:
    @pytest.mark.asyncio
    async def test_profile_error_is_not_fatal(self, directory, stream):
        profiles = FakeProfileStore(error=InfrastructureError("profiles down"))
        reported = []
        controller = ChatSyncController(
            SESSION_ID, BUYER, directory, profiles, stream, on_error=reported.append
        )

        await controller.start()

        assert controller.state is ChatState.LIVE
        assert controller.counterpart is None
        assert len(reported) == 1
        assert isinstance(reported[0], ProfileResolutionFailed)

        await controller.send_message("still works")
        await _settle()
        assert [m.text for m in controller.messages] == ["still works"]
        await controller.close()

    @pytest.mark.asyncio
    async def test_missing_profile_is_reported(self, directory, stream):
        controller = ChatSyncController(SESSION_ID, BUYER, directory, FakeProfileStore(), stream)

        await controller.start()

        assert controller.state is ChatState.LIVE
        assert isinstance(controller.errors[0], ProfileResolutionFailed)
        await controller.close()


class TestSubscription:
    @pytest.mark.asyncio
    async def test_subscribe_failure_fails_controller(self, make_controller, stream):
        stream.subscribe_error = ConnectionError("realtime unavailable")
        controller = make_controller()

        with pytest.raises(SubscriptionError):
            await controller.start()

        assert controller.state is ChatState.FAILED

    @pytest.mark.asyncio
    async def test_history_failure_keeps_live_feed(self, make_controller, stream):
        stream.history_error = InfrastructureError("history timeout")
        controller = make_controller()

        await controller.start()
        await stream.deliver(_msg(1, 10))
        await _settle()

        assert controller.state is ChatState.LIVE
        assert isinstance(controller.errors[-1], SubscriptionError)
        assert [m.id for m in controller.messages] == [1]
        await controller.close()

    @pytest.mark.asyncio
    async def test_dropped_subscription_closes_controller(self, make_controller, hub):
        reported = []
        controller = make_controller(on_error=reported.append)
        await controller.start()

        await hub.drop_channel(chat_channel(SESSION_ID), reason="network lost")
        await _settle()

        assert controller.state is ChatState.CLOSED
        assert isinstance(reported[-1], SubscriptionError)
        with pytest.raises(NotActiveError):
            await controller.send_message("anyone there?")

    @pytest.mark.asyncio
    async def test_feed_ending_is_reported_as_drop(self, make_controller, hub):
        controller = make_controller()
        await controller.start()

        await hub.shutdown()
        await _settle()

        assert controller.state is ChatState.CLOSED
        assert isinstance(controller.errors[-1], SubscriptionError)


# ============================================
# Merge
# ============================================


class TestIngest:
    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_idempotent(self, make_controller, stream):
        controller = make_controller()
        await controller.start()

        await stream.deliver(_msg(1, 10))
        await _settle()
        once = controller.messages
        await stream.deliver(_msg(1, 10))
        await _settle()

        assert controller.messages == once
        assert len(controller.messages) == 1
        await controller.close()

    @pytest.mark.asyncio
    async def test_ingest_reports_whether_added(self, make_controller):
        controller = make_controller()
        await controller.start()

        assert controller.ingest(_msg(1, 10)) is True
        assert controller.ingest(_msg(1, 10)) is False
        await controller.close()

    @pytest.mark.asyncio
    async def test_every_interleaving_stays_sorted_and_unique(self, make_controller):
        deliveries = [_msg(1, 10), _msg(2, 20), _msg(1, 10), _msg(3, 5), _msg(4, 20)]

        for order in itertools.permutations(deliveries):
            controller = make_controller()
            await controller.start()
            for message in order:
                controller.ingest(message)
                _assert_consistent(controller.messages)
            assert {m.id for m in controller.messages} == {1, 2, 3, 4}
            await controller.close()

    @pytest.mark.asyncio
    async def test_delivery_order_does_not_change_result(self, make_controller):
        a, b, c = _msg(1, 10), _msg(2, 20), _msg(3, 30)

        expected = None
        for order in itertools.permutations([a, b, c]):
            controller = make_controller()
            await controller.start()
            for message in order:
                controller.ingest(message)
            ids = [m.id for m in controller.messages]
            if expected is None:
                expected = ids
            assert ids == expected == [1, 2, 3]
            await controller.close()

    @pytest.mark.asyncio
    async def test_equal_timestamps_order_by_id(self, make_controller):
        first, second = _msg(5, 10), _msg(4, 10)

        results = []
        for order in ([first, second], [second, first]):
            controller = make_controller()
            await controller.start()
            for message in order:
                controller.ingest(message)
            results.append([m.id for m in controller.messages])
            await controller.close()

        assert results == [[4, 5], [4, 5]]

    @pytest.mark.asyncio
    async def test_message_for_other_session_is_ignored(self, make_controller):
        controller = make_controller()
        await controller.start()

        assert controller.ingest(_msg(1, 10, session_id=2)) is False
        assert controller.messages == []
        await controller.close()

    @pytest.mark.asyncio
    async def test_listener_sees_each_new_message_once(self, make_controller, stream):
        seen = []
        controller = make_controller(on_message=seen.append)
        await controller.start()

        await stream.deliver(_msg(1, 10))
        await stream.deliver(_msg(1, 10))
        await stream.deliver(_msg(2, 20))
        await _settle()

        assert [m.id for m in seen] == [1, 2]
        await controller.close()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_ingest(self, make_controller, stream):
        def boom(message):
            raise RuntimeError("render failed")

        controller = make_controller(on_message=boom)
        await controller.start()

        await stream.deliver(_msg(1, 10))
        await stream.deliver(_msg(2, 20))
        await _settle()

        assert [m.id for m in controller.messages] == [1, 2]
        assert controller.is_live
        await controller.close()


# ============================================
# Send
# ============================================


class TestSend:
    @pytest.mark.asyncio
    async def test_basic_flow(self, make_controller, stream):
        controller = make_controller(BUYER)
        await controller.start()
        assert controller.messages == []

        sent = await controller.send_message("Hi, is this available?")

        assert stream.appended == [(SESSION_ID, BUYER, "Hi, is this available?")]
        await _settle()
        assert controller.messages == [sent]
        await controller.close()

    @pytest.mark.asyncio
    async def test_send_does_not_insert_locally(self, make_controller, stream):
        stream.echo = False
        controller = make_controller()
        await controller.start()

        sent = await controller.send_message("pending")
        await _settle()

        assert sent is not None
        assert controller.messages == []
        assert controller.is_live
        await controller.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_blank_send_is_noop(self, make_controller, stream, text):
        controller = make_controller()
        await controller.start()

        result = await controller.send_message(text)
        await _settle()

        assert result is None
        assert stream.appended == []
        assert controller.messages == []
        await controller.close()

    @pytest.mark.asyncio
    async def test_send_trims_text(self, make_controller, stream):
        controller = make_controller()
        await controller.start()

        await controller.send_message("  hello  ")

        assert stream.appended[0][2] == "hello"
        await controller.close()

    @pytest.mark.asyncio
    async def test_send_failure_is_surfaced(self, make_controller, stream):
        stream.append_error = InfrastructureError("insert failed")
        controller = make_controller()
        await controller.start()

        with pytest.raises(SendFailed) as exc_info:
            await controller.send_message("hello")

        assert isinstance(exc_info.value.__cause__, InfrastructureError)
        assert controller.state is ChatState.LIVE
        assert controller.messages == []
        await controller.close()


# ============================================
# Race between history and live feed
# ============================================


@pytest.mark.asyncio
async def test_history_and_live_redelivery_race(make_controller, stream):
    m1, m2 = _msg(1, 10), _msg(2, 20)
    stream.history = [m1, m2]
    stream.before_history = [m1]

    controller = make_controller()
    await controller.start()
    await _settle()

    assert [m.id for m in controller.messages] == [1, 2]
    _assert_consistent(controller.messages)
    await controller.close()


@pytest.mark.asyncio
async def test_live_message_before_history_is_kept(make_controller, stream):
    stream.history = [_msg(1, 10)]
    stream.before_history = [_msg(2, 20)]

    controller = make_controller()
    await controller.start()
    await _settle()

    assert [m.id for m in controller.messages] == [1, 2]
    await controller.close()


# ============================================
# Teardown
# ============================================


class TestTeardown:
    @pytest.mark.asyncio
    async def test_late_delivery_after_close(self, make_controller, stream):
        controller = make_controller()
        await controller.start()
        await stream.deliver(_msg(1, 10))
        await _settle()

        await controller.close()
        await stream.deliver(_msg(2, 20))
        accepted = controller.ingest(_msg(3, 30))
        await _settle()

        assert accepted is False
        assert controller.state is ChatState.CLOSED
        _assert_consistent(controller.messages)
        assert [m.id for m in controller.messages] == [1]

    @pytest.mark.asyncio
    async def test_buffered_event_racing_close(self, make_controller, stream):
        controller = make_controller()
        await controller.start()

        # Published but not yet consumed when close() runs
        await stream.deliver(_msg(1, 10))
        await controller.close()
        await _settle()

        assert controller.state is ChatState.CLOSED
        _assert_consistent(controller.messages)
        assert len(controller.messages) <= 1

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, make_controller, hub):
        controller = make_controller()
        await controller.start()

        await controller.close()
        await controller.close()

        assert controller.state is ChatState.CLOSED
        assert hub.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_concurrent_close(self, make_controller, hub):
        controller = make_controller()
        await controller.start()

        await asyncio.gather(controller.close(), controller.close(), controller.close())

        assert controller.state is ChatState.CLOSED
        assert hub.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_send_after_close_is_not_active(self, make_controller, stream):
        controller = make_controller()
        await controller.start()
        await controller.close()

        with pytest.raises(NotActiveError):
            await controller.send_message("too late")
        assert stream.appended == []

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, make_controller, hub):
        async with make_controller() as controller:
            assert controller.is_live
            assert hub.subscriber_count(chat_channel(SESSION_ID)) == 1

        assert controller.state is ChatState.CLOSED
        assert hub.subscriber_count() == 0
