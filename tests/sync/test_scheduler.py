"""Tests for the SyncScheduler.

Tests cover:
- Refresh fetches the list and the open conversation
- Out-of-order completions are discarded by token
- Message results gated on the conversation still being open
- Fetch failures applied as empty results
- Timer and push triggers
- Lifecycle (start/stop)
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from samchat.core.exceptions import ApplicationError, DecodeError, TransportError
from samchat.sync.scheduler import SyncScheduler
from samchat.sync.store import ConversationStore
from samchat.transport.gateway import TransportGateway


async def wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


class ControlledGateway:
    """Gateway whose fetches complete only when the test resolves them."""

    def __init__(self):
        self.conversation_calls: list[asyncio.Future] = []
        self.message_calls: list[tuple[str, asyncio.Future]] = []

    async def get_conversations(self):
        future = asyncio.get_running_loop().create_future()
        self.conversation_calls.append(future)
        return await future

    async def get_messages(self, conversation_id):
        future = asyncio.get_running_loop().create_future()
        self.message_calls.append((conversation_id, future))
        return await future


class FakePush:
    def __init__(self):
        self.on_event = None
        self.on_open = None
        self.closed = False

    async def subscribe(self, on_event, on_open=None):
        self.on_event = on_event
        self.on_open = on_open

    async def close(self):
        self.closed = True


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def mock_gateway(conversation_factory, message_factory):
    gateway = MagicMock()
    gateway.get_conversations = AsyncMock(return_value=[conversation_factory("c1")])
    gateway.get_messages = AsyncMock(
        return_value=[message_factory("m1", conversation_id="c1")]
    )
    return gateway


class TestRefresh:
    async def test_fetches_conversations_only_without_selection(self, settings, mock_gateway, store):
        scheduler = SyncScheduler(mock_gateway, store)
        await scheduler.refresh()

        assert [c.id for c in store.state.conversations] == ["c1"]
        mock_gateway.get_messages.assert_not_called()

    async def test_fetches_open_conversation(self, settings, mock_gateway, store):
        store.select_conversation("c1", [])
        scheduler = SyncScheduler(mock_gateway, store)
        await scheduler.refresh()

        mock_gateway.get_messages.assert_awaited_once_with("c1")
        assert [m.id for m in store.state.selected_messages] == ["m1"]

    async def test_messages_replaced_wholesale(self, settings, mock_gateway, store, message_factory):
        store.select_conversation("c1", [message_factory("stale", conversation_id="c1")])
        scheduler = SyncScheduler(mock_gateway, store)
        await scheduler.refresh()

        assert [m.id for m in store.state.selected_messages] == ["m1"]

    @pytest.mark.parametrize(
        "error",
        [TransportError("down"), ApplicationError("nope"), DecodeError("garbled")],
    )
    async def test_failures_apply_empty_results(self, settings, mock_gateway, store, conversation_factory, error):
        store.replace_conversations([conversation_factory("old")])
        store.select_conversation("c1", [])
        mock_gateway.get_conversations.side_effect = error
        mock_gateway.get_messages.side_effect = error

        scheduler = SyncScheduler(mock_gateway, store)
        await scheduler.refresh()

        assert store.state.conversations == ()
        assert store.state.selected_messages == ()
        assert store.selected_conversation_id == "c1"
        assert scheduler.get_stats()["fetch_failures"] == 2


class TestOverlappingRefreshes:
    async def test_older_completion_discarded(self, settings, store, conversation_factory, message_factory):
        gateway = ControlledGateway()
        store.select_conversation("c1", [])
        scheduler = SyncScheduler(gateway, store)

        timer = scheduler.trigger("timer")
        push = scheduler.trigger("push")
        await wait_for(lambda: len(gateway.conversation_calls) == 2 and len(gateway.message_calls) == 2)

        # Newer refresh finishes first
        gateway.conversation_calls[1].set_result([conversation_factory("new")])
        gateway.message_calls[1][1].set_result([message_factory("m2", seconds=2, conversation_id="c1")])
        await push

        gateway.conversation_calls[0].set_result([conversation_factory("old")])
        gateway.message_calls[0][1].set_result([message_factory("m1", seconds=1, conversation_id="c1")])
        await timer

        assert [c.id for c in store.state.conversations] == ["new"]
        assert [m.id for m in store.state.selected_messages] == ["m2"]
        assert scheduler.get_stats()["stale_discarded"] == 2

    async def test_in_order_completions_both_applied(self, settings, store, message_factory):
        gateway = ControlledGateway()
        store.select_conversation("c1", [])
        scheduler = SyncScheduler(gateway, store)

        first = scheduler.trigger("timer")
        second = scheduler.trigger("push")
        await wait_for(lambda: len(gateway.message_calls) == 2)

        shared = message_factory("m1", conversation_id="c1")
        gateway.conversation_calls[0].set_result([])
        gateway.message_calls[0][1].set_result([shared])
        await first
        gateway.conversation_calls[1].set_result([])
        gateway.message_calls[1][1].set_result([shared, message_factory("m2", seconds=1, conversation_id="c1")])
        await second

        assert [m.id for m in store.state.selected_messages] == ["m1", "m2"]
        assert scheduler.get_stats()["stale_discarded"] == 0

    async def test_messages_discarded_after_navigation(self, settings, store, message_factory):
        gateway = ControlledGateway()
        store.select_conversation("c1", [])
        scheduler = SyncScheduler(gateway, store)

        refresh = scheduler.trigger("timer")
        await wait_for(lambda: len(gateway.message_calls) == 1)
        scheduler.clear_selection()

        gateway.conversation_calls[0].set_result([])
        gateway.message_calls[0][1].set_result([message_factory("m1", conversation_id="c1")])
        await refresh

        assert store.selected_conversation_id is None
        assert store.state.selected_messages == ()

    async def test_refresh_for_previous_conversation_discarded(self, settings, store, message_factory):
        gateway = ControlledGateway()
        store.select_conversation("c1", [])
        scheduler = SyncScheduler(gateway, store)

        refresh = scheduler.trigger("timer")
        await wait_for(lambda: len(gateway.message_calls) == 1)

        opening = asyncio.create_task(scheduler.open_conversation("c2"))
        await wait_for(lambda: len(gateway.message_calls) == 2)
        gateway.message_calls[1][1].set_result([message_factory("x1", conversation_id="c2")])
        assert await opening is True

        gateway.conversation_calls[0].set_result([])
        gateway.message_calls[0][1].set_result([message_factory("m1", conversation_id="c1")])
        await refresh

        assert store.selected_conversation_id == "c2"
        assert [m.id for m in store.state.selected_messages] == ["x1"]

    async def test_open_applied_after_later_refresh_of_previous_conversation(
        self, settings, store, message_factory
    ):
        gateway = ControlledGateway()
        store.select_conversation("c1", [])
        scheduler = SyncScheduler(gateway, store)

        opening = asyncio.create_task(scheduler.open_conversation("c2"))
        await wait_for(lambda: len(gateway.message_calls) == 1)
        refresh = scheduler.trigger("timer")
        await wait_for(lambda: len(gateway.message_calls) == 2)
        assert gateway.message_calls[1][0] == "c1"

        gateway.conversation_calls[0].set_result([])
        gateway.message_calls[1][1].set_result([message_factory("m1", conversation_id="c1")])
        await refresh
        gateway.message_calls[0][1].set_result([message_factory("x1", conversation_id="c2")])

        assert await opening is True
        assert store.selected_conversation_id == "c2"
        assert [m.id for m in store.state.selected_messages] == ["x1"]

    async def test_earlier_open_superseded_by_later_open(self, settings, store, message_factory):
        gateway = ControlledGateway()
        scheduler = SyncScheduler(gateway, store)

        first = asyncio.create_task(scheduler.open_conversation("c1"))
        await wait_for(lambda: len(gateway.message_calls) == 1)
        second = asyncio.create_task(scheduler.open_conversation("c2"))
        await wait_for(lambda: len(gateway.message_calls) == 2)

        gateway.message_calls[1][1].set_result([message_factory("x1", conversation_id="c2")])
        assert await second is True
        gateway.message_calls[0][1].set_result([message_factory("m1", conversation_id="c1")])
        assert await first is False

        assert store.selected_conversation_id == "c2"
        assert [m.id for m in store.state.selected_messages] == ["x1"]

    async def test_open_keeps_newer_refresh_of_same_conversation(self, settings, store, message_factory):
        gateway = ControlledGateway()
        store.select_conversation("c1", [])
        scheduler = SyncScheduler(gateway, store)

        opening = asyncio.create_task(scheduler.open_conversation("c1"))
        await wait_for(lambda: len(gateway.message_calls) == 1)
        refresh = scheduler.trigger("push")
        await wait_for(lambda: len(gateway.message_calls) == 2)

        gateway.conversation_calls[0].set_result([])
        gateway.message_calls[1][1].set_result([
            message_factory("m1", conversation_id="c1"),
            message_factory("m2", seconds=1, conversation_id="c1"),
        ])
        await refresh
        gateway.message_calls[0][1].set_result([message_factory("m1", conversation_id="c1")])

        assert await opening is True
        assert [m.id for m in store.state.selected_messages] == ["m1", "m2"]


class TestOpenConversation:
    async def test_selects_and_loads(self, settings, mock_gateway, store):
        scheduler = SyncScheduler(mock_gateway, store)
        assert await scheduler.open_conversation("c1") is True

        assert store.selected_conversation_id == "c1"
        assert [m.id for m in store.state.selected_messages] == ["m1"]

    async def test_non_object_payload_selects_with_no_messages(self, settings, store, message_factory):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"Ok": [["not", "an", "object"]]})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        gateway = TransportGateway(api_url="http://node.test/api", timeout=5.0, client=client)
        store.select_conversation("c0", [message_factory("old", conversation_id="c0")])
        scheduler = SyncScheduler(gateway, store)

        assert await scheduler.open_conversation("c1") is True

        assert store.selected_conversation_id == "c1"
        assert store.state.selected_messages == ()
        assert scheduler.get_stats()["fetch_failures"] == 1
        await client.aclose()

    async def test_failure_selects_with_no_messages(self, settings, mock_gateway, store):
        mock_gateway.get_messages.side_effect = TransportError("down")
        scheduler = SyncScheduler(mock_gateway, store)

        await scheduler.open_conversation("c1")

        assert store.selected_conversation_id == "c1"
        assert store.state.selected_messages == ()


class TestTriggers:
    async def test_timer_refreshes_periodically(self, settings, mock_gateway, store):
        scheduler = SyncScheduler(mock_gateway, store, interval=0.01)
        await scheduler.start(initial_refresh=False)
        try:
            await wait_for(lambda: mock_gateway.get_conversations.await_count >= 2)
        finally:
            await scheduler.stop()

        assert scheduler.get_stats()["timer_triggers"] >= 2

    async def test_timer_survives_failures(self, settings, mock_gateway, store):
        mock_gateway.get_conversations.side_effect = TransportError("down")
        scheduler = SyncScheduler(mock_gateway, store, interval=0.01)
        await scheduler.start(initial_refresh=False)
        try:
            await wait_for(lambda: mock_gateway.get_conversations.await_count >= 3)
        finally:
            await scheduler.stop()

    async def test_initial_refresh(self, settings, mock_gateway, store):
        scheduler = SyncScheduler(mock_gateway, store)
        await scheduler.start()
        try:
            await wait_for(lambda: len(store.state.conversations) == 1)
        finally:
            await scheduler.stop()

    async def test_push_event_triggers_refresh(self, settings, mock_gateway, store):
        push = FakePush()
        scheduler = SyncScheduler(mock_gateway, store, push=push)
        await scheduler.start(initial_refresh=False)
        try:
            push.on_event("new_message")
            await wait_for(lambda: mock_gateway.get_conversations.await_count == 1)
        finally:
            await scheduler.stop()

        assert scheduler.get_stats()["push_triggers"] == 1
        assert push.closed is True

    async def test_push_open_sets_identity(self, settings, mock_gateway, store):
        push = FakePush()
        scheduler = SyncScheduler(mock_gateway, store, push=push)
        await scheduler.start(initial_refresh=False)
        push.on_open("alice.os")
        await scheduler.stop()

        assert store.identity == "alice.os"


class TestLifecycle:
    async def test_interval_from_settings(self, settings, mock_gateway, store):
        assert SyncScheduler(mock_gateway, store).interval == settings.poll_interval_seconds

    async def test_stop_cancels_in_flight(self, settings, store):
        gateway = ControlledGateway()
        scheduler = SyncScheduler(gateway, store)
        await scheduler.start()
        await wait_for(lambda: len(gateway.conversation_calls) == 1)

        await scheduler.stop()

        assert scheduler.in_flight == 0
        assert not scheduler.is_running
        assert store.state.conversations == ()

    async def test_start_twice_is_noop(self, settings, mock_gateway, store):
        scheduler = SyncScheduler(mock_gateway, store)
        await scheduler.start(initial_refresh=False)
        timer = scheduler._timer_task
        await scheduler.start(initial_refresh=False)
        assert scheduler._timer_task is timer
        await scheduler.stop()
