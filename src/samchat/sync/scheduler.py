# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Sync Scheduler - keeps the Conversation Store fresh.

Two triggers feed one refresh procedure:
- a periodic timer firing every ``poll_interval_seconds``
- any frame arriving on the push channel

A refresh fetches the conversation list and, when a conversation is open,
that conversation's full message list. The two fetches run independently
and each result replaces the corresponding store state wholesale.

Overlapping refreshes are allowed. Every refresh, open and clear takes a
monotonically increasing token when it is issued. A refresh result is
applied only if its token is newer than the last applied result of the
same kind. Opens and clears also move a navigation mark: an open is applied
unless a later open or clear superseded it, and a refresh's message list
only if it was issued after the latest navigation and its conversation is
still open. Older completions are discarded instead of overwriting newer
data.

Fetch failures of any class are logged and applied as empty results; the
timer keeps running regardless of individual outcomes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, TYPE_CHECKING

from ..core.config import SamchatSettings, get_config
from ..core.exceptions import SamchatError
from ..core.logging import correlation_context
from ..core.models import ChatMessage, ConversationSummary
from .store import ConversationStore

if TYPE_CHECKING:
    from ..transport.gateway import TransportGateway
    from ..transport.push import PushChannel

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Drives periodic and push-triggered refreshes of a ConversationStore."""

    def __init__(
        self,
        gateway: "TransportGateway",
        store: ConversationStore,
        push: Optional["PushChannel"] = None,
        interval: Optional[float] = None,
        settings: Optional[SamchatSettings] = None,
    ):
        """
        Initialize the SyncScheduler.

        Args:
            gateway: Gateway used for conversation and message fetches
            store: Store receiving fetch results
            push: Optional push channel whose frames trigger refreshes
            interval: Seconds between periodic refreshes
            settings: Settings to read defaults from
        """
        settings = settings or get_config()
        self.gateway = gateway
        self.store = store
        self.push = push
        self.interval = interval if interval is not None else settings.poll_interval_seconds

        self._running = False
        self._timer_task: Optional[asyncio.Task] = None
        self._refresh_tasks: set[asyncio.Task] = set()

        # Refresh tokens
        self._issued = 0
        self._applied_conversations = 0
        self._applied_messages = 0
        self._navigation = 0

        self._stats: dict[str, int] = {
            "refreshes": 0,
            "timer_triggers": 0,
            "push_triggers": 0,
            "fetch_failures": 0,
            "stale_discarded": 0,
        }

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> int:
        """Number of refreshes currently running."""
        return len(self._refresh_tasks)

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        return {**self._stats, "in_flight": self.in_flight, "running": self._running}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, initial_refresh: bool = True) -> None:
        """Start the timer, subscribe to push events and optionally refresh now."""
        if self._running:
            return

        self._running = True
        if self.push is not None:
            await self.push.subscribe(self._on_push_event, on_open=self._on_push_open)
        self._timer_task = asyncio.create_task(self._timer_loop())
        if initial_refresh:
            self.trigger("startup")
        logger.info(f"Sync scheduler started (interval {self.interval:.1f}s)")

    async def stop(self) -> None:
        """Cancel the timer, close the push subscription and drop pending refreshes."""
        if not self._running:
            return

        self._running = False
        if self._timer_task:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        if self.push is not None:
            await self.push.close()

        pending = list(self._refresh_tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._refresh_tasks.clear()
        logger.info("Sync scheduler stopped")

    async def _timer_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            if not self._running:
                break
            self._stats["timer_triggers"] += 1
            self.trigger("timer")

    def _on_push_event(self, payload: Any) -> None:
        self._stats["push_triggers"] += 1
        logger.debug("Push event received, refreshing")
        self.trigger("push")

    def _on_push_open(self, node_id: str) -> None:
        self.store.set_identity(node_id)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def trigger(self, source: str = "manual") -> asyncio.Task:
        """Start a refresh in the background without waiting for it."""
        task = asyncio.create_task(self.refresh(source))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._on_refresh_done)
        return task

    def _on_refresh_done(self, task: asyncio.Task) -> None:
        self._refresh_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Refresh failed unexpectedly", exc_info=exc)

    def _next_token(self) -> int:
        self._issued += 1
        return self._issued

    async def refresh(self, source: str = "manual") -> None:
        """Fetch the conversation list and, if one is open, its messages."""
        token = self._next_token()
        selected = self.store.selected_conversation_id
        self._stats["refreshes"] += 1

        with correlation_context():
            logger.debug(f"Refresh #{token} ({source}), open conversation: {selected}")
            fetches = [self._refresh_conversations(token)]
            if selected is not None:
                fetches.append(self._refresh_messages(selected, token))
            await asyncio.gather(*fetches)

    async def open_conversation(self, conversation_id: str) -> bool:
        """Fetch a conversation's messages and make it the open one.

        A failed fetch still opens the conversation, with no messages.
        Refreshes issued while the open is in flight never prevent it from
        being applied.

        Returns:
            True if the conversation is open once the call completes
            (False if a later open or clear superseded it).
        """
        token = self._next_token()
        self._navigation = token
        messages = await self._fetch_messages(conversation_id)
        return self._apply_open(token, conversation_id, messages)

    def clear_selection(self) -> None:
        """Close the open conversation and discard its in-flight fetches."""
        self._navigation = self._next_token()
        self.store.clear_selection()

    # ------------------------------------------------------------------
    # Fetch and apply
    # ------------------------------------------------------------------

    async def _refresh_conversations(self, token: int) -> None:
        try:
            conversations = await self.gateway.get_conversations()
        except SamchatError as e:
            self._stats["fetch_failures"] += 1
            logger.warning(f"Failed to fetch conversations: {e}")
            conversations = []
        self._apply_conversations(token, conversations)

    async def _refresh_messages(self, conversation_id: str, token: int) -> None:
        messages = await self._fetch_messages(conversation_id)
        self._apply_refreshed_messages(token, conversation_id, messages)

    async def _fetch_messages(self, conversation_id: str) -> list[ChatMessage]:
        try:
            return await self.gateway.get_messages(conversation_id)
        except SamchatError as e:
            self._stats["fetch_failures"] += 1
            logger.warning(f"Failed to fetch messages for {conversation_id}: {e}")
            return []

    def _discard(self, reason: str) -> bool:
        self._stats["stale_discarded"] += 1
        logger.debug(f"Discarding {reason}")
        return False

    def _apply_conversations(self, token: int, conversations: list[ConversationSummary]) -> bool:
        if token <= self._applied_conversations:
            return self._discard(f"stale conversation list #{token}")
        self._applied_conversations = token
        self.store.replace_conversations(conversations)
        return True

    def _apply_open(self, token: int, conversation_id: str, messages: list[ChatMessage]) -> bool:
        if token != self._navigation:
            return self._discard(f"open of {conversation_id} #{token}: superseded by #{self._navigation}")
        if self.store.selected_conversation_id == conversation_id and token < self._applied_messages:
            # A refresh issued after this open already showed newer messages
            return True
        self._applied_messages = max(self._applied_messages, token)
        self.store.select_conversation(conversation_id, messages)
        return True

    def _apply_refreshed_messages(self, token: int, conversation_id: str, messages: list[ChatMessage]) -> bool:
        if token < self._navigation:
            return self._discard(f"message list #{token} for {conversation_id}: issued before navigation")
        if token <= self._applied_messages:
            return self._discard(f"stale message list #{token} for {conversation_id}")
        if self.store.selected_conversation_id != conversation_id:
            return self._discard(f"message list for {conversation_id}: no longer open")
        self._applied_messages = token
        self.store.select_conversation(conversation_id, messages)
        return True
