# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Conversation Store - the client's authoritative in-memory state.

The store holds one immutable ``ConversationState`` snapshot. Every
operation builds the complete next snapshot before swapping it in, so an
operation either commits fully or leaves the previous state untouched.
The store performs no I/O.

Listeners are notified with ``(previous, current)`` after each commit that
changed the state.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace
from typing import Callable

from ..core.models import ChatMessage, ConversationState, ConversationSummary, LocalIdentity
from .merger import append_message, sort_messages

logger = logging.getLogger(__name__)

StoreListener = Callable[[ConversationState, ConversationState], None]


def _unique_by_id(messages: Iterable[ChatMessage]) -> list[ChatMessage]:
    """Drop later duplicates of an id, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for message in messages:
        if message.id in seen:
            continue
        seen.add(message.id)
        unique.append(message)
    return unique


class ConversationStore:
    """State container for conversations, the open conversation and identity."""

    def __init__(self, state: ConversationState | None = None):
        self._state = state or ConversationState()
        self._listeners: list[StoreListener] = []

    @property
    def state(self) -> ConversationState:
        """Current snapshot."""
        return self._state

    @property
    def identity(self) -> LocalIdentity | None:
        return self._state.identity

    @property
    def selected_conversation_id(self) -> str | None:
        return self._state.selected_conversation_id

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, new_state: ConversationState) -> bool:
        previous = self._state
        if new_state == previous:
            return False
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(previous, new_state)
            except Exception:
                logger.exception("Store listener failed")
        return True

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def replace_conversations(self, conversations: Iterable[ConversationSummary]) -> None:
        """Replace the conversation list wholesale, keeping arrival order.

        The selection is left as is even if the selected id is no longer
        listed.
        """
        self._commit(replace(self._state, conversations=tuple(conversations)))

    def select_conversation(self, conversation_id: str, messages: Iterable[ChatMessage]) -> None:
        """Set the open conversation and replace its message sequence."""
        ordered = sort_messages(_unique_by_id(messages))
        self._commit(
            replace(
                self._state,
                selected_conversation_id=conversation_id,
                selected_messages=ordered,
            )
        )

    def clear_selection(self) -> None:
        """Close the open conversation."""
        self._commit(replace(self._state, selected_conversation_id=None, selected_messages=()))

    def append_message(self, message: ChatMessage) -> bool:
        """Merge one message into the open conversation.

        Messages for a conversation other than the open one are ignored.

        Returns:
            True if the sequence changed.
        """
        state = self._state
        if state.selected_conversation_id is None:
            return False
        if message.conversation_id != state.selected_conversation_id:
            logger.debug(
                f"Ignoring message {message.id} for conversation {message.conversation_id} "
                f"(open: {state.selected_conversation_id})"
            )
            return False
        merged = append_message(state.selected_messages, message)
        return self._commit(replace(state, selected_messages=merged))

    def set_identity(self, identity: LocalIdentity) -> None:
        self._commit(replace(self._state, identity=identity))

    def restore(self, state: ConversationState) -> None:
        """Replace the whole state, e.g. from a warm-start snapshot."""
        ordered = sort_messages(_unique_by_id(state.selected_messages))
        self._commit(replace(state, selected_messages=ordered))
