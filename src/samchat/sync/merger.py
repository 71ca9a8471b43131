# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Ordering and deduplication of a conversation's message sequence.

Sequences are ascending by timestamp; messages with equal timestamps keep
their arrival order.
"""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Iterable, Sequence

from ..core.models import ChatMessage


def _timestamp_key(message: ChatMessage):
    return message.timestamp


def sort_messages(messages: Iterable[ChatMessage]) -> tuple[ChatMessage, ...]:
    """Stable sort ascending by timestamp."""
    return tuple(sorted(messages, key=_timestamp_key))


def append_message(
    sequence: Sequence[ChatMessage],
    candidate: ChatMessage,
) -> tuple[ChatMessage, ...]:
    """Return ``sequence`` with ``candidate`` merged in.

    If a message with the same id is already present the sequence is
    returned unchanged, keeping the existing entry. Otherwise the candidate
    is inserted after every message whose timestamp is not later than its
    own, which matches a stable re-sort of ``sequence + [candidate]`` when
    ``sequence`` is sorted.
    """
    if any(message.id == candidate.id for message in sequence):
        return tuple(sequence)

    index = bisect_right(sequence, candidate.timestamp, key=_timestamp_key)
    return (*sequence[:index], candidate, *sequence[index:])
