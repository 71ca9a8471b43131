# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Synchronization: message merging, the conversation store and the refresh scheduler."""

from .merger import append_message, sort_messages
from .persistence import SessionStateFile
from .scheduler import SyncScheduler
from .store import ConversationStore

__all__ = [
    "append_message",
    "sort_messages",
    "ConversationStore",
    "SyncScheduler",
    "SessionStateFile",
]
