# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Core building blocks: configuration, logging, errors and data model."""

from .exceptions import (
    ApplicationError,
    DecodeError,
    SamchatError,
    TransportError,
    ValidationError,
)
from .models import (
    AttachmentRef,
    ChatMessage,
    ConversationState,
    ConversationSummary,
    ReplyRef,
)

__all__ = [
    "SamchatError",
    "TransportError",
    "ApplicationError",
    "DecodeError",
    "ValidationError",
    "AttachmentRef",
    "ChatMessage",
    "ConversationState",
    "ConversationSummary",
    "ReplyRef",
]
