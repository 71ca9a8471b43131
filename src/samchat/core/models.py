# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Data model for the client-side conversation view.

All records are frozen dataclasses: conversation summaries are replaced
wholesale by each fetch and messages are never edited once created. Each
record converts to and from the node's JSON wire shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# Identity of a node, e.g. "alice.os"
LocalIdentity = str


def parse_timestamp(value: Any) -> datetime:
    """Parse an RFC 3339 timestamp into an aware datetime.

    Naive values are interpreted as UTC. Fractional digits beyond
    microseconds are dropped by ``datetime.fromisoformat``.

    Raises:
        ValueError: If the value is not an ISO-8601 string or datetime.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip())
    else:
        raise ValueError(f"Expected an RFC 3339 timestamp, got {type(value).__name__}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def require_object(data: Any, kind: str) -> dict[str, Any]:
    """Return ``data`` if it is a JSON object.

    Raises:
        TypeError: If the wire value is not an object.
    """
    if not isinstance(data, dict):
        raise TypeError(f"{kind} must be an object, got {type(data).__name__}")
    return data


def format_timestamp(value: datetime) -> str:
    """Format a datetime the way the node writes it."""
    return value.isoformat()


@dataclass(frozen=True)
class AttachmentRef:
    """Reference to a binary object held by ``owner_node``.

    Attributes:
        file_id: Content identifier, unique per attachment
        file_name: Original file name
        file_size: Size in bytes
        mime_type: MIME type reported at upload time
        owner_node: Node holding the canonical bytes
    """

    file_id: str
    file_name: str
    file_size: int
    mime_type: str
    owner_node: LocalIdentity

    def __post_init__(self) -> None:
        if self.file_size < 0:
            raise ValueError(f"file_size must be non-negative, got {self.file_size}")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the node's ``FileInfo`` shape."""
        return {
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "file_id": self.file_id,
            "sender_node": self.owner_node,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttachmentRef:
        """Deserialize from the node's ``FileInfo`` shape."""
        data = require_object(data, "file_info")
        owner = data.get("sender_node", data.get("owner_node"))
        if owner is None:
            raise KeyError("sender_node")
        return cls(
            file_id=str(data["file_id"]),
            file_name=str(data["file_name"]),
            file_size=int(data["file_size"]),
            mime_type=str(data["mime_type"]),
            owner_node=str(owner),
        )


@dataclass(frozen=True)
class ReplyRef:
    """Quoted parent of a reply."""

    message_id: str
    sender: LocalIdentity
    content_preview: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_id": self.message_id,
            "sender": self.sender,
            "content_preview": self.content_preview,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReplyRef:
        data = require_object(data, "reply_to")
        return cls(
            message_id=str(data["message_id"]),
            sender=str(data["sender"]),
            content_preview=str(data.get("content_preview", "")),
        )


@dataclass(frozen=True)
class ConversationSummary:
    """One row of the conversation list.

    Identity is ``id``. Participants keep the node's order.
    """

    id: str
    participants: tuple[LocalIdentity, ...]
    last_updated: datetime
    is_group: bool = False
    group_name: str | None = None

    def other_participants(self, identity: LocalIdentity | None) -> tuple[LocalIdentity, ...]:
        """Participants other than ``identity``."""
        return tuple(p for p in self.participants if p != identity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "participants": list(self.participants),
            "last_updated": format_timestamp(self.last_updated),
            "is_group": self.is_group,
            "group_name": self.group_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationSummary:
        data = require_object(data, "conversation")
        participants = data["participants"]
        if not isinstance(participants, list):
            raise ValueError("participants must be a list")
        group_name = data.get("group_name")
        return cls(
            id=str(data["id"]),
            participants=tuple(str(p) for p in participants),
            last_updated=parse_timestamp(data["last_updated"]),
            is_group=bool(data.get("is_group", False)),
            group_name=str(group_name) if group_name is not None else None,
        )


@dataclass(frozen=True)
class ChatMessage:
    """A single message. Identity is ``id``, globally unique.

    ``delivered`` is carried as reported by the node and never changed by
    the client.
    """

    id: str
    conversation_id: str
    sender: LocalIdentity
    content: str
    timestamp: datetime
    recipient: LocalIdentity | None = None
    recipients: tuple[LocalIdentity, ...] | None = None
    delivered: bool = False
    attachment: AttachmentRef | None = None
    reply_to: ReplyRef | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender": self.sender,
            "recipient": self.recipient,
            "recipients": list(self.recipients) if self.recipients is not None else None,
            "content": self.content,
            "timestamp": format_timestamp(self.timestamp),
            "delivered": self.delivered,
            "file_info": self.attachment.to_dict() if self.attachment else None,
            "reply_to": self.reply_to.to_dict() if self.reply_to else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatMessage:
        data = require_object(data, "message")
        recipients = data.get("recipients")
        if recipients is not None and not isinstance(recipients, list):
            raise ValueError("recipients must be a list")
        file_info = data.get("file_info", data.get("attachment"))
        reply_to = data.get("reply_to")
        recipient = data.get("recipient")
        return cls(
            id=str(data["id"]),
            conversation_id=str(data["conversation_id"]),
            sender=str(data["sender"]),
            content=str(data.get("content", "")),
            timestamp=parse_timestamp(data["timestamp"]),
            recipient=str(recipient) if recipient is not None else None,
            recipients=tuple(str(r) for r in recipients) if recipients is not None else None,
            delivered=bool(data.get("delivered", False)),
            attachment=AttachmentRef.from_dict(file_info) if file_info else None,
            reply_to=ReplyRef.from_dict(reply_to) if reply_to else None,
        )


@dataclass(frozen=True)
class ConversationState:
    """Client-local aggregate held by the conversation store.

    Attributes:
        conversations: Summaries in arrival order (as returned by the node)
        selected_conversation_id: Conversation currently open, if any
        selected_messages: Messages of the open conversation, ascending by timestamp
        identity: Local node identity once known
    """

    conversations: tuple[ConversationSummary, ...] = ()
    selected_conversation_id: str | None = None
    selected_messages: tuple[ChatMessage, ...] = ()
    identity: LocalIdentity | None = None

    def find_conversation(self, conversation_id: str | None) -> ConversationSummary | None:
        """Look up a summary by id."""
        if conversation_id is None:
            return None
        for conversation in self.conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    @property
    def selected_conversation(self) -> ConversationSummary | None:
        return self.find_conversation(self.selected_conversation_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversations": [c.to_dict() for c in self.conversations],
            "selected_conversation_id": self.selected_conversation_id,
            "selected_messages": [m.to_dict() for m in self.selected_messages],
            "identity": self.identity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationState:
        data = require_object(data, "state")
        return cls(
            conversations=tuple(ConversationSummary.from_dict(c) for c in data.get("conversations", [])),
            selected_conversation_id=data.get("selected_conversation_id"),
            selected_messages=tuple(ChatMessage.from_dict(m) for m in data.get("selected_messages", [])),
            identity=data.get("identity"),
        )


@dataclass(frozen=True)
class LoadedAttachment:
    """Attachment bytes plus their display-ready form.

    ``data_url`` is an RFC 2397 ``data:`` URL that a renderer can show
    directly; ``text`` is set for ``text/*`` content that decodes as UTF-8.
    """

    file_id: str
    mime_type: str
    data: bytes = field(repr=False)
    data_url: str = field(repr=False)
    text: str | None = field(default=None, repr=False)

    @property
    def size(self) -> int:
        return len(self.data)
