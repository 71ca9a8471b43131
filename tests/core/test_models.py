"""Tests for samchat.core.models - wire conversion of the data model."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from samchat.core.models import (
    AttachmentRef,
    ChatMessage,
    ConversationState,
    ConversationSummary,
    LoadedAttachment,
    parse_timestamp,
)


FILE_INFO = {
    "file_name": "cat.png",
    "file_size": 2048,
    "mime_type": "image/png",
    "file_id": "abc123",
    "sender_node": "alice.os",
}


class TestParseTimestamp:
    def test_rfc3339_with_offset(self):
        parsed = parse_timestamp("2026-03-01T12:00:00+02:00")
        assert parsed == datetime(2026, 3, 1, 10, 0, tzinfo=UTC)

    def test_zulu_suffix(self):
        assert parse_timestamp("2026-03-01T12:00:00Z").tzinfo is not None

    def test_naive_is_utc(self):
        assert parse_timestamp("2026-03-01T12:00:00").tzinfo == UTC

    def test_nanosecond_precision(self):
        parsed = parse_timestamp("2026-03-01T12:00:00.123456789Z")
        assert parsed.microsecond == 123456

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")
        with pytest.raises(ValueError):
            parse_timestamp(12345)


class TestAttachmentRef:
    def test_from_wire(self):
        ref = AttachmentRef.from_dict(FILE_INFO)
        assert ref.owner_node == "alice.os"
        assert ref.file_size == 2048
        assert ref.to_dict() == FILE_INFO

    def test_missing_owner(self):
        data = {k: v for k, v in FILE_INFO.items() if k != "sender_node"}
        with pytest.raises(KeyError):
            AttachmentRef.from_dict(data)

    def test_negative_size_rejected(self):
        with pytest.raises(ValueError):
            AttachmentRef("f", "n", -1, "text/plain", "alice.os")


class TestConversationSummary:
    def test_from_wire(self):
        summary = ConversationSummary.from_dict({
            "id": "group_1",
            "participants": ["alice.os", "bob.os", "carol.os"],
            "last_updated": "2026-03-01T12:00:00Z",
            "is_group": True,
            "group_name": "Team",
        })

        assert summary.participants == ("alice.os", "bob.os", "carol.os")
        assert summary.group_name == "Team"
        assert summary.other_participants("alice.os") == ("bob.os", "carol.os")

    def test_direct_defaults(self):
        summary = ConversationSummary.from_dict({
            "id": "alice.os:bob.os",
            "participants": ["alice.os", "bob.os"],
            "last_updated": "2026-03-01T12:00:00Z",
        })
        assert summary.is_group is False
        assert summary.group_name is None

    def test_participants_must_be_list(self):
        with pytest.raises(ValueError):
            ConversationSummary.from_dict({"id": "x", "participants": "alice.os", "last_updated": "2026-03-01T12:00:00Z"})


class TestChatMessage:
    def test_from_wire_with_file_info(self):
        message = ChatMessage.from_dict({
            "id": "m1",
            "conversation_id": "alice.os:bob.os",
            "sender": "alice.os",
            "recipient": "bob.os",
            "recipients": None,
            "content": "look",
            "timestamp": "2026-03-01T12:00:00+00:00",
            "delivered": True,
            "file_info": FILE_INFO,
            "reply_to": {"message_id": "m0", "sender": "bob.os", "content_preview": "hi"},
        })

        assert message.attachment is not None
        assert message.attachment.file_id == "abc123"
        assert message.reply_to.message_id == "m0"
        assert message.delivered is True
        assert message.recipients is None

    def test_wire_roundtrip(self):
        message = ChatMessage(
            id="m1",
            conversation_id="group_1",
            sender="alice.os",
            content="hello",
            timestamp=datetime(2026, 3, 1, 12, tzinfo=timezone(timedelta(hours=1))),
            recipients=("bob.os", "carol.os"),
        )
        assert ChatMessage.from_dict(message.to_dict()) == message

    def test_missing_timestamp(self):
        with pytest.raises(KeyError):
            ChatMessage.from_dict({"id": "m1", "conversation_id": "c", "sender": "s", "content": ""})

    def test_non_object_rejected(self):
        with pytest.raises(TypeError, match="message must be an object"):
            ChatMessage.from_dict(["x"])

    def test_non_object_file_info_rejected(self):
        wire = {
            "id": "m1",
            "conversation_id": "c",
            "sender": "s",
            "timestamp": "2026-03-01T12:00:00Z",
            "file_info": "abc123",
        }
        with pytest.raises(TypeError, match="file_info must be an object"):
            ChatMessage.from_dict(wire)


class TestConversationState:
    def test_selected_conversation(self, conversation_factory):
        conversation = conversation_factory("c1")
        state = ConversationState(conversations=(conversation,), selected_conversation_id="c1")

        assert state.selected_conversation is conversation
        assert state.find_conversation("other") is None
        assert ConversationState().selected_conversation is None

    def test_dict_roundtrip(self, conversation_factory, message_factory):
        state = ConversationState(
            conversations=(conversation_factory("c1"),),
            selected_conversation_id="c1",
            selected_messages=(message_factory("m1", conversation_id="c1"),),
            identity="alice.os",
        )
        assert ConversationState.from_dict(state.to_dict()) == state


class TestLoadedAttachment:
    def test_size(self):
        loaded = LoadedAttachment(file_id="f", mime_type="text/plain", data=b"hello", data_url="data:,")
        assert loaded.size == 5
