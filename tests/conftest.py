"""Global test fixtures for the Samchat test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta

import pytest

from samchat.core.config import SamchatSettings, clear_config_cache, set_config
from samchat.core.models import AttachmentRef, ChatMessage, ConversationSummary

BASE_TIME = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def reset_config():
    """Start each test from a fresh config singleton."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all SAMCHAT_ environment variables."""
    for key in list(os.environ.keys()):
        if key.startswith("SAMCHAT_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings(clean_env, tmp_path, monkeypatch) -> SamchatSettings:
    """Test settings installed as the global config (no .env lookup)."""
    monkeypatch.chdir(tmp_path)
    config = SamchatSettings(
        node_url="http://node.test:8080",
        node_id="alice.os",
        poll_interval_seconds=60.0,
        request_timeout=5.0,
    )
    set_config(config)
    return config


@pytest.fixture
def message_factory():
    """Build ChatMessages with timestamps offset from a fixed base time."""

    def _make(
        message_id: str,
        seconds: float = 0,
        conversation_id: str = "alice.os:bob.os",
        sender: str = "bob.os",
        content: str | None = None,
        attachment: AttachmentRef | None = None,
    ) -> ChatMessage:
        return ChatMessage(
            id=message_id,
            conversation_id=conversation_id,
            sender=sender,
            content=content if content is not None else f"message {message_id}",
            timestamp=BASE_TIME + timedelta(seconds=seconds),
            attachment=attachment,
        )

    return _make


@pytest.fixture
def conversation_factory():
    """Build ConversationSummaries."""

    def _make(
        conversation_id: str = "alice.os:bob.os",
        participants: tuple[str, ...] = ("alice.os", "bob.os"),
        is_group: bool = False,
        group_name: str | None = None,
        seconds: float = 0,
    ) -> ConversationSummary:
        return ConversationSummary(
            id=conversation_id,
            participants=participants,
            last_updated=BASE_TIME + timedelta(seconds=seconds),
            is_group=is_group,
            group_name=group_name,
        )

    return _make


@pytest.fixture
def attachment_factory():
    def _make(
        file_id: str = "f1",
        owner_node: str = "alice.os",
        mime_type: str = "text/plain",
        file_size: int = 5,
        file_name: str = "note.txt",
    ) -> AttachmentRef:
        return AttachmentRef(
            file_id=file_id,
            file_name=file_name,
            file_size=file_size,
            mime_type=mime_type,
            owner_node=owner_node,
        )

    return _make
