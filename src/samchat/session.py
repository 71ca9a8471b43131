# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Chat Session - wires the client components together.

A session owns one Transport Gateway, one Conversation Store, the Sync
Scheduler driving it, the optional Push Channel and the Attachment Cache.
It exposes the user-level actions (open a conversation, send, create
groups, send files) that a rendering layer or the CLI calls.

Every successful action triggers a refresh so its effect becomes visible
without waiting for the next timer tick.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Optional

from .attachments.cache import AttachmentCache
from .core.config import SamchatSettings, get_config
from .core.exceptions import ValidationError
from .core.models import (
    AttachmentRef,
    ChatMessage,
    ConversationState,
    ConversationSummary,
    LoadedAttachment,
)
from .sync.persistence import SessionStateFile
from .sync.scheduler import SyncScheduler
from .sync.store import ConversationStore
from .transport.gateway import TransportGateway
from .transport.push import PushChannel

logger = logging.getLogger(__name__)

GROUP_PREFIX = "group_"
UNKNOWN_DISPLAY_NAME = "Unknown"


def validate_recipient(recipient: str) -> str:
    """Check a recipient before sending and return it stripped.

    Group ids (``group_`` prefix) are accepted as is; anything else must look
    like a node address (``name.os``).

    Raises:
        ValidationError: If the recipient is blank or not a node address.
    """
    value = (recipient or "").strip()
    if not value:
        raise ValidationError("Recipient is required", field="recipient", value=recipient)
    if not value.startswith(GROUP_PREFIX) and "." not in value:
        raise ValidationError(
            f"Invalid recipient '{value}': expected a node address like name.os",
            field="recipient",
            value=recipient,
        )
    return value


def validate_content(content: str) -> str:
    if not (content or "").strip():
        raise ValidationError("Message content is required", field="content", value=content)
    return content


def display_name(conversation: ConversationSummary, identity: Optional[str]) -> str:
    """Human-readable title: group name, else the other participant."""
    if conversation.is_group and conversation.group_name:
        return conversation.group_name
    others = conversation.other_participants(identity)
    if others:
        return others[0]
    return UNKNOWN_DISPLAY_NAME


class ChatSession:
    """User-facing client bound to one node.

    Example:
        async with ChatSession() as session:
            await session.open_conversation(conversation_id)
            await session.send_to_current("hello")
    """

    def __init__(
        self,
        settings: Optional[SamchatSettings] = None,
        gateway: Optional[TransportGateway] = None,
        store: Optional[ConversationStore] = None,
        push: Optional[PushChannel] = None,
        scheduler: Optional[SyncScheduler] = None,
        attachments: Optional[AttachmentCache] = None,
        state_file: Optional[SessionStateFile] = None,
    ):
        self.settings = settings or get_config()
        self._owns_gateway = gateway is None
        self.gateway = gateway or TransportGateway(settings=self.settings)
        self.store = store or ConversationStore()

        # Without a configured identity there is nothing to announce on the push channel
        if push is None and self.settings.node_id:
            push = PushChannel(self.settings.node_id, settings=self.settings)
        self.push = push

        self.scheduler = scheduler or SyncScheduler(
            self.gateway, self.store, push=self.push, settings=self.settings
        )
        self.attachments = attachments or AttachmentCache(self.gateway, settings=self.settings)

        if state_file is None and self.settings.session_state_file:
            state_file = SessionStateFile(self.settings.session_state_file)
        self.state_file = state_file

        self._unsubscribe = None
        self._started = False

    async def __aenter__(self) -> ChatSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    @property
    def state(self) -> ConversationState:
        return self.store.state

    @property
    def identity(self) -> Optional[str]:
        return self.store.identity

    @property
    def is_running(self) -> bool:
        return self._started

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Restore the last snapshot, then start syncing."""
        if self._started:
            return

        if self.state_file is not None:
            snapshot = self.state_file.load(identity=self.settings.node_id)
            if snapshot is not None:
                self.store.restore(snapshot)
                logger.info(
                    f"Restored {len(snapshot.conversations)} conversation(s) from {self.state_file.path}"
                )

        if self.settings.node_id:
            self.store.set_identity(self.settings.node_id)

        self._unsubscribe = self.store.subscribe(self._on_state_change)
        self._started = True
        self._auto_load(self.store.state)
        await self.scheduler.start()
        logger.info(f"Chat session started against {self.gateway.api_url}")

    async def stop(self) -> None:
        """Stop syncing and release connections.

        The warm-start snapshot only outlives an interrupted session, so a
        clean stop deletes it.
        """
        if not self._started:
            await self._close_gateway()
            return

        self._started = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.scheduler.stop()
        await self.attachments.close()
        await self._close_gateway()
        if self.state_file is not None:
            try:
                self.state_file.clear()
            except OSError as e:
                logger.warning(f"Failed to remove session snapshot: {e}")
        logger.info("Chat session stopped")

    async def _close_gateway(self) -> None:
        if self._owns_gateway:
            await self.gateway.close()

    def _on_state_change(self, previous: ConversationState, current: ConversationState) -> None:
        if (
            current.selected_messages is not previous.selected_messages
            or current.identity != previous.identity
        ):
            self._auto_load(current)
        self._save(current)

    def _auto_load(self, state: ConversationState) -> None:
        if self.settings.auto_load_own_attachments and state.selected_messages:
            self.attachments.auto_load(state.selected_messages, state.identity)

    def _save(self, state: ConversationState) -> None:
        if self.state_file is None:
            return
        try:
            self.state_file.save(state)
        except OSError as e:
            logger.warning(f"Failed to save session snapshot: {e}")

    def _after_action(self, source: str) -> None:
        if self.scheduler.is_running:
            self.scheduler.trigger(source)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Refresh now and wait for the results."""
        await self.scheduler.refresh("manual")

    async def open_conversation(self, conversation_id: str) -> tuple[ChatMessage, ...]:
        """Open a conversation and return its messages (empty if the fetch failed)."""
        await self.scheduler.open_conversation(conversation_id)
        return self.store.state.selected_messages

    def start_new_chat(self) -> None:
        """Close the open conversation so a new recipient can be chosen."""
        self.scheduler.clear_selection()

    def display_name(self, conversation: ConversationSummary) -> str:
        return display_name(conversation, self.identity)

    def resolve_recipient(self, conversation: Optional[ConversationSummary] = None) -> Optional[str]:
        """Address to send to for ``conversation`` (default: the open one).

        Group conversations are addressed by their id; direct conversations
        by the first participant that is not the local identity.
        """
        conversation = conversation or self.store.state.selected_conversation
        if conversation is None:
            return None
        if conversation.is_group:
            return conversation.id
        others = conversation.other_participants(self.identity)
        return others[0] if others else None

    def _current_recipient(self) -> str:
        recipient = self.resolve_recipient()
        if recipient is None:
            raise ValidationError("No conversation is open", field="recipient")
        return recipient

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_message(self, recipient: str, content: str) -> bool:
        """Send a text message.

        Raises:
            ValidationError: If the recipient or content is invalid (nothing is sent).
            SamchatError: If the node could not be reached or rejected the message.
        """
        recipient = validate_recipient(recipient)
        validate_content(content)
        sent = await self.gateway.send_message(recipient, content)
        logger.info(f"Sent message to {recipient}")
        self._after_action("send")
        return sent

    async def send_to_current(self, content: str) -> bool:
        """Send a text message to the open conversation."""
        return await self.send_message(self._current_recipient(), content)

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    async def create_group(self, name: str, members: Iterable[str]) -> str:
        """Create a group and return its id."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Group name is required", field="name")
        member_list = [validate_recipient(m) for m in members]
        group_id = await self.gateway.create_group(name, member_list)
        logger.info(f"Created group {group_id} ({name}) with {len(member_list)} member(s)")
        self._after_action("create_group")
        return group_id

    async def add_group_member(self, group_id: str, member: str) -> bool:
        group_id = (group_id or "").strip()
        if not group_id:
            raise ValidationError("Group id is required", field="group_id")
        member = validate_recipient(member)
        added = await self.gateway.add_group_member(group_id, member)
        logger.info(f"Added {member} to {group_id}")
        self._after_action("add_group_member")
        return added

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def upload_file(
        self,
        name: str,
        data: bytes,
        mime_type: Optional[str] = None,
    ) -> AttachmentRef:
        """Upload bytes and return the attachment reference."""
        if not name:
            raise ValidationError("File name is required", field="name")
        mime_type = mime_type or guess_mime_type(name)
        ref = await self.gateway.upload_file(name, mime_type, data)
        logger.info(f"Uploaded {name} as {ref.file_id} ({len(data)} bytes)")
        return ref

    async def send_file_message(self, recipient: str, content: str, attachment: AttachmentRef) -> bool:
        recipient = validate_recipient(recipient)
        sent = await self.gateway.send_file_message(recipient, content or "", attachment)
        self._after_action("send_file")
        return sent

    async def send_file(
        self,
        recipient: str,
        name: str,
        data: bytes,
        content: str = "",
        mime_type: Optional[str] = None,
    ) -> AttachmentRef:
        """Upload a file and send it as a message. Returns the attachment reference."""
        recipient = validate_recipient(recipient)
        ref = await self.upload_file(name, data, mime_type)
        await self.send_file_message(recipient, content, ref)
        return ref

    async def send_file_to_current(
        self,
        name: str,
        data: bytes,
        content: str = "",
        mime_type: Optional[str] = None,
    ) -> AttachmentRef:
        return await self.send_file(self._current_recipient(), name, data, content, mime_type)

    async def load_attachment(self, ref: AttachmentRef) -> LoadedAttachment:
        """Load an attachment on demand (shares any load already in flight)."""
        return await self.attachments.ensure_loaded(ref)

    def request_attachment(self, ref: AttachmentRef) -> asyncio.Task:
        return self.attachments.request(ref)

    def get_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "scheduler": self.scheduler.get_stats(),
            "attachments": self.attachments.get_stats(),
        }
        if self.push is not None:
            stats["push"] = self.push.get_stats()
        return stats


def guess_mime_type(name: str) -> str:
    mime_type, _ = mimetypes.guess_type(Path(name).name)
    return mime_type or "application/octet-stream"
