# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Attachment Cache - loads and memoizes attachment bytes by file id.

Each ``file_id`` is in one of three states: absent, loading or loaded.
Concurrent requests for the same file share one download: the
check-and-mark in ``ensure_loaded`` runs without yielding to the event
loop, so no two downloads for a file can be in flight at once.

A failed download leaves the entry absent; the next request retries.

Auto-load policy: attachments sent by the local identity are loaded as
soon as they show up in the open conversation so the author can preview
their own upload. Attachments from other senders load only on request.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Iterable
from enum import Enum
from typing import Any, Callable, Optional, TYPE_CHECKING

from ..core.config import SamchatSettings, get_config
from ..core.lru_cache import LRUDict
from ..core.models import AttachmentRef, ChatMessage, LoadedAttachment

if TYPE_CHECKING:
    from ..transport.gateway import TransportGateway

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


class AttachmentState(str, Enum):
    ABSENT = "absent"
    LOADING = "loading"
    LOADED = "loaded"


def decode_attachment(file_id: str, mime_type: str, data: bytes) -> LoadedAttachment:
    """Turn downloaded bytes into a display-ready attachment.

    Produces a base64 ``data:`` URL for any content, plus decoded text for
    ``text/*`` content that is valid UTF-8.
    """
    mime = mime_type or DEFAULT_MIME_TYPE
    encoded = base64.b64encode(data).decode("ascii")
    text = None
    if mime.startswith("text/"):
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            text = None
    return LoadedAttachment(
        file_id=file_id,
        mime_type=mime,
        data=data,
        data_url=f"data:{mime};base64,{encoded}",
        text=text,
    )


Decoder = Callable[[str, str, bytes], LoadedAttachment]


class AttachmentCache:
    """Single-flight, size-bounded cache of loaded attachments."""

    def __init__(
        self,
        gateway: "TransportGateway",
        max_entries: Optional[int] = None,
        max_bytes: Optional[int] = None,
        decoder: Decoder = decode_attachment,
        settings: Optional[SamchatSettings] = None,
    ):
        """
        Initialize the AttachmentCache.

        Args:
            gateway: Gateway used for downloads
            max_entries: Maximum number of loaded attachments kept
            max_bytes: Maximum total bytes of loaded attachments kept
            decoder: Converts downloaded bytes to a LoadedAttachment
            settings: Settings to read defaults from
        """
        settings = settings or get_config()
        self.gateway = gateway
        self.decoder = decoder
        self._loaded: LRUDict[str, LoadedAttachment] = LRUDict(
            max_size=max_entries if max_entries is not None else settings.attachment_cache_max_entries,
            max_weight=max_bytes if max_bytes is not None else settings.attachment_cache_max_bytes,
            weigher=lambda attachment: attachment.size,
            on_evict=self._on_evict,
        )
        self._in_flight: dict[str, asyncio.Task] = {}
        self._errors: dict[str, str] = {}
        self._background: set[asyncio.Task] = set()
        self._stats: dict[str, int] = {
            "downloads": 0,
            "hits": 0,
            "joined": 0,
            "failures": 0,
            "evictions": 0,
        }

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        return {
            **self._stats,
            "loaded": len(self._loaded),
            "loading": len(self._in_flight),
            "bytes": self._loaded.weight,
        }

    def _on_evict(self, file_id: str, attachment: LoadedAttachment) -> None:
        self._stats["evictions"] += 1
        logger.debug(f"Evicted attachment {file_id} ({attachment.size} bytes)")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, file_id: str) -> Optional[LoadedAttachment]:
        """Loaded attachment for ``file_id``, or None if not loaded."""
        return self._loaded.get(file_id)

    def state(self, file_id: str) -> AttachmentState:
        if file_id in self._loaded:
            return AttachmentState.LOADED
        if file_id in self._in_flight:
            return AttachmentState.LOADING
        return AttachmentState.ABSENT

    def last_error(self, file_id: str) -> Optional[str]:
        """Message of the most recent failed load, cleared on success."""
        return self._errors.get(file_id)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def ensure_loaded(self, ref: AttachmentRef) -> LoadedAttachment:
        """Load ``ref`` unless it is already loaded or loading.

        Callers joining an in-flight load receive the same result or error.

        Raises:
            SamchatError: If the download fails (the entry stays absent).
        """
        file_id = ref.file_id
        cached = self._loaded.get(file_id)
        if cached is not None:
            self._stats["hits"] += 1
            return cached

        # No await between the check and the mark.
        task = self._in_flight.get(file_id)
        if task is None:
            task = asyncio.create_task(self._load(ref))
            self._in_flight[file_id] = task
            task.add_done_callback(self._consume_result)
        else:
            self._stats["joined"] += 1

        return await asyncio.shield(task)

    def request(self, ref: AttachmentRef) -> asyncio.Task:
        """Fire-and-forget load. Await the returned task to observe the outcome."""
        task = asyncio.create_task(self.ensure_loaded(ref))
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def auto_load(self, messages: Iterable[ChatMessage], identity: Optional[str]) -> list[asyncio.Task]:
        """Request every absent attachment sent by ``identity``."""
        if identity is None:
            return []
        started = []
        for message in messages:
            ref = message.attachment
            if ref is None or message.sender != identity:
                continue
            if self.state(ref.file_id) is not AttachmentState.ABSENT:
                continue
            started.append(self.request(ref))
        if started:
            logger.debug(f"Auto-loading {len(started)} own attachment(s)")
        return started

    async def _load(self, ref: AttachmentRef) -> LoadedAttachment:
        file_id = ref.file_id
        self._stats["downloads"] += 1
        try:
            data = await self.gateway.download_file(file_id, ref.owner_node)
            if len(data) != ref.file_size:
                logger.debug(
                    f"Attachment {file_id} is {len(data)} bytes, reference says {ref.file_size}"
                )
            loaded = self.decoder(file_id, ref.mime_type, data)
        except Exception as e:
            self._stats["failures"] += 1
            self._errors[file_id] = str(e)
            logger.warning(f"Failed to load attachment {file_id} from {ref.owner_node}: {e}")
            raise
        finally:
            self._in_flight.pop(file_id, None)

        self._errors.pop(file_id, None)
        self._loaded[file_id] = loaded
        logger.debug(f"Loaded attachment {file_id} ({loaded.size} bytes)")
        return loaded

    @staticmethod
    def _consume_result(task: asyncio.Task) -> None:
        # Failures are raised to every awaiting caller; mark them retrieved
        if not task.cancelled():
            task.exception()

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled():
            task.exception()

    async def close(self) -> None:
        """Cancel outstanding loads."""
        pending = [*self._background, *self._in_flight.values()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._background.clear()
        self._in_flight.clear()
