# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Push Channel - long-lived websocket subscription to the node.

Every frame received on the channel means "something changed". Payloads
are handed to the subscriber untouched and are not otherwise interpreted.
The channel reconnects with exponential back-off until it is closed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import aiohttp
from aiohttp import WSMsgType

from ..core.config import SamchatSettings, get_config

logger = logging.getLogger(__name__)

EventCallback = Callable[[Any], None]
OpenCallback = Callable[[str], None]


class PushChannel:
    """
    Websocket subscription identified by node and process.

    Lifecycle:
    - ``subscribe()`` starts a background task that connects, announces the
      local identity and forwards every received frame to ``on_event``
    - ``close()`` stops the task and closes the socket
    """

    def __init__(
        self,
        node_id: str,
        ws_url: Optional[str] = None,
        process_id: Optional[str] = None,
        reconnect_delay: Optional[float] = None,
        max_reconnect_delay: Optional[float] = None,
        heartbeat: float = 30.0,
        settings: Optional[SamchatSettings] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the PushChannel.

        Args:
            node_id: Local identity announced on connect
            ws_url: Websocket URL (defaults to the configured ``ws_url``)
            process_id: Process identifier announced on connect
            reconnect_delay: Initial reconnect delay in seconds
            max_reconnect_delay: Cap for the doubling reconnect delay
            heartbeat: Websocket ping interval in seconds
            settings: Settings to read defaults from
            session: Optional aiohttp session to use (not closed by the channel)
        """
        settings = settings or get_config()
        self.node_id = node_id
        self.ws_url = ws_url or settings.ws_url
        self.process_id = process_id or settings.effective_process_id
        self.reconnect_delay = reconnect_delay or settings.push_reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay or settings.push_reconnect_max_delay
        self.heartbeat = heartbeat

        self._session = session
        self._owns_session = session is None
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._on_event: Optional[EventCallback] = None
        self._on_open: Optional[OpenCallback] = None

        self.connected = False
        self._stats: dict[str, int] = {
            "connections": 0,
            "connection_failures": 0,
            "events": 0,
        }

    @property
    def is_running(self) -> bool:
        return self._running

    def get_stats(self) -> dict[str, Any]:
        """Get channel statistics."""
        return {**self._stats, "connected": self.connected}

    async def subscribe(
        self,
        on_event: EventCallback,
        on_open: Optional[OpenCallback] = None,
    ) -> None:
        """Start listening. ``on_open`` receives the node id after each connect."""
        if self._running:
            logger.warning("Push channel already subscribed")
            return

        self._on_event = on_event
        self._on_open = on_open
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Push channel subscribing to {self.ws_url}")

    async def close(self) -> None:
        """Stop listening and release the connection."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
        self.connected = False
        logger.info("Push channel closed")

    async def _run(self) -> None:
        """Connect, listen, and reconnect with back-off while running."""
        delay = self.reconnect_delay
        while self._running:
            try:
                opened = await self._connect_and_listen()
                if opened:
                    delay = self.reconnect_delay
            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                self._stats["connection_failures"] += 1
                logger.warning(f"Push channel connection failed: {e}")
            finally:
                self.connected = False

            if not self._running:
                break
            logger.debug(f"Reconnecting push channel in {delay:.1f}s")
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_reconnect_delay)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _connect_and_listen(self) -> bool:
        """Run one connection until it closes. Returns True if it opened."""
        session = self._get_session()
        async with session.ws_connect(
            self.ws_url,
            heartbeat=self.heartbeat,
        ) as ws:
            await ws.send_json({
                "type": "identify",
                "node_id": self.node_id,
                "process_id": self.process_id,
            })
            self.connected = True
            self._stats["connections"] += 1
            logger.info(f"Connected to push channel as {self.node_id}")

            if self._on_open is not None:
                self._on_open(self.node_id)

            async for msg in ws:
                if not self._running:
                    break

                if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                    self._stats["events"] += 1
                    self._dispatch(msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"Push channel error: {ws.exception()}")
                    break
                elif msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED):
                    break

        logger.info("Push channel connection closed")
        return True

    def _dispatch(self, payload: Any) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(payload)
        except Exception:
            logger.exception("Push event handler failed")
