# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Transport gateway for the Samchat API.

A single ``invoke(request)`` call carries every operation over one HTTP
POST endpoint. The gateway performs network I/O only: no caching and no
retries. Failures are reported as:

- TransportError: connection failure, timeout or non-2xx status
- DecodeError: body is not a well-formed Ok/Err object, or the payload
  does not match the operation's expected shape
- ApplicationError: raised by the typed helpers when the node returns Err
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

import httpx

from ..core.config import SamchatSettings, get_config
from ..core.exceptions import ApplicationError, DecodeError, TransportError
from ..core.logging import request_logger
from ..core.models import AttachmentRef, ChatMessage, ConversationSummary
from .requests import (
    AddGroupMember,
    CreateGroup,
    DownloadFile,
    Err,
    GetConversations,
    GetMessages,
    Ok,
    Request,
    Response,
    SendFileMessage,
    SendMessage,
    UploadFile,
    bytes_from_wire,
    decode_response,
    encode_request,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransportGateway:
    """Async client for the node's request/response endpoint.

    The underlying ``httpx.AsyncClient`` is created lazily and shared by all
    requests; pass ``client`` to supply one (e.g. with a mock transport).
    """

    def __init__(
        self,
        api_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        settings: SamchatSettings | None = None,
    ):
        settings = settings or get_config()
        self.api_url = api_url if api_url is not None else settings.api_url
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this gateway created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> TransportGateway:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def invoke(self, request: Request) -> Response:
        """Send one request and return the node's ``Ok`` or ``Err``.

        Raises:
            TransportError: If the request could not be completed.
            DecodeError: If the response is not a valid Ok/Err object.
        """
        body = encode_request(request)
        operation = request.operation
        request_logger.log_request(operation, body[operation])
        started = time.monotonic()

        try:
            resp = await self._get_client().post(
                self.api_url,
                json=body,
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException as e:
            request_logger.log_result(operation, "transport", self._elapsed_ms(started))
            raise TransportError(f"{operation} timed out", url=self.api_url) from e
        except httpx.HTTPError as e:
            request_logger.log_result(operation, "transport", self._elapsed_ms(started))
            raise TransportError(f"{operation} failed: {e}", url=self.api_url) from e

        if not resp.is_success:
            request_logger.log_result(operation, "transport", self._elapsed_ms(started))
            raise TransportError(
                f"{operation} failed with HTTP {resp.status_code}: {resp.reason_phrase}",
                status_code=resp.status_code,
                url=self.api_url,
            )

        try:
            result = decode_response(resp.content, operation=operation)
        except DecodeError:
            request_logger.log_result(operation, "decode", self._elapsed_ms(started))
            raise

        outcome = "ok" if isinstance(result, Ok) else "err"
        request_logger.log_result(operation, outcome, self._elapsed_ms(started))
        return result

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.monotonic() - started) * 1000

    async def _call(self, request: Request, parse: Callable[[Any], T]) -> T:
        """Invoke, raise ApplicationError on Err, and parse the Ok payload."""
        result = await self.invoke(request)
        if isinstance(result, Err):
            raise ApplicationError(result.message, operation=request.operation)
        try:
            return parse(result.value)
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(
                f"Unexpected {request.operation} payload: {e}",
                operation=request.operation,
                payload=result.value,
            ) from e

    # ------------------------------------------------------------------
    # Typed operations
    # ------------------------------------------------------------------

    async def get_conversations(self) -> list[ConversationSummary]:
        return await self._call(GetConversations(), _parse_conversations)

    async def get_messages(self, conversation_id: str) -> list[ChatMessage]:
        return await self._call(GetMessages(conversation_id), _parse_messages)

    async def send_message(self, recipient: str, content: str) -> bool:
        return await self._call(SendMessage(recipient, content), _parse_ack)

    async def create_group(self, name: str, members: list[str] | tuple[str, ...]) -> str:
        """Create a group and return its id."""
        return await self._call(CreateGroup(name, tuple(members)), _parse_str)

    async def add_group_member(self, group_id: str, member: str) -> bool:
        return await self._call(AddGroupMember(group_id, member), _parse_ack)

    async def upload_file(self, name: str, mime_type: str, data: bytes) -> AttachmentRef:
        """Store ``data`` on the node and return the reference to send with a message."""
        return await self._call(UploadFile(name, mime_type, data), AttachmentRef.from_dict)

    async def download_file(self, file_id: str, owner_node: str) -> bytes:
        """Fetch attachment bytes (the node reads locally first, then from the owner)."""
        return await self._call(DownloadFile(file_id, owner_node), bytes_from_wire)

    async def send_file_message(self, recipient: str, content: str, attachment: AttachmentRef) -> bool:
        return await self._call(SendFileMessage(recipient, content, attachment), _parse_ack)


def _parse_list(value: Any) -> list[Any]:
    if not isinstance(value, list):
        raise TypeError(f"expected a list, got {type(value).__name__}")
    return value


def _parse_conversations(value: Any) -> list[ConversationSummary]:
    return [ConversationSummary.from_dict(item) for item in _parse_list(value)]


def _parse_messages(value: Any) -> list[ChatMessage]:
    return [ChatMessage.from_dict(item) for item in _parse_list(value)]


def _parse_ack(value: Any) -> bool:
    # The node answers true, or null for fire-and-forget operations
    if value is None:
        return True
    if not isinstance(value, bool):
        raise TypeError(f"expected a boolean, got {type(value).__name__}")
    return value


def _parse_str(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    return value
