# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Request and response shapes of the Samchat API.

Wire format::

    request  = { "<Operation>": <argument or [arguments...]> }
    response = { "Ok": <payload> } | { "Err": "<message>" }

Each operation is a dataclass carrying its own fields; ``encode_request``
turns any of them into the single-key tagged object the node expects.
Operations with one argument send it bare, operations with several send a
positional array.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from ..core.exceptions import DecodeError
from ..core.models import AttachmentRef


def bytes_to_wire(data: bytes) -> list[int]:
    """Encode bytes as the node's JSON byte array."""
    return list(data)


def bytes_from_wire(value: Any) -> bytes:
    """Decode the node's JSON byte array.

    Raises:
        ValueError: If the value is not a list of integers in 0..255.
    """
    if not isinstance(value, list):
        raise ValueError(f"Expected a byte array, got {type(value).__name__}")
    return bytes(value)


@dataclass(frozen=True)
class GetConversations:
    operation: ClassVar[str] = "GetConversations"

    def arguments(self) -> Any:
        return ""


@dataclass(frozen=True)
class GetMessages:
    conversation_id: str
    operation: ClassVar[str] = "GetMessages"

    def arguments(self) -> Any:
        return self.conversation_id


@dataclass(frozen=True)
class SendMessage:
    recipient: str
    content: str
    operation: ClassVar[str] = "SendMessage"

    def arguments(self) -> Any:
        return [self.recipient, self.content]


@dataclass(frozen=True)
class CreateGroup:
    name: str
    members: tuple[str, ...]
    operation: ClassVar[str] = "CreateGroup"

    def arguments(self) -> Any:
        return [self.name, list(self.members)]


@dataclass(frozen=True)
class AddGroupMember:
    group_id: str
    member: str
    operation: ClassVar[str] = "AddGroupMember"

    def arguments(self) -> Any:
        return [self.group_id, self.member]


@dataclass(frozen=True)
class UploadFile:
    name: str
    mime_type: str
    data: bytes = field(repr=False)
    operation: ClassVar[str] = "UploadFile"

    def arguments(self) -> Any:
        return [self.name, self.mime_type, bytes_to_wire(self.data)]


@dataclass(frozen=True)
class DownloadFile:
    file_id: str
    owner_node: str
    operation: ClassVar[str] = "DownloadFile"

    def arguments(self) -> Any:
        return [self.file_id, self.owner_node]


@dataclass(frozen=True)
class SendFileMessage:
    recipient: str
    content: str
    attachment: AttachmentRef
    operation: ClassVar[str] = "SendFileMessage"

    def arguments(self) -> Any:
        return [self.recipient, self.content, self.attachment.to_dict()]


Request = Union[
    GetConversations,
    GetMessages,
    SendMessage,
    CreateGroup,
    AddGroupMember,
    UploadFile,
    DownloadFile,
    SendFileMessage,
]

REQUEST_TYPES: tuple[type, ...] = (
    GetConversations,
    GetMessages,
    SendMessage,
    CreateGroup,
    AddGroupMember,
    UploadFile,
    DownloadFile,
    SendFileMessage,
)


def encode_request(request: Request) -> dict[str, Any]:
    """Build the tagged request object for ``request``.

    Raises:
        TypeError: If ``request`` is not one of the known operations.
    """
    if not isinstance(request, REQUEST_TYPES):
        raise TypeError(f"Unknown request type: {type(request).__name__}")
    return {request.operation: request.arguments()}


# ============================================================================
# Responses
# ============================================================================


@dataclass(frozen=True)
class Ok:
    """Successful response payload."""

    value: Any


@dataclass(frozen=True)
class Err:
    """Application-level error reported by the node."""

    message: str


Response = Union[Ok, Err]


def decode_response(body: bytes | str, operation: str | None = None) -> Response:
    """Parse a response body into ``Ok`` or ``Err``.

    Raises:
        DecodeError: If the body is not JSON or not exactly one of Ok/Err.
    """
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"Response is not valid JSON: {e}", operation=operation) from e

    if not isinstance(data, dict):
        raise DecodeError("Response is not a JSON object", operation=operation, payload=data)

    has_ok = "Ok" in data
    has_err = "Err" in data
    if has_ok == has_err:
        raise DecodeError(
            "Response must carry exactly one of 'Ok' or 'Err'",
            operation=operation,
            payload=data,
        )
    if has_err:
        return Err(message=str(data["Err"]))
    return Ok(value=data["Ok"])
