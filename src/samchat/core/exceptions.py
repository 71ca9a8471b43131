# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Exception hierarchy for Samchat.

Three failure classes can come back from the node, and one is raised
locally before any request is made:

- TransportError: the request could not be completed
- ApplicationError: the node answered with an ``Err`` payload
- DecodeError: a successful payload did not have the expected shape
- ValidationError: an action was rejected before reaching the node
"""

from __future__ import annotations

from typing import Any


class SamchatError(Exception):
    """Base exception for all Samchat errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class TransportError(SamchatError):
    """The request/response channel failed.

    Raised when:
    - The node cannot be reached or the request times out
    - The node answers with a non-2xx status
    - The push channel cannot be opened
    """

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None):
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if url:
            details["url"] = url
        super().__init__(message, details)
        self.status_code = status_code
        self.url = url


class ApplicationError(SamchatError):
    """The node processed the request and returned ``{"Err": ...}``."""

    def __init__(self, message: str, operation: str | None = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message, details)
        self.operation = operation


class DecodeError(SamchatError):
    """A response could not be parsed into the expected shape."""

    def __init__(self, message: str, operation: str | None = None, payload: Any = None):
        details: dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if payload is not None:
            text = repr(payload)
            details["payload"] = text if len(text) <= 200 else text[:200] + "..."
        super().__init__(message, details)
        self.operation = operation


class ValidationError(SamchatError):
    """An action's input was rejected locally."""

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value
