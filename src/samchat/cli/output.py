# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Output formatting for CLI commands.

Handles JSON vs plain text output based on the ``--json`` flag.
"""

from __future__ import annotations

import json
import sys
from typing import Any

from ..core.models import ChatMessage, ConversationSummary


def output_result(data: Any, as_json: bool = False, text: str | None = None) -> None:
    """Print a command result.

    With ``as_json`` (or when no text rendering is given) the data is
    pretty-printed as JSON; otherwise ``text`` is printed as is.
    """
    if as_json or text is None:
        print(json.dumps(data, indent=2, default=str))
    else:
        print(text)


def output_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"Error: {message}", file=sys.stderr)


def format_conversation(conversation: ConversationSummary, title: str) -> str:
    kind = "group" if conversation.is_group else "direct"
    updated = conversation.last_updated.strftime("%Y-%m-%d %H:%M")
    return f"{conversation.id}  {title}  [{kind}, {len(conversation.participants)} members]  {updated}"


def format_message(message: ChatMessage) -> str:
    """One line per message; attachments and replies are summarized inline."""
    line = f"[{message.timestamp.strftime('%Y-%m-%d %H:%M:%S')}] {message.sender}: {message.content}"
    if message.reply_to is not None:
        line += f"  (reply to {message.reply_to.sender})"
    if message.attachment is not None:
        ref = message.attachment
        line += f"  📎 {ref.file_name} ({ref.file_size} bytes, id {ref.file_id})"
    if message.delivered:
        line += "  ✓"
    return line
