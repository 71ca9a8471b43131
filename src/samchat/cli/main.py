#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Samchat CLI - chat with a Samchat node from the terminal.

Commands:
  samchat conversations                 List conversations
  samchat messages <id>                 Show a conversation's messages
  samchat send <recipient> <text>       Send a text message
  samchat group create <name> <m>...    Create a group
  samchat group add <group> <member>    Add a member to a group
  samchat upload <path>                 Upload a file (optionally send it)
  samchat download <file_id> <owner>    Download an attachment
  samchat watch                         Follow conversations as they change
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from ..core.config import SamchatSettings, set_config
from ..core.exceptions import SamchatError
from ..core.logging import configure_logging
from ..core.models import ConversationState
from ..session import ChatSession
from ..sync.merger import sort_messages
from .output import format_conversation, format_message, output_error, output_result

logger = logging.getLogger(__name__)

Handler = Callable[[ChatSession, argparse.Namespace], Awaitable[int]]


# ============================================================================
# Commands
# ============================================================================

async def cmd_conversations(session: ChatSession, args: argparse.Namespace) -> int:
    """List conversations in the order the node returns them."""
    conversations = await session.gateway.get_conversations()
    session.store.replace_conversations(conversations)

    if args.json:
        output_result([c.to_dict() for c in conversations], as_json=True)
        return 0
    if not conversations:
        print("No conversations yet.")
        return 0
    for conversation in conversations:
        print(format_conversation(conversation, session.display_name(conversation)))
    return 0


async def cmd_messages(session: ChatSession, args: argparse.Namespace) -> int:
    """Show the messages of one conversation, oldest first."""
    messages = sort_messages(await session.gateway.get_messages(args.conversation_id))

    if args.json:
        output_result([m.to_dict() for m in messages], as_json=True)
        return 0
    if not messages:
        print("No messages yet.")
        return 0
    for message in messages:
        print(format_message(message))
    return 0


async def cmd_send(session: ChatSession, args: argparse.Namespace) -> int:
    sent = await session.send_message(args.recipient, args.text)
    output_result(
        {"sent": sent, "recipient": args.recipient},
        as_json=args.json,
        text=f"Sent to {args.recipient}" if sent else f"Node did not accept the message to {args.recipient}",
    )
    return 0 if sent else 1


async def cmd_group_create(session: ChatSession, args: argparse.Namespace) -> int:
    group_id = await session.create_group(args.name, args.members)
    output_result(
        {"group_id": group_id, "name": args.name, "members": args.members},
        as_json=args.json,
        text=f"Created group {args.name}: {group_id}",
    )
    return 0


async def cmd_group_add(session: ChatSession, args: argparse.Namespace) -> int:
    added = await session.add_group_member(args.group_id, args.member)
    output_result(
        {"added": added, "group_id": args.group_id, "member": args.member},
        as_json=args.json,
        text=f"Added {args.member} to {args.group_id}",
    )
    return 0 if added else 1


async def cmd_upload(session: ChatSession, args: argparse.Namespace) -> int:
    """Upload a file, and send it as a message when --to is given."""
    path = Path(args.path).expanduser()
    try:
        data = path.read_bytes()
    except OSError as e:
        output_error(f"Cannot read {path}: {e}")
        return 1

    if args.to:
        ref = await session.send_file(args.to, path.name, data, content=args.text or "", mime_type=args.mime_type)
        text = f"Sent {ref.file_name} to {args.to} (file id {ref.file_id})"
    else:
        ref = await session.upload_file(path.name, data, mime_type=args.mime_type)
        text = f"Uploaded {ref.file_name} ({ref.file_size} bytes): file id {ref.file_id}"

    output_result(ref.to_dict(), as_json=args.json, text=text)
    return 0


async def cmd_download(session: ChatSession, args: argparse.Namespace) -> int:
    data = await session.gateway.download_file(args.file_id, args.owner)
    target = Path(args.output or args.file_id).expanduser()
    try:
        target.write_bytes(data)
    except OSError as e:
        output_error(f"Cannot write {target}: {e}")
        return 1

    output_result(
        {"file_id": args.file_id, "size": len(data), "path": str(target)},
        as_json=args.json,
        text=f"Saved {len(data)} bytes to {target}",
    )
    return 0


async def cmd_watch(session: ChatSession, args: argparse.Namespace) -> int:
    """Print conversation and message changes until interrupted."""
    seen: set[str] = set()

    def emit_messages(state: ConversationState) -> None:
        for message in state.selected_messages:
            if message.id in seen:
                continue
            seen.add(message.id)
            if args.json:
                print(json.dumps({"event": "message", "message": message.to_dict()}), flush=True)
            else:
                print(format_message(message), flush=True)

    def on_change(previous: ConversationState, current: ConversationState) -> None:
        if current.conversations != previous.conversations:
            if args.json:
                payload = [c.to_dict() for c in current.conversations]
                print(json.dumps({"event": "conversations", "conversations": payload}), flush=True)
            elif args.conversation is None:
                print(f"-- {len(current.conversations)} conversation(s)", flush=True)
                for conversation in current.conversations:
                    print(format_conversation(conversation, session.display_name(conversation)), flush=True)
        if current.selected_messages is not previous.selected_messages:
            emit_messages(current)

    session.store.subscribe(on_change)
    await session.start()
    if args.conversation:
        await session.open_conversation(args.conversation)

    await asyncio.Event().wait()
    return 0


# ============================================================================
# Parser
# ============================================================================

def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="samchat",
        description="Command-line client for a Samchat node",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  samchat conversations                         List conversations
  samchat messages alice.os:bob.os              Show a conversation
  samchat send bob.os "hi there"                Send a message
  samchat group create team alice.os bob.os     Create a group
  samchat upload notes.txt --to bob.os          Send a file
  samchat watch --conversation group_1234       Follow a conversation
        """,
    )
    parser.add_argument("--node-url", help="Node origin (default: SAMCHAT_NODE_URL)")
    parser.add_argument("--node-id", help="Local identity, e.g. alice.os (default: SAMCHAT_NODE_ID)")
    parser.add_argument("--json", action="store_true", help="Print JSON output")
    parser.add_argument("--log-level", help="Log level (default: SAMCHAT_LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    conversations_parser = subparsers.add_parser("conversations", help="List conversations")
    conversations_parser.set_defaults(func=cmd_conversations)

    messages_parser = subparsers.add_parser("messages", help="Show a conversation's messages")
    messages_parser.add_argument("conversation_id", help="Conversation id")
    messages_parser.set_defaults(func=cmd_messages)

    send_parser = subparsers.add_parser("send", help="Send a text message")
    send_parser.add_argument("recipient", help="Node address or group id")
    send_parser.add_argument("text", help="Message text")
    send_parser.set_defaults(func=cmd_send)

    group_parser = subparsers.add_parser("group", help="Manage groups")
    group_subparsers = group_parser.add_subparsers(dest="group_command", required=True)

    group_create_parser = group_subparsers.add_parser("create", help="Create a group")
    group_create_parser.add_argument("name", help="Group name")
    group_create_parser.add_argument("members", nargs="+", help="Member node addresses")
    group_create_parser.set_defaults(func=cmd_group_create)

    group_add_parser = group_subparsers.add_parser("add", help="Add a member to a group")
    group_add_parser.add_argument("group_id", help="Group id")
    group_add_parser.add_argument("member", help="Member node address")
    group_add_parser.set_defaults(func=cmd_group_add)

    upload_parser = subparsers.add_parser("upload", help="Upload a file")
    upload_parser.add_argument("path", help="File to upload")
    upload_parser.add_argument("--to", help="Send the file to this recipient after uploading")
    upload_parser.add_argument("--text", help="Message text sent with the file")
    upload_parser.add_argument("--mime-type", help="MIME type (guessed from the name by default)")
    upload_parser.set_defaults(func=cmd_upload)

    download_parser = subparsers.add_parser("download", help="Download an attachment")
    download_parser.add_argument("file_id", help="Attachment file id")
    download_parser.add_argument("owner", help="Node holding the attachment")
    download_parser.add_argument("--output", "-o", help="Output path (default: the file id)")
    download_parser.set_defaults(func=cmd_download)

    watch_parser = subparsers.add_parser("watch", help="Follow conversations as they change")
    watch_parser.add_argument("--conversation", "-c", help="Also follow this conversation's messages")
    watch_parser.set_defaults(func=cmd_watch)

    return parser


def build_settings(args: argparse.Namespace) -> SamchatSettings:
    """Settings from the environment with command-line overrides applied."""
    overrides: dict[str, Any] = {}
    if args.node_url:
        overrides["node_url"] = args.node_url
    if args.node_id:
        overrides["node_id"] = args.node_id
    if args.log_level:
        overrides["log_level"] = args.log_level
    return SamchatSettings(**overrides)


def run_command(handler: Handler, args: argparse.Namespace, settings: SamchatSettings) -> int:
    """Run one command handler against a fresh session."""

    async def runner() -> int:
        session = ChatSession(settings=settings)
        if settings.node_id:
            session.store.set_identity(settings.node_id)
        try:
            return await handler(session, args)
        finally:
            await session.stop()

    try:
        return asyncio.run(runner())
    except SamchatError as e:
        output_error(e.message)
        return 1
    except KeyboardInterrupt:
        return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)

    settings = build_settings(args)
    set_config(settings)
    configure_logging(level=settings.log_level)

    return run_command(args.func, args, settings)


if __name__ == "__main__":
    sys.exit(main())
