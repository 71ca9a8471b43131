# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Samchat client - synchronized conversation view for a Samchat node.

The client keeps a locally consistent view of the conversations and messages
held by a remote Samchat process and caches the binary attachments that
travel with them.

Architecture:
  Transport Gateway (request/response + push channel)
    → Sync Scheduler (periodic and push-triggered refreshes)
    → Conversation Store (whole-state replacement, merged appends)
    → rendering layer (external)
  rendering layer → Attachment Cache (single-flight loads) → Transport Gateway

Entry points: ``samchat.session.ChatSession`` for programmatic use and the
``samchat`` console command.
"""

__version__ = "0.1.0"
