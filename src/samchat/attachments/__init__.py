# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Attachment loading and caching."""

from .cache import AttachmentCache, AttachmentState, decode_attachment

__all__ = ["AttachmentCache", "AttachmentState", "decode_attachment"]
