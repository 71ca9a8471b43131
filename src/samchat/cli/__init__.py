# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Samchat CLI - talk to a Samchat node from the terminal."""

from .main import app, main

__all__ = ["main", "app"]
