# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Warm-start snapshots of the Conversation Store.

The snapshot is a best-effort cache for the next session start: it is
written after store changes and read once on startup. A missing, corrupt,
outdated or foreign snapshot is ignored and the session starts empty.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Optional

from ..core.models import ConversationState

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class SessionStateFile:
    """JSON snapshot of a ConversationState at ``path``."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self._last_save: float = 0.0

    @property
    def last_save(self) -> float:
        """Wall-clock time of the last successful save (0 if never)."""
        return self._last_save

    def save(self, state: ConversationState) -> None:
        """Write the snapshot atomically (temp file + rename).

        Raises:
            OSError: If the snapshot cannot be written.
        """
        payload = {
            "version": STATE_VERSION,
            "saved_at": time.time(),
            "state": state.to_dict(),
        }
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(json.dumps(payload), encoding="utf-8")
            temp_path.replace(self.path)
            self._last_save = time.time()
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise

    def load(self, identity: Optional[str] = None) -> Optional[ConversationState]:
        """Read the snapshot.

        Args:
            identity: When given, snapshots saved for another identity are ignored.

        Returns:
            The saved state, or None if there is nothing usable.
        """
        if not self.path.exists():
            return None

        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            if payload.get("version") != STATE_VERSION:
                logger.info(f"Ignoring session snapshot with version {payload.get('version')}")
                return None
            state = ConversationState.from_dict(payload["state"])
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Failed to read session snapshot {self.path}: {e}")
            return None

        if identity is not None and state.identity not in (None, identity):
            logger.info(f"Ignoring session snapshot saved for {state.identity}")
            return None
        return state

    def clear(self) -> None:
        """Delete the snapshot if present."""
        self.path.unlink(missing_ok=True)
