"""History: bounded undo/redo stacks of committed patches."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from graphcanvas.engine.patches import Patch

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class HistoryEntry:
    """One committed change: the patch that made it and its exact inverse."""

    label: str
    forward: Patch
    inverse: Patch
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "timestamp": self.timestamp,
            "changes": len(self.forward),
        }


class History:
    """Undo stack capped at *limit* entries (oldest evicted first) plus a redo stack."""

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError("history limit must be at least 1")
        self.limit = limit
        self._undo: deque[HistoryEntry] = deque(maxlen=limit)
        self._redo: list[HistoryEntry] = []

    def record(self, entry: HistoryEntry) -> None:
        """Push a freshly committed entry; any redo branch is discarded."""
        if len(self._undo) == self.limit:
            logger.debug("History full (%d); evicting '%s'", self.limit, self._undo[0].label)
        self._undo.append(entry)
        self._redo.clear()

    def undo(self) -> Optional[HistoryEntry]:
        if not self._undo:
            return None
        entry = self._undo.pop()
        self._redo.append(entry)
        return entry

    def redo(self) -> Optional[HistoryEntry]:
        if not self._redo:
            return None
        entry = self._redo.pop()
        self._undo.append(entry)
        return entry

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def __len__(self) -> int:
        return len(self._undo)

    def get_history(self) -> list[dict[str, Any]]:
        """Undo stack entries, oldest first."""
        return [entry.to_dict() for entry in self._undo]

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
