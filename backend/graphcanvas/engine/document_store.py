"""DocumentStore: the canonical graph document with exact, bounded undo/redo."""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from graphcanvas.engine.constraints import ConstraintChecker
from graphcanvas.engine.event_bus import DOCUMENT_CHANGED, VALIDATION_FAILED, EventBus
from graphcanvas.engine.history import History, HistoryEntry
from graphcanvas.engine.patches import apply_patch, invert
from graphcanvas.engine.planner import plan
from graphcanvas.engine.serialization import empty_snapshot, export_document
from graphcanvas.errors import RejectionError
from graphcanvas.models.graph import GraphSnapshot
from graphcanvas.models.mutation import Mutation, describe
from graphcanvas.models.preset import Preset

logger = logging.getLogger(__name__)


class DocumentStore:
    """Owns the current snapshot for one preset.

    Every write goes through ``apply``/``undo``/``redo``/``load`` under a single
    re-entrant lock. ``snapshot`` always returns the last committed value, which
    is never mutated afterwards. Each commit bumps ``revision`` while the lock is
    held; ``documentChanged`` payloads carry it so subscribers can order events
    that are delivered outside the lock.
    """

    def __init__(
        self,
        preset: Preset,
        snapshot: Optional[GraphSnapshot] = None,
        *,
        title: str = "Untitled graph",
        history_limit: Optional[int] = None,
        events: Optional[EventBus] = None,
    ) -> None:
        self.preset = preset
        self.checker = ConstraintChecker(preset)
        self.events = events if events is not None else EventBus()
        self._lock = threading.RLock()
        self._history = History(history_limit or preset.behavior.history_limit)
        self._snapshot = snapshot if snapshot is not None else empty_snapshot(preset, title)
        self._revision = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> GraphSnapshot:
        return self._snapshot

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def lock(self) -> threading.RLock:
        """Held by callers that must stage and commit against one unchanging snapshot."""
        return self._lock

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    def get_history(self) -> list[dict[str, Any]]:
        return self._history.get_history()

    def export(self) -> dict[str, Any]:
        return export_document(self._snapshot)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply(self, mutation: Mutation) -> GraphSnapshot:
        """Commit *mutation* or raise the typed rejection, leaving the snapshot untouched."""
        rejection: Optional[RejectionError] = None
        label = describe(mutation)
        with self._lock:
            try:
                patch, snapshot = plan(self._snapshot, mutation, self.checker)
            except RejectionError as exc:
                rejection = exc
            else:
                if patch:
                    self._history.record(HistoryEntry(label=label, forward=patch, inverse=invert(patch)))
                    self._snapshot = snapshot
                    revision = self._bump()

        if rejection is not None:
            logger.info("Rejected '%s': %s", label, rejection)
            self.events.emit(VALIDATION_FAILED, {"errors": [rejection.to_validation_error().to_dict()]})
            raise rejection

        if patch:
            logger.debug("Committed '%s' (%d change(s))", label, len(patch))
            self.events.emit(DOCUMENT_CHANGED, {"snapshot": snapshot, "label": label, "revision": revision})
        return snapshot

    def undo(self) -> Optional[GraphSnapshot]:
        with self._lock:
            entry = self._history.undo()
            if entry is None:
                return None
            snapshot = apply_patch(self._snapshot, entry.inverse)
            self._snapshot = snapshot
            revision = self._bump()
        self.events.emit(DOCUMENT_CHANGED, {"snapshot": snapshot, "label": f"Undo {entry.label}", "revision": revision})
        return snapshot

    def redo(self) -> Optional[GraphSnapshot]:
        with self._lock:
            entry = self._history.redo()
            if entry is None:
                return None
            snapshot = apply_patch(self._snapshot, entry.forward)
            self._snapshot = snapshot
            revision = self._bump()
        self.events.emit(DOCUMENT_CHANGED, {"snapshot": snapshot, "label": f"Redo {entry.label}", "revision": revision})
        return snapshot

    def load(self, snapshot: GraphSnapshot) -> GraphSnapshot:
        """Replace the document wholesale; history is cleared."""
        with self._lock:
            self._snapshot = snapshot
            self._history.clear()
            revision = self._bump()
        logger.info("Loaded document '%s' (%d nodes, %d edges)", snapshot.metadata.title, len(snapshot.nodes), len(snapshot.edges))
        self.events.emit(DOCUMENT_CHANGED, {"snapshot": snapshot, "label": "Load document", "revision": revision})
        return snapshot

    def _bump(self) -> int:
        self._revision += 1
        return self._revision
