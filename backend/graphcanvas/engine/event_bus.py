"""EventBus: named document events with subscribers and a bounded chronological log."""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)

DOCUMENT_CHANGED = "documentChanged"
IMPORT_COMPLETED = "importCompleted"
VALIDATION_FAILED = "validationFailed"

Handler = Callable[["DocumentEvent"], None]


@dataclass
class DocumentEvent:
    """A single emitted event record."""

    timestamp: str
    name: str
    payload: dict[str, Any]


def _summarise(payload: dict[str, Any]) -> dict[str, Any]:
    # Snapshots are large; the log keeps their counts only.
    summary = {}
    for key, value in payload.items():
        if hasattr(value, "nodes") and hasattr(value, "edges"):
            summary[key] = {"nodes": len(value.nodes), "edges": len(value.edges)}
        elif hasattr(value, "to_dict"):
            summary[key] = value.to_dict()
        else:
            summary[key] = value
    return summary


class EventBus:
    """Delivers events synchronously to subscribers and records them in order."""

    def __init__(self, history_limit: int = 500) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._events: deque[DocumentEvent] = deque(maxlen=history_limit)

    def subscribe(self, name: str, handler: Handler) -> Callable[[], None]:
        """Register *handler* for *name*; returns a callable that unsubscribes it."""
        self._handlers[name].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[name]:
                self._handlers[name].remove(handler)

        return unsubscribe

    def emit(self, name: str, payload: dict[str, Any]) -> DocumentEvent:
        event = DocumentEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            name=name,
            payload=payload,
        )
        self._events.append(event)
        for handler in list(self._handlers.get(name, ())):
            try:
                handler(event)
            except Exception:
                logger.exception("Handler %r failed for event %s", handler, name)
        return event

    def get_history(self) -> list[dict[str, Any]]:
        """Return recorded events as dicts, in chronological order."""
        return [
            {
                "timestamp": e.timestamp,
                "name": e.name,
                "payload": _summarise(e.payload),
            }
            for e in self._events
        ]

    def clear(self) -> None:
        self._events.clear()
