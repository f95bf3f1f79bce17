"""ImportPipeline: parse, validate, map, stage and atomically commit a STIX bundle."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from graphcanvas.engine.constraints import ConstraintChecker
from graphcanvas.engine.document_store import DocumentStore
from graphcanvas.engine.event_bus import IMPORT_COMPLETED, VALIDATION_FAILED
from graphcanvas.engine.planner import Planner
from graphcanvas.errors import ImportCancelled, ImportIssue, ImportWarning, RejectionError, UnknownTypeWarning
from graphcanvas.importers.stix_mapping import Candidate, CandidateItem, ImportOptions, map_to_graph
from graphcanvas.importers.stix_parser import parse
from graphcanvas.importers.stix_validators import validate_objects
from graphcanvas.models.graph import GraphSnapshot
from graphcanvas.models.mutation import AddEdge, AddNode, Batch
from graphcanvas.models.preset import Preset
from graphcanvas.settings import GraphCanvasSettings

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    objects_read: int = 0
    nodes_created: int = 0
    edges_created: int = 0
    skipped: int = 0
    warnings: list[Union[ImportWarning, UnknownTypeWarning]] = field(default_factory=list)
    errors: list[ImportIssue] = field(default_factory=list)
    by_type: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "objects_read": self.objects_read,
            "nodes_created": self.nodes_created,
            "edges_created": self.edges_created,
            "skipped": self.skipped,
            "warnings": [w.to_dict() for w in self.warnings],
            "errors": [e.to_dict() for e in self.errors],
            "by_type": self.by_type,
        }


def options_from_settings(settings: GraphCanvasSettings, **overrides: Any) -> ImportOptions:
    values: dict[str, Any] = {
        "grid_columns": settings.import_grid_columns,
        "grid_spacing": settings.import_grid_spacing,
    }
    values.update(overrides)
    return ImportOptions(**values)


class ImportPipeline:
    """Runs STIX imports against a store for one preset.

    Staging and commit happen while holding the store's lock, so the batch that
    is committed is exactly the one that was staged.
    """

    def __init__(self, preset: Preset, options: Optional[ImportOptions] = None) -> None:
        self.preset = preset
        self.options = options or ImportOptions()
        self.checker = ConstraintChecker(preset)
        self._cancelled = threading.Event()

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Discard the in-flight import before it commits."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def stage(
        self,
        candidate: Candidate,
        snapshot: GraphSnapshot,
        checker: Optional[ConstraintChecker] = None,
    ) -> list[CandidateItem]:
        """Plan every candidate item against a scratch copy of *snapshot*.

        Items the store would reject become indexed errors on *candidate* and are dropped.
        """
        planner = Planner(snapshot, checker or self.checker)
        accepted = []
        for item in candidate.items:
            try:
                planner.stage(item.mutation)
            except RejectionError as exc:
                candidate.errors.append(ImportIssue(
                    index=item.index,
                    message=str(exc),
                    code=exc.code,
                    object_id=item.object_id,
                    object_type=item.object_type,
                ))
                continue
            accepted.append(item)
        return accepted

    def commit(self, accepted: list[CandidateItem], store: DocumentStore, label: str = "Import STIX bundle") -> Optional[GraphSnapshot]:
        """Apply *accepted* as a single batch: one history entry, one undo."""
        if not accepted:
            return None
        return store.apply(Batch(label=label, mutations=[item.mutation for item in accepted]))

    def run(self, data: Union[str, bytes, dict[str, Any]], store: DocumentStore) -> ImportSummary:
        self._cancelled.clear()
        bundle = parse(data)
        report = validate_objects(bundle)

        with store.lock:
            candidate = map_to_graph(report.valid, self.preset, self.options, store.snapshot)
            accepted = self.stage(candidate, store.snapshot, store.checker)
            if self._cancelled.is_set():
                logger.info("Import cancelled; %d staged change(s) discarded", len(accepted))
                raise ImportCancelled("Import was cancelled before commit")
            self.commit(accepted, store)

        by_type = Counter(candidate.by_type)
        for warning in report.warnings:
            by_type[warning.object_type] += 1

        summary = ImportSummary(
            objects_read=len(bundle.objects),
            nodes_created=sum(1 for item in accepted if isinstance(item.mutation, AddNode)),
            edges_created=sum(1 for item in accepted if isinstance(item.mutation, AddEdge)),
            skipped=candidate.skipped + len(report.warnings),
            warnings=[*report.warnings, *candidate.warnings],
            errors=sorted([*report.errors, *candidate.errors], key=lambda e: (e.index is None, e.index or 0)),
            by_type=dict(sorted(by_type.items())),
        )
        logger.info(
            "STIX import: %d object(s) read, %d node(s) and %d edge(s) created, %d error(s)",
            summary.objects_read, summary.nodes_created, summary.edges_created, len(summary.errors),
        )

        store.events.emit(IMPORT_COMPLETED, {"summary": summary})
        if summary.errors:
            store.events.emit(VALIDATION_FAILED, {"errors": [e.to_dict() for e in summary.errors]})
        return summary
