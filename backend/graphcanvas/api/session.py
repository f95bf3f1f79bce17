"""WorkspaceSession: the preset, document store, importer and inference engine behind the HTTP API."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request

from graphcanvas.engine.document_store import DocumentStore
from graphcanvas.engine.event_bus import EventBus
from graphcanvas.engine.inference_engine import InferenceEngine
from graphcanvas.engine.serialization import load_document
from graphcanvas.importers.stix_pipeline import ImportPipeline, options_from_settings
from graphcanvas.models.api import DocumentResponse
from graphcanvas.models.graph import GraphSnapshot
from graphcanvas.models.preset import Preset
from graphcanvas.presets.library import load_builtin
from graphcanvas.settings import GraphCanvasSettings

logger = logging.getLogger(__name__)


class WorkspaceSession:
    """One active preset and its document. Switching presets starts a fresh document."""

    def __init__(self, preset: Preset, settings: GraphCanvasSettings) -> None:
        self.settings = settings
        self.events = EventBus(history_limit=settings.event_history_limit)
        self.use_preset(preset)

    @classmethod
    def from_settings(cls, settings: GraphCanvasSettings) -> WorkspaceSession:
        return cls(load_builtin(settings.default_preset), settings)

    def use_preset(self, preset: Preset) -> None:
        self.preset = preset
        self.store = DocumentStore(preset, events=self.events)
        self.pipeline = ImportPipeline(preset, options_from_settings(self.settings))
        self.inference = InferenceEngine(preset, default_max_passes=self.settings.inference_max_passes)
        logger.info("Workspace now uses preset %s (%s)", preset.id, preset.version)

    def load_document(self, data: Any) -> GraphSnapshot:
        return self.store.load(load_document(data, self.preset))

    def document(self) -> DocumentResponse:
        exported = self.store.export()
        return DocumentResponse(
            metadata=exported["metadata"],
            nodes=exported["nodes"],
            edges=exported["edges"],
            can_undo=self.store.can_undo,
            can_redo=self.store.can_redo,
        )


def get_session(request: Request) -> WorkspaceSession:
    return request.app.state.session
