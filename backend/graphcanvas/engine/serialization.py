"""Graph document exchange format: ``{metadata, nodes[], edges[]}`` JSON."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from graphcanvas.engine.constraints import ConstraintChecker
from graphcanvas.engine.planner import Planner
from graphcanvas.errors import DocumentLoadError, RejectionError, ValidationError
from graphcanvas.models.graph import DocumentMetadata, GraphEdge, GraphNode, GraphSnapshot
from graphcanvas.models.mutation import AddEdge, AddNode
from graphcanvas.models.preset import Preset

logger = logging.getLogger(__name__)


def empty_snapshot(preset: Preset, title: str = "Untitled graph") -> GraphSnapshot:
    return GraphSnapshot(
        metadata=DocumentMetadata(preset_id=preset.id, preset_version=preset.version, title=title),
    )


def export_document(snapshot: GraphSnapshot) -> dict[str, Any]:
    """Serialise a snapshot; inferred edges are never exported."""
    return {
        "metadata": snapshot.metadata.model_dump(by_alias=True, mode="json"),
        "nodes": [n.model_dump(by_alias=True, mode="json") for n in snapshot.nodes.values()],
        "edges": [e.model_dump(by_alias=True, mode="json") for e in snapshot.edges.values() if not e.inferred],
    }


def _pydantic_errors(prefix: str, exc: PydanticValidationError) -> list[ValidationError]:
    return [
        ValidationError(
            path=".".join([prefix, *(str(part) for part in err["loc"])]),
            message=err["msg"],
            code=err["type"],
        )
        for err in exc.errors()
    ]


def _list_field(data: dict[str, Any], key: str, errors: list[ValidationError]) -> list[Any]:
    value = data.get(key, [])
    if not isinstance(value, list):
        errors.append(ValidationError(path=key, message=f"'{key}' must be a list", code="invalid-type"))
        return []
    return value


def load_document(data: Any, preset: Preset) -> GraphSnapshot:
    """Build a snapshot from the exchange form, checking every element against *preset*.

    All problems are collected; ``DocumentLoadError`` carries the full list.
    """
    if not isinstance(data, dict):
        raise DocumentLoadError([ValidationError(path="root", message="Document must be a JSON object", code="invalid-type")])

    errors: list[ValidationError] = []

    raw_meta = data.get("metadata") or {}
    if not isinstance(raw_meta, dict):
        errors.append(ValidationError(path="metadata", message="'metadata' must be an object", code="invalid-type"))
        raw_meta = {}
    declared_preset = raw_meta.get("presetId", preset.id)
    if declared_preset != preset.id:
        errors.append(ValidationError(
            path="metadata.presetId",
            message=f"Document was authored with preset '{declared_preset}', not '{preset.id}'",
            code="preset-mismatch",
        ))
    declared_version = raw_meta.get("presetVersion", preset.version)
    if declared_version != preset.version:
        logger.warning("Loading document written for preset version %s into %s", declared_version, preset.version)
    snapshot = empty_snapshot(preset, str(raw_meta.get("title") or "Untitled graph"))

    planner = Planner(snapshot, ConstraintChecker(preset))

    for index, raw in enumerate(_list_field(data, "nodes", errors)):
        try:
            node = GraphNode.model_validate(raw)
        except PydanticValidationError as exc:
            errors.extend(_pydantic_errors(f"nodes.{index}", exc))
            continue
        try:
            planner.stage(AddNode(node=node))
        except RejectionError as exc:
            errors.append(ValidationError(path=f"nodes.{index}", message=str(exc), code=exc.code))

    for index, raw in enumerate(_list_field(data, "edges", errors)):
        try:
            edge = GraphEdge.model_validate(raw)
        except PydanticValidationError as exc:
            errors.extend(_pydantic_errors(f"edges.{index}", exc))
            continue
        if edge.inferred:
            logger.info("Skipping inferred edge %s on load", edge.id)
            continue
        try:
            planner.stage(AddEdge(edge=edge))
        except RejectionError as exc:
            errors.append(ValidationError(path=f"edges.{index}", message=str(exc), code=exc.code))

    if errors:
        raise DocumentLoadError(errors)
    return planner.snapshot()


def diff_snapshots(old: GraphSnapshot, new: GraphSnapshot) -> dict[str, Any]:
    """Summarise element-level differences between two snapshots."""

    def compare(before: dict[str, Any], after: dict[str, Any]) -> dict[str, list[str]]:
        return {
            "added": [key for key in after if key not in before],
            "removed": [key for key in before if key not in after],
            "modified": [key for key in after if key in before and after[key] != before[key]],
        }

    nodes = compare(old.nodes, new.nodes)
    edges = compare(old.edges, new.edges)
    return {
        "nodes": nodes,
        "edges": edges,
        "unchanged": not any(nodes.values()) and not any(edges.values()),
    }
