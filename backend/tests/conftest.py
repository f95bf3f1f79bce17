"""Shared fixtures and builders for the graphcanvas test suite."""

import copy
import json
from pathlib import Path

import pytest

from graphcanvas.engine.document_store import DocumentStore
from graphcanvas.engine.event_bus import EventBus
from graphcanvas.models.graph import GraphEdge, GraphNode, Position
from graphcanvas.models.preset import Preset
from graphcanvas.presets.library import load_builtin

SAMPLES_DIR = Path(__file__).resolve().parent.parent / "samples"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_node(node_id: str, type_id: str, x: float = 0, y: float = 0, **properties) -> GraphNode:
    return GraphNode(id=node_id, type_id=type_id, properties=properties, position=Position(x=x, y=y))


def make_edge(edge_id: str, type_id: str, source: str, target: str, **properties) -> GraphEdge:
    return GraphEdge(id=edge_id, type_id=type_id, source=source, target=target, properties=properties)


def build_preset_dict() -> dict:
    """Minimal current-format preset: two node types, one relationship, no mappings."""
    return {
        "id": "mini",
        "name": "Mini",
        "version": "2.0.0",
        "description": "Small preset for tests",
        "nodeTypes": [
            {
                "id": "service",
                "name": "Service",
                "description": "A running service",
                "properties": [
                    {"id": "name", "name": "Name", "type": "string", "required": True},
                    {"id": "port", "name": "Port", "type": "number"},
                    {"id": "tier", "name": "Tier", "type": "enum", "options": ["web", "db"]},
                ],
                "validationRules": [
                    {"property": "port", "rule": "min", "value": 1},
                    {"property": "port", "rule": "max", "value": 65535},
                ],
                "style": {"color": "#3b82f6"},
            },
            {
                "id": "team",
                "name": "Team",
                "description": "Owning team",
                "properties": [{"id": "name", "name": "Name", "type": "string", "required": True}],
                "style": {"color": "#22c55e"},
            },
        ],
        "relationships": [
            {
                "id": "owns",
                "name": "owns",
                "sourceTypes": ["team"],
                "targetTypes": ["service"],
                "multiplicity": "one-to-many",
            },
        ],
        "behavior": {"historyLimit": 10},
    }


def build_chain_preset_dict(max_passes: int | None = None) -> dict:
    """Preset whose only mapping shortcuts two ``next`` hops; a long chain needs several passes."""
    behavior = {"enableInference": True}
    if max_passes is not None:
        behavior["inferenceMaxPasses"] = max_passes
    return {
        "id": "chain",
        "name": "Chain",
        "version": "2.0.0",
        "description": "Step chains",
        "nodeTypes": [
            {"id": "step", "name": "Step", "description": "A step", "style": {"color": "#64748b"}},
        ],
        "relationships": [
            {"id": "next", "name": "next", "sourceTypes": ["step"], "targetTypes": ["step"]},
        ],
        "behavior": behavior,
        "ontologyMappings": [
            {
                "id": "skip-ahead",
                "sourceType": "step",
                "rule": {
                    "kind": "path",
                    "derivedRelationship": "next",
                    "via": [
                        {"relationship": "next", "direction": "out"},
                        {"relationship": "next", "direction": "out"},
                    ],
                },
            },
        ],
    }


def stix_object(stix_type: str, suffix: str, **fields) -> dict:
    obj = {
        "type": stix_type,
        "spec_version": "2.1",
        "id": f"{stix_type}--{suffix}",
        "created": "2024-01-01T00:00:00.000Z",
        "modified": "2024-01-01T00:00:00.000Z",
    }
    obj.update(fields)
    return obj


def stix_relationship(suffix: str, relationship_type: str, source_ref: str, target_ref: str, **fields) -> dict:
    return stix_object(
        "relationship",
        suffix,
        relationship_type=relationship_type,
        source_ref=source_ref,
        target_ref=target_ref,
        **fields,
    )


def stix_bundle(*objects: dict) -> dict:
    return {"type": "bundle", "id": "bundle--00000000-0000-4000-8000-000000000000", "objects": list(objects)}


def load_sample(name: str) -> dict:
    with open(SAMPLES_DIR / name, encoding="utf-8") as f:
        return json.load(f)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def threat_model() -> Preset:
    return load_builtin("threat-model")


@pytest.fixture
def topo() -> Preset:
    return load_builtin("topo")


@pytest.fixture
def mini_dict() -> dict:
    return copy.deepcopy(build_preset_dict())


@pytest.fixture
def mini(mini_dict) -> Preset:
    return Preset.model_validate(mini_dict)


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def topo_store(topo, events) -> DocumentStore:
    return DocumentStore(topo, events=events)


@pytest.fixture
def threat_store(threat_model, events) -> DocumentStore:
    return DocumentStore(threat_model, events=events)


@pytest.fixture
def lantern_bundle() -> dict:
    return load_sample("operation-lantern.stix.json")


@pytest.fixture
def legacy_preset() -> dict:
    return load_sample("legacy-network-0.9.0.json")
