from __future__ import annotations

from typing import Any, Optional

from graphcanvas.models.preset import SchemaModel


class Position(SchemaModel):
    x: float = 0.0
    y: float = 0.0


class GraphNode(SchemaModel):
    id: str
    type_id: str
    properties: dict[str, Any] = {}
    position: Position = Position()


class GraphEdge(SchemaModel):
    id: str
    type_id: str
    source: str
    target: str
    properties: dict[str, Any] = {}
    inferred: bool = False


class DocumentMetadata(SchemaModel):
    preset_id: str
    preset_version: str
    title: str = "Untitled graph"


class GraphSnapshot(SchemaModel):
    """A committed document state. Never mutated in place; edits produce a new snapshot."""

    metadata: DocumentMetadata
    nodes: dict[str, GraphNode] = {}
    edges: dict[str, GraphEdge] = {}

    def node(self, node_id: str) -> Optional[GraphNode]:
        return self.nodes.get(node_id)

    def edge(self, edge_id: str) -> Optional[GraphEdge]:
        return self.edges.get(edge_id)

    def incident_edges(self, node_id: str) -> list[GraphEdge]:
        return [e for e in self.edges.values() if e.source == node_id or e.target == node_id]
