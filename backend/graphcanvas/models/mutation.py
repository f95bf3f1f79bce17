from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field

from graphcanvas.models.graph import GraphEdge, GraphNode, Position
from graphcanvas.models.preset import SchemaModel


class AddNode(SchemaModel):
    op: Literal["add-node"] = "add-node"
    node: GraphNode


class UpdateNode(SchemaModel):
    op: Literal["update-node"] = "update-node"
    node_id: str
    properties: dict[str, Any] = {}
    remove_properties: list[str] = []
    position: Optional[Position] = None


class RemoveNode(SchemaModel):
    op: Literal["remove-node"] = "remove-node"
    node_id: str


class AddEdge(SchemaModel):
    op: Literal["add-edge"] = "add-edge"
    edge: GraphEdge


class UpdateEdge(SchemaModel):
    op: Literal["update-edge"] = "update-edge"
    edge_id: str
    properties: dict[str, Any] = {}
    remove_properties: list[str] = []


class RemoveEdge(SchemaModel):
    op: Literal["remove-edge"] = "remove-edge"
    edge_id: str


class Batch(SchemaModel):
    op: Literal["batch"] = "batch"
    label: Optional[str] = None
    mutations: list["Mutation"] = []


Mutation = Annotated[
    Union[AddNode, UpdateNode, RemoveNode, AddEdge, UpdateEdge, RemoveEdge, Batch],
    Field(discriminator="op"),
]

Batch.model_rebuild()


def describe(mutation: Any) -> str:
    """Short human label for history panels."""
    if isinstance(mutation, AddNode):
        return f"Add node {mutation.node.id}"
    if isinstance(mutation, UpdateNode):
        return f"Update node {mutation.node_id}"
    if isinstance(mutation, RemoveNode):
        return f"Remove node {mutation.node_id}"
    if isinstance(mutation, AddEdge):
        return f"Add edge {mutation.edge.id}"
    if isinstance(mutation, UpdateEdge):
        return f"Update edge {mutation.edge_id}"
    if isinstance(mutation, RemoveEdge):
        return f"Remove edge {mutation.edge_id}"
    if isinstance(mutation, Batch):
        return mutation.label or f"Batch of {len(mutation.mutations)} change(s)"
    return type(mutation).__name__
