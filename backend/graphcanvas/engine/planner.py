"""Compiles mutations into patches against a snapshot. Pure: nothing is committed here."""

from __future__ import annotations

import logging

from graphcanvas.engine.constraints import ConstraintChecker
from graphcanvas.engine.patches import Patch, PatchRecorder
from graphcanvas.errors import DuplicateId, ElementNotFound, InferredEdgeReadOnly, RejectionError
from graphcanvas.models.graph import GraphSnapshot
from graphcanvas.models.mutation import (
    AddEdge,
    AddNode,
    Batch,
    Mutation,
    RemoveEdge,
    RemoveNode,
    UpdateEdge,
    UpdateNode,
)

logger = logging.getLogger(__name__)


class Planner:
    """Stages mutations one at a time on a working copy of *snapshot*.

    A rejected mutation is rolled back completely (including the already staged
    parts of a batch), so the planner can keep staging after a failure.
    """

    def __init__(self, snapshot: GraphSnapshot, checker: ConstraintChecker) -> None:
        self.checker = checker
        self._recorder = PatchRecorder(snapshot)
        self._handlers = {
            AddNode: self._add_node,
            UpdateNode: self._update_node,
            RemoveNode: self._remove_node,
            AddEdge: self._add_edge,
            UpdateEdge: self._update_edge,
            RemoveEdge: self._remove_edge,
            Batch: self._batch,
        }

    def stage(self, mutation: Mutation) -> None:
        mark = self._recorder.mark()
        try:
            self._compile(mutation)
        except RejectionError:
            self._recorder.rollback(mark)
            raise

    @property
    def patch(self) -> Patch:
        return self._recorder.patch

    def snapshot(self) -> GraphSnapshot:
        return self._recorder.snapshot()

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _compile(self, mutation: Mutation) -> None:
        handler = self._handlers.get(type(mutation))
        if handler is None:
            raise TypeError(f"Unsupported mutation {type(mutation).__name__}")
        handler(mutation)

    def _batch(self, mutation: Batch) -> None:
        for item in mutation.mutations:
            self._compile(item)

    def _add_node(self, mutation: AddNode) -> None:
        node = mutation.node
        nodes = self._recorder.nodes
        if node.id in nodes:
            raise DuplicateId(f"Node '{node.id}' already exists", element_id=node.id)
        self.checker.check_node_capacity(len(nodes), node.id)
        self.checker.check_node(node)
        self._recorder.insert("node", node.id, node)

    def _update_node(self, mutation: UpdateNode) -> None:
        existing = self._recorder.nodes.get(mutation.node_id)
        if existing is None:
            raise ElementNotFound(f"Node '{mutation.node_id}' does not exist", element_id=mutation.node_id)
        properties = {**existing.properties, **mutation.properties}
        for key in mutation.remove_properties:
            properties.pop(key, None)
        updated = existing.model_copy(update={
            "properties": properties,
            "position": mutation.position or existing.position,
        })
        if updated == existing:
            return
        self.checker.check_node(updated)
        self._recorder.replace("node", existing.id, updated)

    def _remove_node(self, mutation: RemoveNode) -> None:
        if mutation.node_id not in self._recorder.nodes:
            raise ElementNotFound(f"Node '{mutation.node_id}' does not exist", element_id=mutation.node_id)
        incident = [
            edge_id for edge_id, edge in self._recorder.edges.items()
            if edge.source == mutation.node_id or edge.target == mutation.node_id
        ]
        for edge_id in incident:
            self._recorder.delete("edge", edge_id)
        self._recorder.delete("node", mutation.node_id)
        if incident:
            logger.debug("Removing node %s cascaded to %d edge(s)", mutation.node_id, len(incident))

    def _add_edge(self, mutation: AddEdge) -> None:
        edge = mutation.edge
        if edge.inferred:
            raise InferredEdgeReadOnly(
                f"Edge '{edge.id}' is marked inferred; derived edges cannot be authored",
                element_id=edge.id,
            )
        edges = self._recorder.edges
        if edge.id in edges:
            raise DuplicateId(f"Edge '{edge.id}' already exists", element_id=edge.id)
        self.checker.check_edge_capacity(len(edges), edge.id)
        self.checker.check_edge(edge, self._recorder.nodes, edges)
        self._recorder.insert("edge", edge.id, edge)

    def _update_edge(self, mutation: UpdateEdge) -> None:
        existing = self._recorder.edges.get(mutation.edge_id)
        if existing is None:
            raise ElementNotFound(f"Edge '{mutation.edge_id}' does not exist", element_id=mutation.edge_id)
        properties = {**existing.properties, **mutation.properties}
        for key in mutation.remove_properties:
            properties.pop(key, None)
        updated = existing.model_copy(update={"properties": properties})
        if updated == existing:
            return
        rel = self.checker.relationship(updated)
        self.checker.check_properties(updated.id, rel.properties, updated.properties)
        self._recorder.replace("edge", existing.id, updated)

    def _remove_edge(self, mutation: RemoveEdge) -> None:
        if mutation.edge_id not in self._recorder.edges:
            raise ElementNotFound(f"Edge '{mutation.edge_id}' does not exist", element_id=mutation.edge_id)
        self._recorder.delete("edge", mutation.edge_id)


def plan(snapshot: GraphSnapshot, mutation: Mutation, checker: ConstraintChecker) -> tuple[Patch, GraphSnapshot]:
    """Compile *mutation* against *snapshot*, returning the patch and the resulting snapshot."""
    planner = Planner(snapshot, checker)
    planner.stage(mutation)
    return planner.patch, planner.snapshot()
