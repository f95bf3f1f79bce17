"""Patches: ordered, exactly invertible lists of element-level changes.

A ``PatchOp`` records the element before and after the change together with the
key's position in the ordered mapping, so that applying the inverse restores
iteration order as well as content.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Optional, Union

from graphcanvas.models.graph import GraphEdge, GraphNode, GraphSnapshot

Target = Literal["node", "edge"]
Element = Union[GraphNode, GraphEdge]


@dataclass(frozen=True)
class PatchOp:
    target: Target
    key: str
    before: Optional[Element]
    after: Optional[Element]
    index: int

    @property
    def kind(self) -> str:
        if self.before is None:
            return "insert"
        if self.after is None:
            return "delete"
        return "replace"

    def inverted(self) -> PatchOp:
        return PatchOp(self.target, self.key, self.after, self.before, self.index)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "key": self.key,
            "kind": self.kind,
            "index": self.index,
            "before": self.before.model_dump(by_alias=True, mode="json") if self.before else None,
            "after": self.after.model_dump(by_alias=True, mode="json") if self.after else None,
        }


Patch = tuple[PatchOp, ...]


def invert(patch: Patch) -> Patch:
    """Exact inverse: reversed order, before/after swapped."""
    return tuple(op.inverted() for op in reversed(patch))


def _insert_at(table: dict[str, Element], key: str, value: Element, index: int) -> None:
    if index >= len(table):
        table[key] = value
        return
    items = list(table.items())
    items.insert(index, (key, value))
    table.clear()
    table.update(items)


def _apply_op(tables: dict[str, dict[str, Element]], op: PatchOp) -> None:
    table = tables[op.target]
    if op.before is None:
        _insert_at(table, op.key, op.after, op.index)
    elif op.after is None:
        del table[op.key]
    else:
        table[op.key] = op.after


def apply_patch(snapshot: GraphSnapshot, patch: Patch) -> GraphSnapshot:
    """Return a new snapshot with *patch* applied; *snapshot* is left untouched."""
    if not patch:
        return snapshot
    tables = {"node": dict(snapshot.nodes), "edge": dict(snapshot.edges)}
    for op in patch:
        _apply_op(tables, op)
    return snapshot.model_copy(update={"nodes": tables["node"], "edges": tables["edge"]})


class PatchRecorder:
    """Working copy of a snapshot's tables that records every change as a ``PatchOp``."""

    def __init__(self, snapshot: GraphSnapshot) -> None:
        self._base = snapshot
        self.nodes: dict[str, GraphNode] = dict(snapshot.nodes)
        self.edges: dict[str, GraphEdge] = dict(snapshot.edges)
        self._ops: list[PatchOp] = []

    def _tables(self) -> dict[str, dict[str, Element]]:
        return {"node": self.nodes, "edge": self.edges}

    def _record(self, op: PatchOp) -> None:
        _apply_op(self._tables(), op)
        self._ops.append(op)

    def insert(self, target: Target, key: str, value: Element) -> None:
        table = self._tables()[target]
        self._record(PatchOp(target, key, None, value, len(table)))

    def replace(self, target: Target, key: str, value: Element) -> None:
        table = self._tables()[target]
        self._record(PatchOp(target, key, table[key], value, list(table).index(key)))

    def delete(self, target: Target, key: str) -> None:
        table = self._tables()[target]
        self._record(PatchOp(target, key, table[key], None, list(table).index(key)))

    def mark(self) -> int:
        return len(self._ops)

    def rollback(self, mark: int) -> None:
        """Undo every op recorded after *mark*."""
        tables = self._tables()
        for op in reversed(self._ops[mark:]):
            _apply_op(tables, op.inverted())
        del self._ops[mark:]

    @property
    def patch(self) -> Patch:
        return tuple(self._ops)

    def snapshot(self) -> GraphSnapshot:
        if not self._ops:
            return self._base
        return self._base.model_copy(update={"nodes": dict(self.nodes), "edges": dict(self.edges)})
