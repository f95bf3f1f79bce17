"""Maps validated STIX objects onto graph mutations for a preset."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from graphcanvas.errors import ImportIssue, ImportWarning
from graphcanvas.importers.stix_validators import ValidatedObject
from graphcanvas.models.graph import GraphEdge, GraphNode, GraphSnapshot, Position
from graphcanvas.models.mutation import AddEdge, AddNode, Mutation
from graphcanvas.models.preset import Preset
from graphcanvas.models.stix import RELATIONSHIP_TYPES

DEFAULT_TYPE_MAPPING: Mapping[str, str] = MappingProxyType({
    "attack-pattern": "attack-pattern",
    "campaign": "campaign",
    "course-of-action": "mitigation",
    "grouping": "group",
    "identity": "asset",
    "indicator": "indicator",
    "infrastructure": "asset",
    "intrusion-set": "threat-actor",
    "location": "location",
    "malware": "malware",
    "threat-actor": "threat-actor",
    "tool": "tool",
    "vulnerability": "vulnerability",
})

DEFAULT_RELATIONSHIP_MAPPING: Mapping[str, str] = MappingProxyType({
    "uses": "uses",
    "targets": "targets",
    "mitigates": "mitigates",
    "indicates": "indicates",
    "attributed-to": "attributed-to",
    "located-at": "located-at",
    "exploits": "exploits",
    "variant-of": "variant-of",
    "derived-from": "derived-from",
    "related-to": "related-to",
    "delivers": "delivers",
    "originates-from": "located-at",
    "compromises": "targets",
    "authored-by": "attributed-to",
    "based-on": "derived-from",
    "communicates-with": "related-to",
    "duplicate-of": "related-to",
})

SIGHTING_RELATIONSHIP = "sighted-at"

# Fields turned into graph structure; everything else is kept under properties["stix"].
_NODE_FIELDS = frozenset({"type", "id", "name"})
_RELATIONSHIP_FIELDS = frozenset({"type", "id", "relationship_type", "source_ref", "target_ref"})
_SIGHTING_FIELDS = frozenset({"type", "id", "sighting_of_ref", "where_sighted_refs"})


@dataclass(frozen=True)
class ImportOptions:
    include_types: frozenset[str] = frozenset()
    exclude_types: frozenset[str] = frozenset()
    include_relationships: bool = True
    type_mapping: Mapping[str, str] = field(default_factory=lambda: DEFAULT_TYPE_MAPPING)
    relationship_mapping: Mapping[str, str] = field(default_factory=lambda: DEFAULT_RELATIONSHIP_MAPPING)
    sighting_relationship: str = SIGHTING_RELATIONSHIP
    grid_columns: int = 8
    grid_spacing: float = 180.0

    def accepts(self, stix_type: str) -> bool:
        if self.include_types and stix_type not in self.include_types:
            return False
        return stix_type not in self.exclude_types


@dataclass(frozen=True)
class CandidateItem:
    index: int
    object_id: str
    object_type: str
    mutation: Mutation


@dataclass
class Candidate:
    """Everything an import would add, before staging against the store."""

    items: list[CandidateItem] = field(default_factory=list)
    errors: list[ImportIssue] = field(default_factory=list)
    warnings: list[ImportWarning] = field(default_factory=list)
    skipped: int = 0
    by_type: Counter = field(default_factory=Counter)

    def __bool__(self) -> bool:
        return bool(self.items)


def node_label(obj: dict[str, Any]) -> str:
    name = obj.get("name")
    if isinstance(name, str) and name.strip():
        return name
    suffix = str(obj.get("id", "")).split("--", 1)[-1][:8] or "unknown"
    return f"{obj.get('type', 'object')} ({suffix})"


def _leftovers(obj: dict[str, Any], consumed: frozenset[str]) -> dict[str, Any]:
    return {key: value for key, value in obj.items() if key not in consumed}


def grid_position(slot: int, options: ImportOptions) -> Position:
    row, column = divmod(slot, options.grid_columns)
    return Position(x=column * options.grid_spacing, y=row * options.grid_spacing)


def map_to_graph(
    valid_objects: Iterable[ValidatedObject],
    preset: Preset,
    options: ImportOptions,
    snapshot: GraphSnapshot,
) -> Candidate:
    candidate = Candidate()
    objects = list(valid_objects)
    staged_nodes: set[str] = set()
    filtered: set[str] = set()
    slot = len(snapshot.nodes)

    def error(item: ValidatedObject, message: str, code: str) -> None:
        candidate.errors.append(ImportIssue(
            index=item.index, message=message, code=code, object_id=item.object_id, object_type=item.object_type,
        ))

    def warn(item: ValidatedObject, message: str, code: str) -> None:
        candidate.warnings.append(ImportWarning(index=item.index, message=message, code=code, object_id=item.object_id))

    # --- Domain objects -> nodes ---
    for item in objects:
        if item.object_type in RELATIONSHIP_TYPES:
            continue
        candidate.by_type[item.object_type] += 1
        if not options.accepts(item.object_type):
            candidate.skipped += 1
            filtered.add(item.object_id)
            continue

        type_id = options.type_mapping.get(item.object_type)
        if type_id is None or preset.node_type(type_id) is None:
            error(item, f"STIX type '{item.object_type}' has no node type in preset '{preset.id}'", "unmapped-type")
            continue
        if item.object_id in snapshot.nodes:
            warn(item, f"Node '{item.object_id}' already exists; kept as is", "existing-node")
            continue

        node = GraphNode(
            id=item.object_id,
            type_id=type_id,
            properties={
                "name": node_label(item.raw),
                "stixType": item.object_type,
                "stix": _leftovers(item.raw, _NODE_FIELDS),
            },
            position=grid_position(slot, options),
        )
        slot += 1
        staged_nodes.add(node.id)
        candidate.items.append(CandidateItem(item.index, item.object_id, item.object_type, AddNode(node=node)))

    known = staged_nodes | set(snapshot.nodes)

    def resolve(item: ValidatedObject, refs: list[str]) -> bool:
        for ref in refs:
            if ref in known:
                continue
            if ref in filtered:
                candidate.skipped += 1
                warn(item, f"References filtered object '{ref}'; skipped", "filtered-reference")
            else:
                error(item, f"References unknown object '{ref}'", "dangling-reference")
            return False
        return True

    def add_edge(item: ValidatedObject, edge: GraphEdge) -> None:
        if edge.id in snapshot.edges:
            warn(item, f"Edge '{edge.id}' already exists; kept as is", "existing-edge")
            return
        candidate.items.append(CandidateItem(item.index, edge.id, item.object_type, AddEdge(edge=edge)))

    # --- Relationships and sightings -> edges ---
    for item in objects:
        if item.object_type not in RELATIONSHIP_TYPES:
            continue
        candidate.by_type[item.object_type] += 1
        if not options.include_relationships or not options.accepts(item.object_type):
            candidate.skipped += 1
            continue

        if item.object_type == "relationship":
            stix_rel = item.raw["relationship_type"]
            rel_id = options.relationship_mapping.get(stix_rel)
            if rel_id is None or preset.relationship(rel_id) is None:
                error(item, f"Relationship type '{stix_rel}' has no counterpart in preset '{preset.id}'", "unmapped-relationship")
                continue
            if not resolve(item, [item.raw["source_ref"], item.raw["target_ref"]]):
                continue
            add_edge(item, GraphEdge(
                id=item.object_id,
                type_id=rel_id,
                source=item.raw["source_ref"],
                target=item.raw["target_ref"],
                properties={"stixType": stix_rel, "stix": _leftovers(item.raw, _RELATIONSHIP_FIELDS)},
            ))
            continue

        rel_id = options.sighting_relationship
        if preset.relationship(rel_id) is None:
            error(item, f"Preset '{preset.id}' has no '{rel_id}' relationship for sightings", "unmapped-relationship")
            continue
        where = list(item.raw.get("where_sighted_refs") or [])
        if not where:
            warn(item, "Sighting has no where_sighted_refs; nothing to connect", "empty-sighting")
            continue
        observed = item.raw["sighting_of_ref"]
        if not resolve(item, [observed, *where]):
            continue
        properties: dict[str, Any] = {"stixType": "sighting", "stix": _leftovers(item.raw, _SIGHTING_FIELDS)}
        if item.raw.get("count") is not None:
            properties["count"] = item.raw["count"]
        for position, target in enumerate(where):
            edge_id = item.object_id if len(where) == 1 else f"{item.object_id}#{position}"
            add_edge(item, GraphEdge(id=edge_id, type_id=rel_id, source=observed, target=target, properties=properties))

    return candidate
