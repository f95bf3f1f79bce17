"""Preset-derived constraints checked before any mutation is committed."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Mapping, Sequence
from urllib.parse import urlparse

from graphcanvas.errors import (
    CapacityExceeded,
    DanglingReference,
    EndpointTypeViolation,
    MultiplicityViolation,
    PropertyViolation,
    UnknownNodeType,
    UnknownRelationshipType,
)
from graphcanvas.models.graph import GraphEdge, GraphNode
from graphcanvas.models.preset import (
    WILDCARD,
    NodeTypeDefinition,
    Preset,
    PropertyDefinition,
    RelationshipDefinition,
    ValidationRule,
)


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == []


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_date(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    for parse in (date.fromisoformat, datetime.fromisoformat):
        try:
            parse(text)
            return True
        except ValueError:
            continue
    return False


def _is_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _type_error(prop: PropertyDefinition, value: Any) -> str | None:
    kind = prop.type
    if kind == "string" and not isinstance(value, str):
        return "must be a string"
    if kind == "number" and not _is_number(value):
        return "must be a number"
    if kind == "boolean" and not isinstance(value, bool):
        return "must be a boolean"
    if kind == "date" and not _is_date(value):
        return "must be an ISO-8601 date"
    if kind == "url" and not _is_url(value):
        return "must be an http(s) URL"
    if kind == "enum" and value not in (prop.options or []):
        return f"must be one of {prop.options}"
    if kind == "multiselect":
        if not isinstance(value, list) or any(v not in (prop.options or []) for v in value):
            return f"must be a list drawn from {prop.options}"
    return None


def _rule_error(rule: ValidationRule, value: Any) -> str | None:
    kind, limit = rule.rule, rule.value
    if kind == "pattern":
        ok = isinstance(value, str) and re.search(str(limit), value) is not None
    elif kind == "min":
        ok = _is_number(value) and value >= limit
    elif kind == "max":
        ok = _is_number(value) and value <= limit
    elif kind == "min-length":
        ok = hasattr(value, "__len__") and len(value) >= limit
    elif kind == "max-length":
        ok = hasattr(value, "__len__") and len(value) <= limit
    elif kind == "one-of":
        ok = value in limit
    else:
        ok = True
    if ok:
        return None
    return rule.message or f"fails {kind} {limit!r}"


def _declared(types: list[str], type_id: str) -> bool:
    return WILDCARD in types or type_id in types


def _fits(rel: RelationshipDefinition, source: NodeTypeDefinition, target: NodeTypeDefinition) -> bool:
    if not (_declared(rel.source_types, source.id) and _declared(rel.target_types, target.id)):
        return False
    if source.outgoing_relationships is not None and rel.id not in source.outgoing_relationships:
        return False
    if target.incoming_relationships is not None and rel.id not in target.incoming_relationships:
        return False
    return True


class ConstraintChecker:
    """Checks nodes and edges against the active preset, raising a typed rejection."""

    def __init__(self, preset: Preset) -> None:
        self.preset = preset
        self._node_types = {nt.id: nt for nt in preset.node_types}
        self._relationships = {r.id: r for r in preset.relationships}

    def node_type(self, node: GraphNode) -> NodeTypeDefinition:
        node_type = self._node_types.get(node.type_id)
        if node_type is None:
            raise UnknownNodeType(
                f"Node type '{node.type_id}' is not defined by preset '{self.preset.id}'",
                element_id=node.id,
            )
        return node_type

    def relationship(self, edge: GraphEdge) -> RelationshipDefinition:
        rel = self._relationships.get(edge.type_id)
        if rel is None:
            raise UnknownRelationshipType(
                f"Relationship '{edge.type_id}' is not defined by preset '{self.preset.id}'",
                element_id=edge.id,
            )
        return rel

    # ------------------------------------------------------------------
    # Capacity
    # ------------------------------------------------------------------

    def check_node_capacity(self, node_count: int, element_id: str) -> None:
        limit = self.preset.behavior.max_nodes
        if node_count >= limit:
            raise CapacityExceeded(f"Document already holds the maximum of {limit} nodes", element_id=element_id)

    def check_edge_capacity(self, edge_count: int, element_id: str) -> None:
        limit = self.preset.behavior.max_edges
        if edge_count >= limit:
            raise CapacityExceeded(f"Document already holds the maximum of {limit} edges", element_id=element_id)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    def check_properties(
        self,
        element_id: str,
        definitions: list[PropertyDefinition],
        properties: Mapping[str, Any],
        rules: Sequence[ValidationRule] = (),
    ) -> None:
        for prop in definitions:
            value = properties.get(prop.id)
            if _is_blank(value):
                if prop.required:
                    raise PropertyViolation(
                        f"Missing required property '{prop.id}'",
                        element_id=element_id,
                        path=f"properties.{prop.id}",
                    )
                continue
            problem = _type_error(prop, value)
            if problem:
                raise PropertyViolation(
                    f"Property '{prop.id}' {problem}",
                    element_id=element_id,
                    path=f"properties.{prop.id}",
                )
        for rule in rules:
            value = properties.get(rule.property)
            if _is_blank(value):
                continue
            problem = _rule_error(rule, value)
            if problem:
                raise PropertyViolation(
                    f"Property '{rule.property}' {problem}",
                    element_id=element_id,
                    path=f"properties.{rule.property}",
                )

    def check_node(self, node: GraphNode) -> None:
        node_type = self.node_type(node)
        self.check_properties(node.id, node_type.properties, node.properties, node_type.validation_rules)

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def check_edge(
        self,
        edge: GraphEdge,
        nodes: Mapping[str, GraphNode],
        edges: Mapping[str, GraphEdge],
    ) -> None:
        rel = self.relationship(edge)
        for end in (edge.source, edge.target):
            if end not in nodes:
                raise DanglingReference(f"Edge '{edge.id}' references missing node '{end}'", element_id=edge.id)

        source_type = self.node_type(nodes[edge.source])
        target_type = self.node_type(nodes[edge.target])
        if not self.endpoints_fit(rel, source_type, target_type):
            raise EndpointTypeViolation(
                f"Relationship '{rel.id}' cannot connect '{source_type.id}' to '{target_type.id}'",
                element_id=edge.id,
            )

        self.check_multiplicity(rel, edge, edges)
        self.check_properties(edge.id, rel.properties, edge.properties)

    def endpoints_fit(self, rel: RelationshipDefinition, source: NodeTypeDefinition, target: NodeTypeDefinition) -> bool:
        """Declared endpoint types plus both node types' relationship allow-lists."""
        if _fits(rel, source, target):
            return True
        return rel.directionality != "directed" and _fits(rel, target, source)

    def check_multiplicity(
        self,
        rel: RelationshipDefinition,
        edge: GraphEdge,
        edges: Mapping[str, GraphEdge],
        count_inferred: bool = False,
    ) -> None:
        if rel.multiplicity == "many-to-many":
            return
        same_type = [
            e for e in edges.values()
            if e.type_id == rel.id and e.id != edge.id and (count_inferred or not e.inferred)
        ]
        directed = rel.directionality == "directed"

        def touches(node_id: str, e: GraphEdge) -> bool:
            return e.source == node_id or e.target == node_id

        if rel.multiplicity == "one-to-one":
            if directed:
                clash = any(e.source == edge.source or e.target == edge.target for e in same_type)
            else:
                clash = any(touches(edge.source, e) or touches(edge.target, e) for e in same_type)
        else:
            if directed:
                clash = any(e.target == edge.target for e in same_type)
            else:
                clash = any(touches(edge.target, e) for e in same_type)

        if clash:
            raise MultiplicityViolation(
                f"Relationship '{rel.id}' is {rel.multiplicity}; edge '{edge.id}' would exceed it",
                element_id=edge.id,
            )
