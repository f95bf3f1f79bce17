"""InferenceEngine: derives edges and node attributes from a preset's ontology mappings.

The engine is stateless: ``recompute`` reads a snapshot, returns a result and
stores nothing. Derived edges are never written into the document or its history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

import networkx as nx

from graphcanvas.engine import inference_rules
from graphcanvas.engine.constraints import ConstraintChecker
from graphcanvas.engine.rule_registry import RuleContext, RuleFunction, RuleRegistry
from graphcanvas.errors import ElementNotFound, InferenceNonConvergence, MultiplicityViolation
from graphcanvas.models.graph import GraphEdge, GraphSnapshot
from graphcanvas.models.preset import SEVERITY_ORDER, WILDCARD, OntologyMapping, Preset

logger = logging.getLogger(__name__)

DEFAULT_MAX_PASSES = 3


def _build_rule_table() -> Mapping[str, RuleFunction]:
    registry = RuleRegistry()
    registry.register_from_module(inference_rules)
    return registry.freeze()


RULES: Mapping[str, RuleFunction] = _build_rule_table()


@dataclass
class InferenceResult:
    edges: list[GraphEdge] = field(default_factory=list)
    attributes: dict[str, dict[str, Any]] = field(default_factory=dict)
    passes: int = 0
    converged: bool = True
    warnings: list[InferenceNonConvergence] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "edges": [e.model_dump(by_alias=True, mode="json") for e in self.edges],
            "attributes": self.attributes,
            "passes": self.passes,
            "converged": self.converged,
            "warnings": [w.to_dict() for w in self.warnings],
        }


class InferenceEngine:
    """Evaluates ontology mappings in ``(priority, declaration order)``.

    When two mappings derive an edge for the same (source, target) pair, the one
    evaluated last wins; attribute maps are merged the same way. A derived edge must
    pass the same endpoint and multiplicity checks as an authored one. Results are
    ordered most severe first.
    """

    def __init__(
        self,
        preset: Preset,
        default_max_passes: int = DEFAULT_MAX_PASSES,
        rules: Mapping[str, RuleFunction] = RULES,
    ) -> None:
        self.preset = preset
        self.rules = rules
        self.max_passes = preset.behavior.inference_max_passes or default_max_passes
        ordered = sorted(enumerate(preset.ontology_mappings), key=lambda pair: (pair[1].priority, pair[0]))
        self._mappings = [mapping for _, mapping in ordered]
        self.checker = ConstraintChecker(preset)
        self._ontology_class = {nt.id: nt.ontology_class for nt in preset.node_types}
        self._node_types = {nt.id: nt for nt in preset.node_types}
        self._relationships = {r.id: r for r in preset.relationships}

    @property
    def enabled(self) -> bool:
        return self.preset.behavior.enable_inference and bool(self._mappings)

    def mappings_for(self, type_id: str) -> list[OntologyMapping]:
        ontology_class = self._ontology_class.get(type_id)
        return [
            m for m in self._mappings
            if m.source_type == type_id or (m.ontology_class is not None and m.ontology_class == ontology_class)
        ]

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def recompute(self, snapshot: GraphSnapshot) -> InferenceResult:
        if not self.enabled:
            return InferenceResult()

        derived: dict[str, GraphEdge] = {}
        attributes: dict[str, dict[str, Any]] = {}
        converged = False
        passes = 0

        while passes < self.max_passes:
            passes += 1
            graph = self._graph(snapshot, derived.values())
            next_derived, next_attributes = self._evaluate(snapshot, graph)
            if next_derived == derived and next_attributes == attributes:
                converged = True
                break
            derived, attributes = next_derived, next_attributes

        result = InferenceResult(
            edges=sorted(derived.values(), key=_severity_key),
            attributes=attributes,
            passes=passes,
            converged=converged,
        )
        if not converged:
            message = f"Derived set still changing after {passes} pass(es); returning the last pass"
            logger.warning("Inference for preset %s: %s", self.preset.id, message)
            result.warnings.append(InferenceNonConvergence(passes=passes, message=message))
        logger.debug("Inference derived %d edge(s) in %d pass(es)", len(result.edges), passes)
        return result

    def node_inferences(self, snapshot: GraphSnapshot, node_id: str) -> dict[str, Any]:
        """Inferences touching a single node."""
        if node_id not in snapshot.nodes:
            raise ElementNotFound(f"Node '{node_id}' does not exist", element_id=node_id)
        result = self.recompute(snapshot)
        return {
            "node_id": node_id,
            "edges": [e for e in result.edges if node_id in (e.source, e.target)],
            "attributes": result.attributes.get(node_id, {}),
            "converged": result.converged,
        }

    def _graph(self, snapshot: GraphSnapshot, derived: Iterable[GraphEdge]) -> nx.MultiDiGraph:
        graph = nx.MultiDiGraph()
        for node in snapshot.nodes.values():
            graph.add_node(node.id, type=node.type_id, properties=node.properties)
        for edge in [*snapshot.edges.values(), *derived]:
            graph.add_edge(edge.source, edge.target, key=edge.id, type=edge.type_id, inferred=edge.inferred)
            rel = self._relationships.get(edge.type_id)
            if rel is not None and rel.directionality != "directed":
                graph.add_edge(edge.target, edge.source, key=f"{edge.id}~reverse", type=edge.type_id, inferred=edge.inferred)
        return graph

    def _evaluate(
        self,
        snapshot: GraphSnapshot,
        graph: nx.MultiDiGraph,
    ) -> tuple[dict[str, GraphEdge], dict[str, dict[str, Any]]]:
        authored = {(e.type_id, e.source, e.target) for e in snapshot.edges.values()}
        by_pair: dict[tuple[str, str], GraphEdge] = {}
        attributes: dict[str, dict[str, Any]] = {}

        for node in snapshot.nodes.values():
            for mapping in self.mappings_for(node.type_id):
                rule = mapping.rule
                evaluate = self.rules.get(rule.kind)
                if evaluate is None:
                    logger.warning("No evaluator for rule kind '%s' (mapping %s)", rule.kind, mapping.id)
                    continue

                targets = [
                    t for t in evaluate(RuleContext(graph=graph, node_id=node.id, rule=rule))
                    if t != node.id and _type_matches(rule.target_types, snapshot.nodes[t].type_id)
                ]
                if not targets:
                    continue
                if rule.attributes:
                    attributes.setdefault(node.id, {}).update(rule.attributes)
                if rule.derived_relationship is None:
                    continue

                rel = self._relationships[rule.derived_relationship]
                source_type = self._node_types[node.type_id]
                for target in targets:
                    if not self.checker.endpoints_fit(rel, source_type, self._node_types[snapshot.nodes[target].type_id]):
                        continue
                    if (rel.id, node.id, target) in authored:
                        continue
                    if rel.directionality != "directed" and (rel.id, target, node.id) in authored:
                        continue
                    key = (node.id, target)
                    by_pair.pop(key, None)
                    by_pair[key] = GraphEdge(
                        id=f"inferred--{mapping.id}--{node.id}--{target}",
                        type_id=rel.id,
                        source=node.id,
                        target=target,
                        properties={
                            "mappingId": mapping.id,
                            "priority": mapping.priority,
                            "severity": rule.severity,
                            "confidence": rule.confidence,
                        },
                        inferred=True,
                    )

        return self._within_multiplicity(snapshot, by_pair.values()), attributes

    def _within_multiplicity(self, snapshot: GraphSnapshot, candidates: Iterable[GraphEdge]) -> dict[str, GraphEdge]:
        """Drop derived edges that would exceed a relationship's multiplicity.

        Authored edges hold their slots first; derived edges then claim what is
        left in descending priority, ties broken by edge id.
        """
        kept: dict[str, GraphEdge] = {}
        for edge in sorted(candidates, key=lambda e: (-e.properties["priority"], e.id)):
            rel = self._relationships[edge.type_id]
            try:
                self.checker.check_multiplicity(rel, edge, {**snapshot.edges, **kept}, count_inferred=True)
            except MultiplicityViolation:
                logger.debug("Derived edge %s dropped: %s is %s", edge.id, rel.id, rel.multiplicity)
                continue
            kept[edge.id] = edge
        return {edge.id: edge for edge in sorted(kept.values(), key=lambda e: e.id)}

    # ------------------------------------------------------------------
    # Coverage
    # ------------------------------------------------------------------

    def sensor_coverage(self, snapshot: GraphSnapshot, result: Optional[InferenceResult] = None) -> dict[str, Any]:
        """Score how well monitoring nodes cover the graph.

        A sensor is any node whose type carries an ontology class that some
        mapping is keyed on. Its score is the highest confidence among the edges
        it derives, or 0 when it derives none; the overall score is the rounded mean.
        """
        result = result if result is not None else self.recompute(snapshot)
        sensor_classes = {m.ontology_class for m in self._mappings if m.ontology_class is not None}
        sensors = []
        for node in snapshot.nodes.values():
            if self._ontology_class.get(node.type_id) not in sensor_classes:
                continue
            derived = [e for e in result.edges if e.source == node.id]
            sensors.append({
                "nodeId": node.id,
                "typeId": node.type_id,
                "detects": sorted(e.target for e in derived),
                "coverageScore": max((e.properties["confidence"] for e in derived), default=0),
            })
        score = round(sum(s["coverageScore"] for s in sensors) / len(sensors)) if sensors else 0
        return {"score": score, "sensors": sensors}


def _severity_key(edge: GraphEdge) -> tuple[int, str]:
    return SEVERITY_ORDER.get(edge.properties.get("severity", "info"), len(SEVERITY_ORDER)), edge.id


def _type_matches(target_types: Optional[list[str]], type_id: str) -> bool:
    return target_types is None or WILDCARD in target_types or type_id in target_types
