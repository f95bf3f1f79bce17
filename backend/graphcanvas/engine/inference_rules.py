"""Built-in inference rule kinds.

Each rule is a pure function of the graph view, the source node and the rule
definition, and returns candidate target node ids in a deterministic order.
Target-type filtering and relationship checks are left to the engine.
"""

from __future__ import annotations

import networkx as nx

from graphcanvas.engine.rule_registry import RuleContext, register_rule
from graphcanvas.models.preset import PathStep


def _dedupe(ids: list[str]) -> list[str]:
    return list(dict.fromkeys(ids))


def step_neighbors(graph: nx.MultiDiGraph, node_id: str, step: PathStep) -> list[str]:
    """Nodes one hop away from *node_id* along edges of ``step.relationship``."""
    found: list[str] = []
    if step.direction in ("out", "any"):
        found.extend(v for _, v, rel in graph.out_edges(node_id, data="type") if rel == step.relationship)
    if step.direction in ("in", "any"):
        found.extend(u for u, _, rel in graph.in_edges(node_id, data="type") if rel == step.relationship)
    return _dedupe(found)


def _node_order(graph: nx.MultiDiGraph) -> dict[str, int]:
    return {node_id: position for position, node_id in enumerate(graph.nodes)}


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@register_rule("neighbors")
def neighbors(ctx: RuleContext) -> list[str]:
    """Union of the one-hop neighbours reached by each ``via`` step from the source."""
    found: list[str] = []
    for step in ctx.rule.via:
        found.extend(step_neighbors(ctx.graph, ctx.node_id, step))
    return _dedupe(found)


@register_rule("path")
def path(ctx: RuleContext) -> list[str]:
    """Nodes at the end of the ``via`` steps followed in sequence."""
    frontier = [ctx.node_id]
    for step in ctx.rule.via:
        frontier = _dedupe([n for current in frontier for n in step_neighbors(ctx.graph, current, step)])
        if not frontier:
            break
    return [n for n in frontier if n != ctx.node_id]


@register_rule("transitive")
def transitive(ctx: RuleContext) -> list[str]:
    """Everything reachable by repeating the first ``via`` step."""
    step = ctx.rule.via[0]
    chain = nx.DiGraph()
    chain.add_nodes_from(ctx.graph.nodes)
    chain.add_edges_from((u, v) for u, v, rel in ctx.graph.edges(data="type") if rel == step.relationship)

    if step.direction == "out":
        reachable = nx.descendants(chain, ctx.node_id)
    elif step.direction == "in":
        reachable = nx.ancestors(chain, ctx.node_id)
    else:
        reachable = nx.node_connected_component(chain.to_undirected(), ctx.node_id) - {ctx.node_id}

    order = _node_order(ctx.graph)
    return sorted(reachable, key=order.__getitem__)


@register_rule("property-match")
def property_match(ctx: RuleContext) -> list[str]:
    """Nodes whose ``matchProperty`` value equals the source node's."""
    prop = ctx.rule.match_property
    value = ctx.graph.nodes[ctx.node_id]["properties"].get(prop)
    if value is None or value == "":
        return []
    return [
        node_id for node_id, properties in ctx.graph.nodes(data="properties")
        if node_id != ctx.node_id and properties.get(prop) == value
    ]


@register_rule("by-type")
def by_type(ctx: RuleContext) -> list[str]:
    """Every other node; the engine narrows this down with ``targetTypes``."""
    return [node_id for node_id in ctx.graph.nodes if node_id != ctx.node_id]
