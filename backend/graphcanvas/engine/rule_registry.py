from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping, Optional
import inspect

import networkx as nx

from graphcanvas.models.preset import InferenceRule


@dataclass
class RuleContext:
    """Context passed to each rule function during evaluation."""
    graph: nx.MultiDiGraph
    node_id: str
    rule: InferenceRule


RuleFunction = Callable[[RuleContext], list[str]]


def register_rule(kind: str) -> Callable[[RuleFunction], RuleFunction]:
    """Decorator that marks a function as the evaluator for an inference rule kind."""
    def decorator(func: RuleFunction) -> RuleFunction:
        func._is_rule = True
        func._rule_kind = kind
        return func
    return decorator


class RuleRegistry:
    """Registry for rule functions, looked up by rule kind."""

    def __init__(self) -> None:
        self._rules: dict[str, RuleFunction] = {}

    def register(self, kind: str, func: RuleFunction) -> None:
        """Register a callable under the given rule kind."""
        if kind in self._rules:
            raise ValueError(f"Rule kind '{kind}' is already registered")
        self._rules[kind] = func

    def register_from_module(self, module: object) -> None:
        """Scan a module for callables marked with @register_rule and register them."""
        for _name, obj in inspect.getmembers(module, callable):
            if getattr(obj, "_is_rule", False):
                self.register(obj._rule_kind, obj)

    def get(self, kind: str) -> Optional[RuleFunction]:
        return self._rules.get(kind)

    def list_kinds(self) -> list[str]:
        """Return a sorted list of all registered rule kinds."""
        return sorted(self._rules.keys())

    def freeze(self) -> Mapping[str, RuleFunction]:
        """Read-only view of the table; later registrations are not visible through it."""
        return MappingProxyType(dict(self._rules))
