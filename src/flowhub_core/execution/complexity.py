"""Complexity analysis for choosing immediate vs queued dispatch."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from flowhub_core.engine import PARALLEL_KEY, count_nodes
from flowhub_core.engine.types import is_parameterized_call, is_parallel
from flowhub_core.registry import NodeDefinition
from flowhub_core.types import ExecutionMode


@dataclass
class ComplexityReport:
    """Result of analyzing a node graph."""

    node_count: int
    requires_human_input: bool
    recommended_mode: ExecutionMode
    reasons: list[str] = field(default_factory=list)


class ComplexityAnalyzer:
    """Decide whether a graph should run inline or through the job queue.

    A graph is queued when it has more than ``node_threshold`` node
    references or references any node that waits for a person.
    """

    def __init__(self, node_threshold: int = 10):
        self.node_threshold = node_threshold

    def analyze(self, nodes: list[Any], scope: Mapping[str, Any]) -> ComplexityReport:
        node_count = count_nodes(nodes, scope)
        human = any(
            isinstance(definition, NodeDefinition) and definition.requires_human_input
            for definition in self._definitions(nodes, scope)
        )

        reasons = []
        if node_count > self.node_threshold:
            reasons.append(f"{node_count} nodes exceeds threshold of {self.node_threshold}")
        if human:
            reasons.append("graph waits for human input")

        return ComplexityReport(
            node_count=node_count,
            requires_human_input=human,
            recommended_mode=ExecutionMode.QUEUED if reasons else ExecutionMode.IMMEDIATE,
            reasons=reasons,
        )

    def _definitions(self, element: Any, scope: Mapping[str, Any]):
        if isinstance(element, NodeDefinition):
            yield element
        elif isinstance(element, str):
            if element in scope:
                yield scope[element]
        elif isinstance(element, list):
            for item in element:
                yield from self._definitions(item, scope)
        elif is_parallel(element):
            for branch in element[PARALLEL_KEY]:
                yield from self._definitions(branch, scope)
        elif is_parameterized_call(element, scope):
            yield scope[next(iter(element))]
        elif isinstance(element, Mapping):
            for target in element.values():
                yield from self._definitions(target, scope)
