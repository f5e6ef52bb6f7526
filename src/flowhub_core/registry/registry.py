"""Node Registry - central catalog of all available nodes."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from flowhub_core.errors import create_error
from flowhub_core.logging import FlowLogger
from flowhub_core.telemetry import get_metrics
from flowhub_core.types import LogLevel

from .types import NodeDefinition, RegistrySummary

# Ids starting with this prefix are reserved for graph constructs ($parallel)
RESERVED_PREFIX = "$"


class NodeRegistry:
    """Central registry of node definitions.

    Provides:
    - Validated registration
    - Lookup by id
    - Read-only scope snapshots for the interpreter
    - Search for node suggestions
    """

    def __init__(self, logger: FlowLogger | None = None):
        """Initialize node registry.

        Args:
            logger: Optional logger
        """
        self._nodes: dict[str, NodeDefinition] = {}
        self._logger = logger

    def _log(self, level: LogLevel, message: str, context: dict[str, Any] | None = None) -> None:
        """Log message if logger available."""
        if self._logger:
            self._logger._log(level, "registry", message, context)

    def register(self, definition: NodeDefinition | Mapping[str, Any]) -> NodeDefinition:
        """Register a node definition.

        Args:
            definition: NodeDefinition or plain mapping accepted by
                ``NodeDefinition.from_dict``

        Returns:
            The registered definition

        Raises:
            FlowError: INVALID_NODE_DEFINITION or DUPLICATE_NODE_ID
        """
        if isinstance(definition, Mapping):
            definition = NodeDefinition.from_dict(definition)

        self._validate(definition)

        if definition.id in self._nodes:
            raise create_error("DUPLICATE_NODE_ID", node_id=definition.id)

        self._nodes[definition.id] = definition

        metrics = get_metrics()
        if metrics:
            metrics.record_node_registration(1)

        self._log(LogLevel.DEBUG, f"Registered node '{definition.id}'")
        return definition

    def _validate(self, definition: NodeDefinition) -> None:
        node_id = definition.id
        if not isinstance(node_id, str) or not node_id.strip():
            raise create_error(
                "INVALID_NODE_DEFINITION",
                reason="id must be a non-empty string",
                node_id=None,
            )
        if node_id.startswith(RESERVED_PREFIX):
            raise create_error(
                "INVALID_NODE_DEFINITION",
                reason=f"id '{node_id}' uses the reserved '{RESERVED_PREFIX}' prefix",
                node_id=node_id,
            )
        if not callable(definition.implementation):
            raise create_error(
                "INVALID_NODE_DEFINITION",
                reason=f"implementation of '{node_id}' is not callable",
                node_id=node_id,
            )

    def unregister(self, node_id: str) -> bool:
        """Remove a node definition.

        Returns:
            True if the node was registered
        """
        removed = self._nodes.pop(node_id, None)
        if removed is None:
            return False

        metrics = get_metrics()
        if metrics:
            metrics.record_node_registration(-1)

        self._log(LogLevel.DEBUG, f"Unregistered node '{node_id}'")
        return True

    def get(self, node_id: str) -> NodeDefinition | None:
        """Get node by id.

        Args:
            node_id: Node identifier

        Returns:
            NodeDefinition or None if not found
        """
        return self._nodes.get(node_id)

    def resolve(self, node_id: str) -> NodeDefinition:
        """Get node by id, raise if not found.

        Raises:
            FlowError: NOT_FOUND if node doesn't exist
        """
        definition = self._nodes.get(node_id)
        if definition is None:
            raise create_error("NOT_FOUND", kind="Node", identifier=node_id)
        return definition

    def scope(self) -> Mapping[str, NodeDefinition]:
        """Read-only snapshot of id -> definition for one run.

        Later registrations do not leak into an already taken snapshot.
        """
        return MappingProxyType(dict(self._nodes))

    def list(self) -> list[NodeDefinition]:
        return list(self._nodes.values())

    def find(
        self,
        query: str | None = None,
        category: str | None = None,
        tag: str | None = None,
    ) -> list[NodeDefinition]:
        """Search nodes by text, category and tag.

        Args:
            query: Case-insensitive substring of id, name or description
            category: Only nodes declaring this category
            tag: Only nodes declaring this tag

        Returns:
            Matching definitions in registration order
        """
        results = []
        query_lower = query.lower() if query else None

        for node in self._nodes.values():
            if category is not None and category not in node.categories:
                continue
            if tag is not None and tag not in node.tags:
                continue
            if query_lower and not (
                query_lower in node.id.lower()
                or query_lower in node.name.lower()
                or query_lower in node.description.lower()
            ):
                continue
            results.append(node)

        return results

    def summary(self) -> RegistrySummary:
        """Count registered nodes overall and per category."""
        categories: dict[str, int] = {}
        for node in self._nodes.values():
            for category in node.categories:
                categories[category] = categories.get(category, 0) + 1
        return RegistrySummary(total_nodes=len(self._nodes), categories=categories)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)
