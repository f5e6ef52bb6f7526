"""Node Registry types."""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from flowhub_core.errors import create_error

# (params, context) -> value | edge name | {edge: value}; may be a coroutine function
NodeImplementation = Callable[..., Any]


@dataclass(frozen=True)
class NodePort:
    """Declared input or output of a node."""

    name: str
    type: str = "any"
    description: str = ""
    required: bool = False
    default: Any = None


@dataclass(frozen=True)
class NodeEdge:
    """Declared outcome a node can branch on."""

    name: str
    description: str = ""


@dataclass(frozen=True)
class NodeDefinition:
    """Complete node definition.

    Immutable once registered. ``id`` is the key nodes are referenced by in
    a graph.
    """

    # Identity (required fields first)
    id: str
    implementation: NodeImplementation

    version: str = "1.0.0"
    name: str = ""
    description: str = ""
    categories: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()

    # Contract
    inputs: tuple[NodePort, ...] = ()
    outputs: tuple[NodePort, ...] = ()
    edges: tuple[NodeEdge, ...] = ()

    # Nodes that wait on a person are dispatched through the queue in auto mode
    requires_human_input: bool = False

    @property
    def edge_names(self) -> frozenset[str]:
        """Names of all declared edges."""
        return frozenset(edge.name for edge in self.edges)

    def has_edge(self, name: str) -> bool:
        return name in self.edge_names

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NodeDefinition":
        """Build a definition from a plain mapping.

        Ports and edges may be given as mappings or bare names; a bare string
        for ``categories`` or ``tags`` is a single entry.

        Args:
            data: Mapping with at least ``id`` and ``implementation``

        Returns:
            NodeDefinition instance

        Raises:
            FlowError: INVALID_NODE_DEFINITION for a malformed port or edge
        """
        try:
            inputs = tuple(_port(p) for p in data.get("inputs", ()))
            outputs = tuple(_port(p) for p in data.get("outputs", ()))
            edges = tuple(_edge(e) for e in data.get("edges", ()))
        except (TypeError, ValueError) as e:
            raise create_error(
                "INVALID_NODE_DEFINITION", reason=str(e), node_id=data.get("id")
            ) from e

        return cls(
            id=data.get("id"),  # type: ignore[arg-type]
            implementation=data.get("implementation"),  # type: ignore[arg-type]
            version=data.get("version", "1.0.0"),
            name=data.get("name", ""),
            description=data.get("description", ""),
            categories=_names(data.get("categories", ())),
            tags=_names(data.get("tags", ())),
            inputs=inputs,
            outputs=outputs,
            edges=edges,
            requires_human_input=bool(data.get("requires_human_input", False)),
        )


def _names(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def _port(value: Any) -> NodePort:
    if isinstance(value, NodePort):
        return value
    if isinstance(value, str):
        return NodePort(name=value)
    return NodePort(**value)


def _edge(value: Any) -> NodeEdge:
    if isinstance(value, NodeEdge):
        return value
    if isinstance(value, str):
        return NodeEdge(name=value)
    return NodeEdge(**value)


@dataclass
class RegistrySummary:
    """Counts used for logging and metrics after bulk registration."""

    total_nodes: int
    categories: dict[str, int] = field(default_factory=dict)
