"""Types for the flow interpreter."""

import re
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from flowhub_core.registry import NodeDefinition
from flowhub_core.types import ExecutionStatus

# Mapping key that marks a concurrent fan-out element
PARALLEL_KEY = "$parallel"

# Edge a loop controller returns to leave the loop
LOOP_EXIT_EDGE = "exit"

# Edge errors are routed to when a node or the next branch declares it
ERROR_EDGE = "error"

_PLACEHOLDER = re.compile(r"^\$\{([A-Za-z0-9_.\[\]]+)\}$")
_INDEX = re.compile(r"\[(\d+)\]")


@dataclass
class StepRecord:
    """One node invocation in a run's step log."""

    node_id: str
    input: dict[str, Any] = field(default_factory=dict)
    output: Any = None
    edge: str | None = None
    duration_ms: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    error: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "input": self.input,
            "output": self.output,
            "edge": self.edge,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepRecord":
        timestamp = data.get("timestamp")
        return cls(
            node_id=data["node_id"],
            input=data.get("input") or {},
            output=data.get("output"),
            edge=data.get("edge"),
            duration_ms=data.get("duration_ms", 0),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(UTC),
            error=data.get("error"),
        )


@dataclass
class FlowSnapshot:
    """Point-in-time copy of a flow instance for observers and the store."""

    flow_instance_id: str
    status: ExecutionStatus
    state: dict[str, Any]
    steps: list[StepRecord]
    workflow_id: str | None = None
    active_pauses: list[str] = field(default_factory=list)
    error: dict[str, Any] | None = None

    @property
    def last_output(self) -> Any:
        return self.steps[-1].output if self.steps else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "flow_instance_id": self.flow_instance_id,
            "workflow_id": self.workflow_id,
            "status": self.status.value,
            "state": self.state,
            "steps": [step.to_dict() for step in self.steps],
            "active_pauses": list(self.active_pauses),
            "error": self.error,
        }


def generate_flow_instance_id() -> str:
    """Generate unique flow instance ID."""
    return f"flow-{uuid.uuid4().hex[:12]}"


def get_path(data: Any, path: str) -> Any:
    """Read a dotted path with ``[index]`` list access, None when missing.

    Example:
        get_path({"items": [{"name": "a"}]}, "items[0].name") -> "a"
    """
    current = data
    for part in _INDEX.sub(r".\1", path).split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            current = getattr(current, part, None)
    return current


def resolve_placeholders(value: Any, state: Mapping[str, Any]) -> Any:
    """Replace whole-string ``${path}`` placeholders with values from state.

    Containers are rebuilt recursively; other values pass through unchanged.
    """
    if isinstance(value, str):
        match = _PLACEHOLDER.match(value)
        if match:
            return get_path(state, match.group(1))
        return value
    if isinstance(value, list):
        return [resolve_placeholders(item, state) for item in value]
    if isinstance(value, Mapping):
        return {key: resolve_placeholders(item, state) for key, item in value.items()}
    return value


def is_parameterized_call(element: Any, scope: Mapping[str, Any]) -> bool:
    """``{node_id: params}`` where node_id resolves and params is a mapping or None."""
    if not isinstance(element, Mapping) or len(element) != 1:
        return False
    (key, params), = element.items()
    return isinstance(key, str) and key in scope and (params is None or isinstance(params, Mapping))


def is_parallel(element: Any) -> bool:
    return isinstance(element, Mapping) and len(element) == 1 and PARALLEL_KEY in element


def is_branch(element: Any, scope: Mapping[str, Any]) -> bool:
    return (
        isinstance(element, Mapping)
        and not is_parallel(element)
        and not is_parameterized_call(element, scope)
    )


def count_nodes(element: Any, scope: Mapping[str, Any] | None = None) -> int:
    """Count node references in a graph, including every branch.

    A ``$parallel`` element counts once for its own step plus its branches.
    """
    scope = scope or {}
    if isinstance(element, (str, NodeDefinition)) or callable(element):
        return 1
    if isinstance(element, list):
        return sum(count_nodes(item, scope) for item in element)
    if is_parallel(element):
        return 1 + sum(count_nodes(branch, scope) for branch in element[PARALLEL_KEY])
    if is_parameterized_call(element, scope):
        return 1
    if isinstance(element, Mapping):
        return sum(count_nodes(target, scope) for target in element.values())
    return 0
