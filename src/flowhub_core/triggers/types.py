"""Trigger Manager types."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

# Called by a handler when its trigger fires; returns the flow instance id
FireCallback = Callable[[Any], Awaitable[str]]

# event -> initial State
StateTransform = Callable[[Any], dict[str, Any]]


@dataclass
class TriggerDefinition:
    """Binds an event source to a node graph."""

    trigger_id: str
    type: str
    nodes: list[Any]
    config: dict[str, Any] = field(default_factory=dict)
    transform: StateTransform | None = None
    workflow_id: str | None = None


@runtime_checkable
class TriggerTypeHandler(Protocol):
    """Event source for one trigger type.

    ``activate`` starts listening and returns an opaque context that is
    handed back to ``deactivate``.
    """

    async def activate(self, trigger: TriggerDefinition, fire: FireCallback) -> Any: ...

    async def deactivate(self, trigger: TriggerDefinition, context: Any) -> None: ...


@dataclass
class TriggerSummary:
    """Listing entry for ``TriggerManager.list_triggers``."""

    trigger_id: str
    type: str
    active: bool
    workflow_id: str | None = None
    fire_count: int = 0
