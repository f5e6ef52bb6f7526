"""Node execution context."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from flowhub_core.registry import NodeDefinition

if TYPE_CHECKING:
    from flowhub_core.hub import SuspensionHub

    from .interpreter import EventCallback, FlowInterpreter
    from .types import StepRecord


class NodeContext:
    """What a node implementation sees of its run.

    State access goes through ``get``/``set``/``update``; ``state`` is a
    read-only live view. Every change through ``set``/``update`` is an entry
    in the run's State history, which ``undo``, ``redo`` and ``go_to_state``
    move through.
    """

    def __init__(
        self,
        interpreter: FlowInterpreter,
        definition: NodeDefinition,
        input: Any = None,
    ):
        self._interpreter = interpreter
        self.definition = definition
        self.input = input  # Output of the previous node
        self._timeout: Any = None  # asyncio.Timeout wrapping this invocation
        self._suspension_cancelled = False

    @property
    def node_id(self) -> str:
        return self.definition.id

    @property
    def flow_instance_id(self) -> str:
        return self._interpreter.flow_instance_id

    @property
    def workflow_id(self) -> str | None:
        return self._interpreter.workflow_id

    @property
    def hub(self) -> SuspensionHub:
        return self._interpreter.hub

    @property
    def state(self) -> Mapping[str, Any]:
        return MappingProxyType(self._interpreter._state)

    def get(self, key: str, default: Any = None) -> Any:
        return self._interpreter._state.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._interpreter._state[key] = value
        self._interpreter._history.commit()

    def update(self, values: Mapping[str, Any]) -> None:
        self._interpreter._state.update(values)
        self._interpreter._history.commit()

    def undo(self) -> dict[str, Any]:
        """Restore the previous State entry; returns a copy of the State."""
        return self._interpreter._history.undo()

    def redo(self) -> dict[str, Any]:
        return self._interpreter._history.redo()

    def go_to_state(self, index: int) -> dict[str, Any]:
        """Restore the State entry at ``index`` (0 is the initial State).

        Out-of-range indexes leave the State unchanged.

        Returns:
            Copy of the State after the move
        """
        return self._interpreter._history.go_to(index)

    def get_history(self) -> list[dict[str, Any]]:
        return self._interpreter._history.entries()

    @property
    def history_index(self) -> int:
        return self._interpreter._history.index

    @property
    def steps(self) -> tuple[StepRecord, ...]:
        """Steps the run recorded before this node, oldest first."""
        return tuple(self._interpreter._prior_steps())

    async def request_pause(
        self,
        details: dict[str, Any] | None = None,
        pause_id: str | None = None,
    ) -> Any:
        """Suspend this node until the hub resumes it.

        Args:
            details: Description for whoever resumes (prompt, form, ...)
            pause_id: Explicit id; one is generated when omitted

        Returns:
            The resume payload, exactly as delivered

        Raises:
            FlowError: CANCELLED if the run is cancelled while suspended
        """
        return await self._interpreter._suspend(self, details, pause_id)

    def emit(self, name: str, data: Any = None) -> None:
        """Publish a custom progress event on the run's topic."""
        self._interpreter._emit_custom(self.node_id, name, data)

    def on(self, name: str, callback: EventCallback) -> Callable[[], None]:
        """Listen to this run's events until the run ends.

        Args:
            name: Event type ("step", "progress", "complete", "error") or the
                name given to ``emit``
            callback: Called (and awaited if needed) with each matching FlowEvent

        Returns:
            Function that removes the listener before the run ends
        """
        return self._interpreter._listen(self.node_id, name, callback)
