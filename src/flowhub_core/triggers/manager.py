"""Trigger Manager - start runs from external events."""

from __future__ import annotations

import inspect
import uuid
from typing import Any

from flowhub_core.errors import FlowError, create_error
from flowhub_core.execution import RunManager
from flowhub_core.logging import FlowLogger
from flowhub_core.telemetry import MetricLabels, get_metrics
from flowhub_core.types import LogLevel

from .types import TriggerDefinition, TriggerSummary, TriggerTypeHandler


class TriggerManager:
    """Registry of triggers and the handlers that make them fire.

    Lifecycle: register a handler for a type, register triggers of that
    type, then activate them. Each firing builds an initial State and
    starts a run through the Run Manager.
    """

    def __init__(self, run_manager: RunManager, logger: FlowLogger | None = None):
        """Initialize trigger manager.

        Args:
            run_manager: Run manager that executes fired triggers
            logger: Optional logger
        """
        self._run_manager = run_manager
        self._logger = logger
        self._handlers: dict[str, TriggerTypeHandler] = {}
        self._triggers: dict[str, TriggerDefinition] = {}
        self._active: dict[str, Any] = {}  # trigger_id -> activation context
        self._fire_counts: dict[str, int] = {}

    def _log(self, level: LogLevel, message: str, context: dict[str, Any] | None = None) -> None:
        if self._logger:
            self._logger._log(level, "trigger", message, context)

    def register_trigger_type(self, type: str, handler: TriggerTypeHandler) -> None:
        """Add (or replace) the handler for a trigger type.

        Raises:
            FlowError: INVALID_TRIGGER if the handler lacks async
                ``activate``/``deactivate``
        """
        for method in ("activate", "deactivate"):
            if not inspect.iscoroutinefunction(getattr(handler, method, None)):
                raise create_error(
                    "INVALID_TRIGGER",
                    reason=f"handler for '{type}' must define async '{method}'",
                )

        if type in self._handlers:
            self._log(LogLevel.WARN, f"Trigger type handler for '{type}' is being replaced")
        self._handlers[type] = handler
        self._log(LogLevel.DEBUG, f"Added handler for trigger type '{type}'")

    def register(self, trigger: TriggerDefinition) -> None:
        """Register a trigger definition.

        Raises:
            FlowError: INVALID_TRIGGER for an unknown type or empty graph,
                DUPLICATE_TRIGGER_ID for a duplicate id
        """
        if not trigger.trigger_id:
            raise create_error("INVALID_TRIGGER", reason="trigger_id is required")
        if trigger.type not in self._handlers:
            raise create_error(
                "INVALID_TRIGGER",
                reason=f"no handler registered for trigger type '{trigger.type}'",
            )
        if not trigger.nodes:
            raise create_error(
                "INVALID_TRIGGER", reason=f"trigger '{trigger.trigger_id}' has no nodes"
            )
        if trigger.trigger_id in self._triggers:
            raise create_error("DUPLICATE_TRIGGER_ID", trigger_id=trigger.trigger_id)

        self._triggers[trigger.trigger_id] = trigger
        self._fire_counts[trigger.trigger_id] = 0
        self._log(
            LogLevel.INFO,
            f"Registered trigger '{trigger.trigger_id}' (type: {trigger.type})",
        )

    async def unregister(self, trigger_id: str) -> bool:
        """Deactivate and remove a trigger."""
        if trigger_id not in self._triggers:
            return False
        await self.deactivate(trigger_id)
        del self._triggers[trigger_id]
        self._fire_counts.pop(trigger_id, None)
        return True

    def get(self, trigger_id: str) -> TriggerDefinition | None:
        return self._triggers.get(trigger_id)

    def _get(self, trigger_id: str) -> TriggerDefinition:
        trigger = self._triggers.get(trigger_id)
        if trigger is None:
            raise create_error("NOT_FOUND", kind="Trigger", identifier=trigger_id)
        return trigger

    async def activate(self, trigger_id: str) -> bool:
        """Start listening for a trigger's events.

        Returns:
            False if the trigger was already active

        Raises:
            FlowError: NOT_FOUND for an unknown id
        """
        trigger = self._get(trigger_id)
        if trigger_id in self._active:
            return False

        async def fire(event: Any) -> str:
            return await self.fire(trigger_id, event)

        handler = self._handlers[trigger.type]
        self._active[trigger_id] = await handler.activate(trigger, fire)
        self._log(LogLevel.INFO, f"Trigger '{trigger_id}' activated")
        return True

    async def deactivate(self, trigger_id: str) -> bool:
        """Stop listening for a trigger's events.

        Returns:
            False if the trigger was not active
        """
        trigger = self._get(trigger_id)
        if trigger_id not in self._active:
            return False

        context = self._active.pop(trigger_id)
        await self._handlers[trigger.type].deactivate(trigger, context)
        self._log(LogLevel.INFO, f"Trigger '{trigger_id}' deactivated")
        return True

    def is_active(self, trigger_id: str) -> bool:
        return trigger_id in self._active

    async def fire(self, trigger_id: str, event: Any = None) -> str:
        """Start a run for a trigger event.

        Args:
            trigger_id: Trigger to fire
            event: Event payload handed to the transform

        Returns:
            Flow instance id of the started run

        Raises:
            FlowError: NOT_FOUND for an unknown id, TRIGGER_TRANSFORM_FAILED
                if the transform raises or returns a non-mapping
        """
        trigger = self._get(trigger_id)
        initial_state = self._initial_state(trigger, event)

        flow_instance_id = f"trigger-{trigger_id}-{uuid.uuid4().hex[:8]}"
        try:
            await self._run_manager.start(
                trigger.nodes,
                initial_state,
                flow_instance_id=flow_instance_id,
                workflow_id=trigger.workflow_id or trigger_id,
            )
        except FlowError:
            self._record(trigger_id, MetricLabels.STATUS_ERROR)
            raise

        self._fire_counts[trigger_id] = self._fire_counts.get(trigger_id, 0) + 1
        self._record(trigger_id, MetricLabels.STATUS_SUCCESS)
        self._log(
            LogLevel.INFO,
            f"Trigger '{trigger_id}' fired run '{flow_instance_id}'",
            {"trigger_id": trigger_id, "flow_instance_id": flow_instance_id},
        )
        return flow_instance_id

    def _initial_state(self, trigger: TriggerDefinition, event: Any) -> dict[str, Any]:
        if trigger.transform is None:
            return {"triggerEvent": event}

        try:
            state = trigger.transform(event)
        except Exception as e:
            self._record(trigger.trigger_id, MetricLabels.STATUS_ERROR)
            raise create_error(
                "TRIGGER_TRANSFORM_FAILED", trigger_id=trigger.trigger_id, error_message=str(e)
            ) from e

        if state is None:
            return {}
        if not isinstance(state, dict):
            self._record(trigger.trigger_id, MetricLabels.STATUS_ERROR)
            raise create_error(
                "TRIGGER_TRANSFORM_FAILED",
                trigger_id=trigger.trigger_id,
                error_message=f"transform returned {type(state).__name__}, expected dict",
            )
        return state

    def _record(self, trigger_id: str, status: str) -> None:
        metrics = get_metrics()
        if metrics:
            metrics.record_trigger_fire(trigger_id, status)

    def list_triggers(self) -> list[TriggerSummary]:
        return [
            TriggerSummary(
                trigger_id=trigger.trigger_id,
                type=trigger.type,
                active=trigger.trigger_id in self._active,
                workflow_id=trigger.workflow_id,
                fire_count=self._fire_counts.get(trigger.trigger_id, 0),
            )
            for trigger in self._triggers.values()
        ]

    async def shutdown(self) -> None:
        """Deactivate every active trigger."""
        for trigger_id in list(self._active):
            try:
                await self.deactivate(trigger_id)
            except Exception as e:
                self._log(LogLevel.ERROR, f"Failed to deactivate trigger '{trigger_id}': {e}")
