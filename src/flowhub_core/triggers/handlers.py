"""Built-in trigger type handlers."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from flowhub_core.errors import create_error

from .types import FireCallback, TriggerDefinition

logger = logging.getLogger(__name__)


class IntervalTriggerHandler:
    """Fires every ``config["interval_seconds"]``.

    Optional ``config["max_fires"]`` stops the timer after that many firings.
    The event passed to the transform is ``{"fired_at": iso, "count": n}``.
    """

    type = "interval"

    async def activate(self, trigger: TriggerDefinition, fire: FireCallback) -> asyncio.Task[None]:
        interval = trigger.config.get("interval_seconds")
        if not isinstance(interval, (int, float)) or isinstance(interval, bool) or interval <= 0:
            raise create_error(
                "INVALID_TRIGGER",
                reason=f"trigger '{trigger.trigger_id}' needs a positive interval_seconds",
            )
        max_fires = trigger.config.get("max_fires")
        return asyncio.create_task(
            self._tick(trigger, fire, float(interval), max_fires),
            name=f"trigger:{trigger.trigger_id}",
        )

    async def deactivate(self, trigger: TriggerDefinition, context: Any) -> None:
        if isinstance(context, asyncio.Task) and not context.done():
            context.cancel()
            try:
                await context
            except asyncio.CancelledError:
                pass

    async def _tick(
        self,
        trigger: TriggerDefinition,
        fire: FireCallback,
        interval: float,
        max_fires: int | None,
    ) -> None:
        count = 0
        while max_fires is None or count < max_fires:
            await asyncio.sleep(interval)
            count += 1
            try:
                await fire({"fired_at": datetime.now(UTC).isoformat(), "count": count})
            except Exception as e:
                logger.error(f"Interval trigger '{trigger.trigger_id}' failed to fire: {e}")


class EventTriggerHandler:
    """Fires when ``emit`` is called with the trigger's ``config["event"]``."""

    type = "event"

    def __init__(self) -> None:
        self._listeners: dict[str, dict[str, FireCallback]] = {}

    async def activate(self, trigger: TriggerDefinition, fire: FireCallback) -> str:
        event_name = trigger.config.get("event")
        if not isinstance(event_name, str) or not event_name:
            raise create_error(
                "INVALID_TRIGGER",
                reason=f"trigger '{trigger.trigger_id}' needs an 'event' name",
            )
        self._listeners.setdefault(event_name, {})[trigger.trigger_id] = fire
        return event_name

    async def deactivate(self, trigger: TriggerDefinition, context: Any) -> None:
        listeners = self._listeners.get(context, {})
        listeners.pop(trigger.trigger_id, None)
        if not listeners:
            self._listeners.pop(context, None)

    async def emit(self, event_name: str, payload: Any = None) -> list[str]:
        """Fire every active trigger listening for ``event_name``.

        Returns:
            Flow instance ids of the started runs
        """
        started = []
        for trigger_id, fire in list(self._listeners.get(event_name, {}).items()):
            try:
                started.append(await fire(payload))
            except Exception as e:
                logger.error(f"Event trigger '{trigger_id}' failed on '{event_name}': {e}")
        return started

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, {}))
