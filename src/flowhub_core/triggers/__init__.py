"""Trigger Manager - start runs from timers and events."""

from .handlers import EventTriggerHandler, IntervalTriggerHandler
from .manager import TriggerManager
from .types import (
    FireCallback,
    StateTransform,
    TriggerDefinition,
    TriggerSummary,
    TriggerTypeHandler,
)

__all__ = [
    "TriggerManager",
    "TriggerDefinition",
    "TriggerSummary",
    "TriggerTypeHandler",
    "FireCallback",
    "StateTransform",
    "IntervalTriggerHandler",
    "EventTriggerHandler",
]
