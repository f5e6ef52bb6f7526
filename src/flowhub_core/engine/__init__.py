"""Flow interpreter - node graph execution."""

from .context import NodeContext
from .interpreter import EventCallback, FlowInterpreter, StatusCallback
from .state import StateHistory
from .types import (
    ERROR_EDGE,
    LOOP_EXIT_EDGE,
    PARALLEL_KEY,
    FlowSnapshot,
    StepRecord,
    count_nodes,
    generate_flow_instance_id,
    get_path,
    resolve_placeholders,
)

__all__ = [
    "FlowInterpreter",
    "NodeContext",
    "StatusCallback",
    "EventCallback",
    "StateHistory",
    "StepRecord",
    "FlowSnapshot",
    "PARALLEL_KEY",
    "LOOP_EXIT_EDGE",
    "ERROR_EDGE",
    "count_nodes",
    "generate_flow_instance_id",
    "get_path",
    "resolve_placeholders",
]
