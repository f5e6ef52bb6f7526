"""Built-in nodes."""

from .builtin import (
    BUILTIN_NODES,
    CONDITION,
    DELAY,
    HUMAN_TEXT_INPUT,
    LOG_MESSAGE,
    LOOP,
    SENTIMENT,
    register_builtin_nodes,
)

__all__ = [
    "BUILTIN_NODES",
    "register_builtin_nodes",
    "LOG_MESSAGE",
    "HUMAN_TEXT_INPUT",
    "SENTIMENT",
    "CONDITION",
    "DELAY",
    "LOOP",
]
