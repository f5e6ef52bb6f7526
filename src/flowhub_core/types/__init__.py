"""Shared types for the flow engine.

Import from here rather than submodules:
    from flowhub_core.types import ExecutionStatus, LogLevel, ValidationResult
"""

from .enums import (
    ExecutionMode,
    ExecutionStatus,
    FlowEventType,
    LogFormat,
    LogLevel,
    QueueBackend,
)
from .validation import ValidationIssue, ValidationResult

__all__ = [
    # Enums
    "LogLevel",
    "LogFormat",
    "ExecutionStatus",
    "ExecutionMode",
    "QueueBackend",
    "FlowEventType",
    # Validation
    "ValidationIssue",
    "ValidationResult",
]
