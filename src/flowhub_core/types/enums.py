"""Shared enumerations for the flow engine."""

from enum import Enum


class LogLevel(str, Enum):
    """Log verbosity level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    """Log output format."""

    COLORED = "colored"
    JSON = "json"


class ExecutionStatus(str, Enum):
    """Flow instance status."""

    PENDING = "pending"  # Queued, not yet picked up by a worker
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transitions are possible."""
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )


class ExecutionMode(str, Enum):
    """How the run manager dispatches a run."""

    IMMEDIATE = "immediate"
    QUEUED = "queued"
    AUTO = "auto"


class QueueBackend(str, Enum):
    """Job queue backend."""

    MEMORY = "memory"
    REDIS = "redis"


class FlowEventType(str, Enum):
    """Event types published on a flow instance topic."""

    PROGRESS = "progress"
    STEP = "step"
    COMPLETE = "complete"
    ERROR = "error"
