"""Run Manager - lifecycle of flow instances."""

from .complexity import ComplexityAnalyzer, ComplexityReport
from .manager import RunManager
from .store import ExecutionStore, InMemoryExecutionStore
from .types import ExecutionRecord, RunHandle, RunProgress, RunSummary

__all__ = [
    "RunManager",
    "RunHandle",
    "RunProgress",
    "RunSummary",
    "ExecutionRecord",
    "ExecutionStore",
    "InMemoryExecutionStore",
    "ComplexityAnalyzer",
    "ComplexityReport",
]
