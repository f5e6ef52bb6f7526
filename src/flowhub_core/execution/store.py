"""Execution store for persisting run outcomes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import OrderedDict

from flowhub_core.types import ExecutionStatus

from .types import ExecutionRecord


class ExecutionStore(ABC):
    """Abstract base class for execution storage."""

    @abstractmethod
    async def save(self, record: ExecutionRecord) -> None:
        """Save (or replace) an execution record."""

    @abstractmethod
    async def get(self, flow_instance_id: str) -> ExecutionRecord | None:
        """Get an execution record by flow instance id."""

    @abstractmethod
    async def list(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | None = None,
        limit: int | None = None,
    ) -> list[ExecutionRecord]:
        """List records, newest first."""

    @abstractmethod
    async def delete(self, flow_instance_id: str) -> bool:
        """Delete a record. Returns True if it existed."""


class InMemoryExecutionStore(ExecutionStore):
    """In-memory execution store with LRU eviction."""

    def __init__(self, max_records: int = 1000):
        """Initialize store.

        Args:
            max_records: Maximum number of records to keep
        """
        self.max_records = max_records
        self._records: OrderedDict[str, ExecutionRecord] = OrderedDict()

    async def save(self, record: ExecutionRecord) -> None:
        # Move to end if exists (LRU)
        if record.flow_instance_id in self._records:
            self._records.move_to_end(record.flow_instance_id)
        self._records[record.flow_instance_id] = record

        while len(self._records) > self.max_records:
            self._records.popitem(last=False)

    async def get(self, flow_instance_id: str) -> ExecutionRecord | None:
        return self._records.get(flow_instance_id)

    async def list(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | None = None,
        limit: int | None = None,
    ) -> list[ExecutionRecord]:
        records = list(self._records.values())

        if workflow_id:
            records = [r for r in records if r.workflow_id == workflow_id]
        if status:
            records = [r for r in records if r.status == status]

        records.sort(key=lambda r: r.started_at, reverse=True)
        return records[:limit] if limit is not None else records

    async def delete(self, flow_instance_id: str) -> bool:
        return self._records.pop(flow_instance_id, None) is not None

    def __len__(self) -> int:
        return len(self._records)
