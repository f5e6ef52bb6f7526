"""Run Manager types."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from flowhub_core.engine import FlowSnapshot, StepRecord
from flowhub_core.types import ExecutionMode, ExecutionStatus

if TYPE_CHECKING:
    from flowhub_core.engine import FlowInterpreter


@dataclass
class RunHandle:
    """Directory entry for one flow instance.

    ``interpreter`` stays None while a queued run is pending. ``record`` is
    the stored outcome of a pending run that another process picked up.
    """

    flow_instance_id: str
    nodes: list[Any]
    scope: Mapping[str, Any]
    mode: ExecutionMode
    initial_state: dict[str, Any] = field(default_factory=dict)
    workflow_id: str | None = None
    interpreter: FlowInterpreter | None = None
    task: asyncio.Task[Any] | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    done: asyncio.Event = field(default_factory=asyncio.Event)
    _status: ExecutionStatus = ExecutionStatus.PENDING
    record: ExecutionRecord | None = None

    @property
    def status(self) -> ExecutionStatus:
        if self.interpreter is not None:
            return self.interpreter.status
        return self._status

    def snapshot(self) -> FlowSnapshot:
        if self.interpreter is not None:
            return self.interpreter.snapshot()
        if self.record is not None:
            return self.record.to_snapshot()
        return FlowSnapshot(
            flow_instance_id=self.flow_instance_id,
            workflow_id=self.workflow_id,
            status=self._status,
            state=dict(self.initial_state),
            steps=[],
        )


@dataclass
class RunProgress:
    """Progress view of one run."""

    status: ExecutionStatus
    completed_steps: int
    total_steps: int
    last_output: Any = None


@dataclass
class RunSummary:
    """Listing entry for ``RunManager.list_runs``."""

    flow_instance_id: str
    status: ExecutionStatus
    mode: ExecutionMode
    created_at: datetime
    workflow_id: str | None = None
    completed_at: datetime | None = None


class ExecutionRecord(BaseModel):
    """Durable outcome of a run, as kept by an ExecutionStore."""

    flow_instance_id: str
    workflow_id: str | None = None
    status: ExecutionStatus
    state: dict[str, Any] = Field(default_factory=dict)
    steps: list[dict[str, Any]] = Field(default_factory=list)
    error: dict[str, Any] | None = None
    active_pauses: list[str] = Field(default_factory=list)
    started_at: datetime
    completed_at: datetime | None = None
    attempts: int = 1

    @classmethod
    def from_snapshot(
        cls,
        snapshot: FlowSnapshot,
        started_at: datetime,
        completed_at: datetime | None = None,
        attempts: int = 1,
    ) -> ExecutionRecord:
        return cls(
            flow_instance_id=snapshot.flow_instance_id,
            workflow_id=snapshot.workflow_id,
            status=snapshot.status,
            state=snapshot.state,
            steps=[step.to_dict() for step in snapshot.steps],
            error=snapshot.error,
            active_pauses=list(snapshot.active_pauses),
            started_at=started_at,
            completed_at=completed_at,
            attempts=attempts,
        )

    def to_snapshot(self) -> FlowSnapshot:
        return FlowSnapshot(
            flow_instance_id=self.flow_instance_id,
            workflow_id=self.workflow_id,
            status=self.status,
            state=dict(self.state),
            steps=[StepRecord.from_dict(step) for step in self.steps],
            active_pauses=list(self.active_pauses),
            error=self.error,
        )
