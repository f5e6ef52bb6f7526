"""Suspension Hub types."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from flowhub_core.types import FlowEventType


@dataclass
class PauseToken:
    """One outstanding suspension.

    The future is resolved with the resume payload or rejected with
    CANCELLED. A token is removed from the hub before its future settles.
    """

    pause_id: str
    future: asyncio.Future[Any]
    flow_instance_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def summary(self) -> "PauseSummary":
        return PauseSummary(
            pause_id=self.pause_id,
            flow_instance_id=self.flow_instance_id,
            details=dict(self.details),
            created_at=self.created_at,
        )


@dataclass(frozen=True)
class PauseSummary:
    """Observer view of a pause token (no future)."""

    pause_id: str
    flow_instance_id: str | None
    details: dict[str, Any]
    created_at: datetime


class ResumeMessage(BaseModel):
    """Message published on the resume channel for cross-process delivery."""

    pause_id: str = Field(description="Pause token to resolve")
    resume_data: Any = Field(default=None, description="Payload handed to the suspended node")
    origin: str = Field(description="Hub instance that published the message")


class FlowEvent(BaseModel):
    """Event published on a flow instance topic."""

    type: FlowEventType
    flow_instance_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_terminal(self) -> bool:
        return self.type in (FlowEventType.COMPLETE, FlowEventType.ERROR)
