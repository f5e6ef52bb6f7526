"""Structured engine errors."""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Where an error originated."""

    NODE = "NODE"
    EXECUTION = "EXECUTION"
    VALIDATION = "VALIDATION"
    SUSPENSION = "SUSPENSION"
    TRIGGER = "TRIGGER"
    SYSTEM = "SYSTEM"


@dataclass
class FlowError(Exception):
    """Exception raised by every engine component.

    Carries a stable ``code`` for callers to branch on, a human summary and
    optional detail, and the node and run it belongs to. Step records and
    run events store the ``to_dict()`` form.
    """

    code: str
    category: ErrorCategory
    message: str
    detail: str | None = None
    suggestion: str | None = None
    retryable: bool = False
    node_id: str | None = None
    flow_instance_id: str | None = None
    cause: "FlowError | None" = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            name: getattr(self, name)
            for name in (
                "code",
                "message",
                "detail",
                "suggestion",
                "retryable",
                "node_id",
                "flow_instance_id",
            )
        }
        data["category"] = self.category.value
        data["timestamp"] = self.timestamp.isoformat()
        data["cause"] = self.cause.to_dict() if self.cause else None
        return data

    def with_context(
        self,
        node_id: str | None = None,
        flow_instance_id: str | None = None,
    ) -> "FlowError":
        """Copy of this error scoped to a node and run; omitted values are kept."""
        return replace(
            self,
            node_id=node_id or self.node_id,
            flow_instance_id=flow_instance_id or self.flow_instance_id,
        )


@dataclass(frozen=True)
class ErrorTemplate:
    """Text and defaults for one error code; ``{name}`` fields come from context."""

    code: str
    category: ErrorCategory
    message: str
    detail: str | None = None
    suggestion: str | None = None
    retryable: bool = False
