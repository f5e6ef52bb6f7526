"""Run-scoped logging for flow execution.

``FlowLogger`` writes one line per event, either colored for terminals or
as JSON objects for log shippers. ``RunLogger`` and ``NodeLogger`` bind the
flow instance and node ids so every line can be correlated.
"""

import json
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TextIO

from flowhub_core.types import LogFormat, LogLevel

from . import colors

COMPONENTS = ("run", "node", "hub", "queue", "trigger", "registry")

_SEVERITY = {LogLevel.DEBUG: 10, LogLevel.INFO: 20, LogLevel.WARN: 30, LogLevel.ERROR: 40}

_LEVEL_COLORS = {
    LogLevel.DEBUG: colors.LIGHT_BLUE,
    LogLevel.INFO: colors.CYAN,
    LogLevel.WARN: colors.YELLOW,
    LogLevel.ERROR: colors.RED,
}


@dataclass
class LogConfig:
    """Logger configuration.

    ``components`` switches individual components off; a component missing
    from the mapping is logged.
    """

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COLORED
    show_params: bool = True
    show_results: bool = True
    truncate_at: int = 200
    components: dict[str, bool] = field(default_factory=lambda: dict.fromkeys(COMPONENTS, True))
    output: TextIO = field(default=sys.stdout)


class FlowLogger:
    """Root logger shared by every engine component."""

    def __init__(self, config: LogConfig | None = None):
        self.config = config or LogConfig()

    def run(self, flow_instance_id: str, workflow_id: str | None = None) -> "RunLogger":
        return RunLogger(self, flow_instance_id, workflow_id)

    def configure(self, config: LogConfig) -> None:
        """Swap the configuration in place, e.g. after a config reload."""
        self.config = config

    def enabled(self, level: LogLevel, component: str) -> bool:
        if _SEVERITY[level] < _SEVERITY[self.config.level]:
            return False
        return self.config.components.get(component, True)

    def _truncate(self, value: Any) -> str:
        text = str(value)
        limit = self.config.truncate_at
        return text if len(text) <= limit else f"{text[:limit]}..."

    def _log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Write one event for ``component`` if its level and component are enabled."""
        if not self.enabled(level, component):
            return
        if self.config.format == LogFormat.JSON:
            line = self._as_json(level, component, message, context or {})
        else:
            line = self._as_colored(level, component, message, context or {})
        print(line, file=self.config.output)

    def _as_json(
        self, level: LogLevel, component: str, message: str, context: dict[str, Any]
    ) -> str:
        stamp = datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        entry = {"timestamp": stamp, "level": level.value, "component": component}
        entry["message"] = message
        return json.dumps({**entry, **context}, default=str)

    def _as_colored(
        self, level: LogLevel, component: str, message: str, context: dict[str, Any]
    ) -> str:
        tag = colors.COMPONENT_COLORS.get(component, colors.RESET)
        line = f"{tag}[{component.upper()}]{colors.RESET} {_LEVEL_COLORS[level]}{message}{colors.RESET}"
        if context and self.config.show_params:
            line += f" {colors.LIGHT_BLUE}{self._truncate(context)}{colors.RESET}"
        return line


class RunLogger:
    """Lifecycle events of one flow instance."""

    def __init__(self, parent: FlowLogger, flow_instance_id: str, workflow_id: str | None):
        self.parent = parent
        self.flow_instance_id = flow_instance_id
        self.workflow_id = workflow_id

    def _context(self, event: str, **extra: Any) -> dict[str, Any]:
        context: dict[str, Any] = {"event": event, "flow_instance_id": self.flow_instance_id}
        if self.workflow_id:
            context["workflow_id"] = self.workflow_id
        return {**context, **extra}

    def _event(self, level: LogLevel, event: str, message: str, **extra: Any) -> None:
        self.parent._log(level, "run", message, self._context(event, **extra))

    def started(self, node_count: int) -> None:
        self._event(
            LogLevel.INFO,
            "run_started",
            f"Run '{self.flow_instance_id}' started ({node_count} nodes)",
            node_count=node_count,
        )

    def paused(self, pause_id: str | None = None) -> None:
        """Log a suspension; ``pause_id`` is None for a pause requested from outside."""
        waiting = f"awaiting '{pause_id}'" if pause_id else "pause requested"
        self._event(
            LogLevel.INFO,
            "run_paused",
            f"{colors.YELLOW}Run '{self.flow_instance_id}' paused ({waiting}){colors.RESET}",
            pause_id=pause_id,
        )

    def resumed(self, pause_id: str | None = None) -> None:
        self._event(
            LogLevel.INFO,
            "run_resumed",
            f"Run '{self.flow_instance_id}' resumed",
            pause_id=pause_id,
        )

    def completed(self, duration_ms: int, step_count: int) -> None:
        summary = f"{step_count} steps, {duration_ms / 1000:.2f}s"
        self._event(
            LogLevel.INFO,
            "run_completed",
            f"{colors.GREEN}Run '{self.flow_instance_id}' completed ({summary}) ✓{colors.RESET}",
            duration_ms=duration_ms,
            step_count=step_count,
        )

    def failed(self, error: Exception, duration_ms: int) -> None:
        self._event(
            LogLevel.ERROR,
            "run_failed",
            f"Run '{self.flow_instance_id}' failed ({duration_ms / 1000:.2f}s): {error}",
            duration_ms=duration_ms,
            error=str(error),
            error_type=type(error).__name__,
        )

    def cancelled(self, step_count: int) -> None:
        self._event(
            LogLevel.WARN,
            "run_cancelled",
            f"{colors.ORANGE}Run '{self.flow_instance_id}' cancelled after {step_count} steps{colors.RESET}",
            step_count=step_count,
        )

    def warning(self, message: str, **extra: Any) -> None:
        self._event(LogLevel.WARN, "run_warning", message, **extra)

    def node(self, node_id: str) -> "NodeLogger":
        return NodeLogger(self, node_id)


class NodeLogger:
    """Events of one node invocation inside a run."""

    def __init__(self, parent: RunLogger, node_id: str):
        self.parent = parent
        self.node_id = node_id

    @property
    def _root(self) -> FlowLogger:
        return self.parent.parent

    def _emit(self, level: LogLevel, message: str, event: str, **extra: Any) -> None:
        context = self.parent._context(event, node_id=self.node_id, **extra)
        self._root._log(level, "node", message, context)

    def started(self, params: dict[str, Any] | None = None) -> None:
        extra = {}
        if params and self._root.config.show_params:
            extra["params"] = self._root._truncate(params)
        self._emit(LogLevel.DEBUG, f"Node '{self.node_id}' started", "node_started", **extra)

    def completed(self, duration_ms: int, edge: str | None, output: Any = None) -> None:
        """Log a finished invocation with the edge it selected, if any."""
        extra: dict[str, Any] = {"duration_ms": duration_ms, "edge": edge}
        if output is not None and self._root.config.show_results:
            extra["output"] = self._root._truncate(output)
        route = f" -> {edge}" if edge else ""
        message = f"Node '{self.node_id}' completed ({duration_ms}ms){route} ✓"
        self._emit(LogLevel.INFO, message, "node_completed", **extra)

    def branched(self, edge: str) -> None:
        self._emit(LogLevel.DEBUG, f"Branch '{edge}' taken", "branch_taken", edge=edge)

    def failed(self, error: Exception, routed_to_error_edge: bool = False) -> None:
        """Log a failed invocation; a failure handled by an 'error' edge is a warning."""
        if routed_to_error_edge:
            level, note = LogLevel.WARN, " (routed to 'error' edge)"
        else:
            level, note = LogLevel.ERROR, ""
        self._emit(
            level,
            f"Node '{self.node_id}' failed: {error}{note}",
            "node_failed",
            error=str(error),
            error_type=type(error).__name__,
        )
