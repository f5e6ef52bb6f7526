"""Error code registry."""

import string
from typing import Any

from .errors import ErrorCategory, ErrorTemplate, FlowError

_C = ErrorCategory

BUILTIN_TEMPLATES: tuple[ErrorTemplate, ...] = (
    # Node registry and node execution
    ErrorTemplate(
        "INVALID_NODE_DEFINITION",
        _C.VALIDATION,
        "Invalid node definition: {reason}",
        detail="Node definition '{node_id}' was rejected at registration",
        suggestion="Provide a non-empty string 'id' and a callable 'implementation'",
    ),
    ErrorTemplate(
        "DUPLICATE_NODE_ID",
        _C.VALIDATION,
        "Node '{node_id}' is already registered",
        suggestion="Unregister the existing node or choose a different id",
    ),
    ErrorTemplate(
        "UNKNOWN_NODE",
        _C.NODE,
        "Node '{node_id}' is not registered",
        detail="The graph references '{node_id}' but it is not in the run scope",
        suggestion="Register the node before starting the run",
    ),
    ErrorTemplate(
        "NODE_EXECUTION_ERROR",
        _C.NODE,
        "Node '{node_id}' failed: {error_message}",
        detail="{error_type}: {error_message}",
    ),
    ErrorTemplate(
        "NODE_TIMEOUT",
        _C.NODE,
        "Node '{node_id}' timed out after {timeout_seconds}s",
        suggestion="Increase execution.node_timeout or make the node faster",
        retryable=True,
    ),
    ErrorTemplate(
        "AMBIGUOUS_EDGE",
        _C.NODE,
        "Node '{node_id}' produced more than one edge: {edges}",
        detail="At most one edge may be selected per node invocation",
        suggestion="Return a single edge from the node implementation",
    ),
    # Runs
    ErrorTemplate(
        "NOT_FOUND",
        _C.EXECUTION,
        "{kind} '{identifier}' not found",
        detail="'{identifier}' is unknown to this process",
        suggestion="Query the durable execution record if the run lives elsewhere",
    ),
    ErrorTemplate("CANCELLED", _C.EXECUTION, "Execution cancelled", detail="{reason}"),
    ErrorTemplate("INVALID_GRAPH", _C.VALIDATION, "Invalid node graph: {reason}"),
    # Suspension
    ErrorTemplate(
        "DUPLICATE_PAUSE_ID",
        _C.SUSPENSION,
        "Pause '{pause_id}' is already registered",
        suggestion="Use a unique pause id per suspension",
    ),
    ErrorTemplate(
        "CHANNEL_UNAVAILABLE",
        _C.SYSTEM,
        "Resume channel is not connected",
        detail="{detail}",
        suggestion="Check the Redis URL and that the server is reachable",
        retryable=True,
    ),
    # Triggers
    ErrorTemplate("INVALID_TRIGGER", _C.TRIGGER, "Invalid trigger: {reason}"),
    ErrorTemplate("DUPLICATE_TRIGGER_ID", _C.TRIGGER, "Trigger '{trigger_id}' is already registered"),
    ErrorTemplate(
        "TRIGGER_TRANSFORM_FAILED",
        _C.TRIGGER,
        "Trigger '{trigger_id}' could not build the initial state",
        detail="{error_message}",
        suggestion="Check the trigger's transform against the event payload",
    ),
    # Infrastructure
    ErrorTemplate(
        "QUEUE_UNAVAILABLE",
        _C.SYSTEM,
        "Job queue is not available",
        detail="{detail}",
        suggestion="Configure a job queue or start the run in immediate mode",
        retryable=True,
    ),
    ErrorTemplate(
        "INTERNAL_ERROR",
        _C.SYSTEM,
        "Internal error",
        detail="An unexpected error occurred: {detail}",
    ),
    ErrorTemplate(
        "CONFIG_INVALID",
        _C.SYSTEM,
        "Invalid configuration",
        detail="{detail}",
        suggestion="Check the configuration file for errors",
    ),
)


def _fill(text: str | None, context: dict[str, Any]) -> str | None:
    """Format ``text`` from context; any unknown field leaves it unformatted."""
    if text is None:
        return None
    names = {name for _, name, _, _ in string.Formatter().parse(text) if name}
    if not names.issubset(context):
        return text
    return text.format(**context)


class ErrorRegistry:
    """Maps error codes to templates and builds ``FlowError`` instances."""

    def __init__(self, templates: tuple[ErrorTemplate, ...] = BUILTIN_TEMPLATES) -> None:
        self._templates = {template.code: template for template in templates}

    def get_template(self, code: str) -> ErrorTemplate | None:
        return self._templates.get(code)

    def register(self, template: ErrorTemplate) -> None:
        """Add a template, replacing any existing one with the same code."""
        self._templates[template.code] = template

    def list_codes(self) -> list[str]:
        return sorted(self._templates)

    def create(
        self,
        code: str,
        context: dict[str, Any] | None = None,
        cause: FlowError | None = None,
    ) -> FlowError:
        """Build the error for ``code``.

        A ``detail`` entry in ``context`` replaces the template detail.

        Raises:
            ValueError: If ``code`` has no template
        """
        template = self._templates.get(code)
        if template is None:
            raise ValueError(f"Unknown error code: {code}")

        context = context or {}
        detail = context.get("detail") or _fill(template.detail, context)

        return FlowError(
            code=code,
            category=template.category,
            message=_fill(template.message, context) or f"Error {code}",
            detail=detail,
            suggestion=_fill(template.suggestion, context),
            retryable=template.retryable,
            node_id=context.get("node_id"),
            flow_instance_id=context.get("flow_instance_id"),
            cause=cause,
        )
