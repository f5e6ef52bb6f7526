"""Async context managers that time runs and node invocations.

Both yield a mutable result mapping. The body reports a non-success outcome
through ``record_result``; an exception escaping the body is recorded as an
error with its ``code`` (or class name).
"""

import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from opentelemetry.trace import Status, StatusCode

from .metrics import MetricLabels
from .setup import get_telemetry


@asynccontextmanager
async def _measured(
    span_name: str,
    attributes: dict[str, str],
    on_finish: Callable[[Any, float, dict[str, Any]], None],
) -> AsyncIterator[dict[str, Any]]:
    telemetry = get_telemetry() or {}
    tracer, flow_metrics = telemetry.get("tracer"), telemetry.get("metrics")
    result: dict[str, Any] = {"status": MetricLabels.STATUS_SUCCESS, "error_code": None}

    span = tracer.start_span(span_name, attributes=attributes) if tracer else None
    started = time.perf_counter()
    try:
        yield result
    except Exception as e:
        record_result(result, MetricLabels.STATUS_ERROR, getattr(e, "code", type(e).__name__))
        if span:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
        raise
    finally:
        if flow_metrics:
            on_finish(flow_metrics, time.perf_counter() - started, result)
        if span:
            if result["status"] == MetricLabels.STATUS_SUCCESS:
                span.set_status(Status(StatusCode.OK))
            span.end()


@asynccontextmanager
async def instrument_run(
    flow_instance_id: str, workflow_id: str | None = None
) -> AsyncIterator[dict[str, Any]]:
    """Trace one run and feed the run counters; ad-hoc runs are labelled ``adhoc``."""
    label = workflow_id or "adhoc"
    flow_metrics = (get_telemetry() or {}).get("metrics")
    if flow_metrics:
        flow_metrics.record_run_start(label)

    def finish(m: Any, elapsed: float, result: dict[str, Any]) -> None:
        m.record_run_end(
            workflow_id=label,
            duration_seconds=elapsed,
            status=result["status"],
            error_code=result["error_code"],
        )

    attributes = {"flow.instance_id": flow_instance_id, "workflow.id": label}
    async with _measured(f"run:{label}", attributes, finish) as result:
        yield result


@asynccontextmanager
async def instrument_node(flow_instance_id: str, node_id: str) -> AsyncIterator[dict[str, Any]]:
    def finish(m: Any, elapsed: float, result: dict[str, Any]) -> None:
        m.record_node_invocation(
            node_id=node_id,
            duration_seconds=elapsed,
            status=result["status"],
            error_code=result["error_code"],
        )

    attributes = {"flow.instance_id": flow_instance_id, "node.id": node_id}
    async with _measured(f"node:{node_id}", attributes, finish) as result:
        yield result


def record_result(result: dict[str, Any], status: str, error_code: str | None = None) -> None:
    """Set the outcome reported when the instrumented block exits."""
    result["status"] = status
    if error_code:
        result["error_code"] = error_code
