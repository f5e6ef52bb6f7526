"""OpenTelemetry metrics and tracing for flow runs."""

from .instrumentation import instrument_node, instrument_run, record_result
from .metrics import METRIC_PREFIX, FlowMetrics, MetricLabels
from .setup import get_metrics, get_telemetry, reset_telemetry, setup_telemetry

__all__ = [
    "METRIC_PREFIX",
    "FlowMetrics",
    "MetricLabels",
    "get_metrics",
    "get_telemetry",
    "instrument_node",
    "instrument_run",
    "record_result",
    "reset_telemetry",
    "setup_telemetry",
]
