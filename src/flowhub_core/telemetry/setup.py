"""Process-wide OpenTelemetry setup.

Metrics are exported through a Prometheus reader and traces are sampled by
ratio. The result is cached; later calls return the first setup.
"""

from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from flowhub_core.config import TelemetryConfig

from .metrics import FlowMetrics

_telemetry: dict[str, Any] | None = None


def _meter(config: TelemetryConfig, resource: Resource) -> metrics.Meter:
    readers = [PrometheusMetricReader()] if config.metrics.prometheus_enabled else []
    provider = MeterProvider(metric_readers=readers, resource=resource)
    metrics.set_meter_provider(provider)
    return provider.get_meter(config.service_name, config.service_version)


def _tracer(config: TelemetryConfig, resource: Resource) -> trace.Tracer:
    provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(config.tracing.sample_rate))
    trace.set_tracer_provider(provider)
    return provider.get_tracer(config.service_name, config.service_version)


def setup_telemetry(config: TelemetryConfig | None = None) -> dict[str, Any]:
    """Install meter and tracer providers according to ``config``.

    Returns:
        Mapping with ``meter``, ``tracer``, ``metrics`` (a ``FlowMetrics``)
        and ``config``; disabled parts are None
    """
    global _telemetry  # noqa: PLW0603
    if _telemetry is not None:
        return _telemetry

    config = config or TelemetryConfig()
    state: dict[str, Any] = {"meter": None, "tracer": None, "metrics": None, "config": config}

    if config.enabled:
        resource = Resource.create(
            {SERVICE_NAME: config.service_name, SERVICE_VERSION: config.service_version}
        )
        if config.metrics.enabled:
            state["meter"] = _meter(config, resource)
            state["metrics"] = FlowMetrics(state["meter"])
        if config.tracing.enabled:
            state["tracer"] = _tracer(config, resource)

    _telemetry = state
    return state


def get_telemetry() -> dict[str, Any] | None:
    return _telemetry


def get_metrics() -> FlowMetrics | None:
    """Active ``FlowMetrics``, or None when metrics are off or not set up."""
    return _telemetry["metrics"] if _telemetry else None


def reset_telemetry() -> None:
    """Forget the cached setup so the next ``setup_telemetry`` starts over."""
    global _telemetry  # noqa: PLW0603
    _telemetry = None
