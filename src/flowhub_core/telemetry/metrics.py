"""OpenTelemetry instruments for the flow engine.

Every instrument name starts with ``flowhub_``. Gauges are up/down counters
fed with deltas.
"""

from opentelemetry import metrics
from opentelemetry.metrics import Counter, Histogram, UpDownCounter

METRIC_PREFIX = "flowhub"


class MetricLabels:
    """Attribute keys and status values shared by all instruments."""

    WORKFLOW_ID = "workflow_id"
    NODE_ID = "node_id"
    TRIGGER_ID = "trigger_id"
    MODE = "mode"
    STATUS = "status"
    ERROR_CODE = "error_code"

    STATUS_SUCCESS = "success"
    STATUS_ERROR = "error"
    STATUS_CANCELLED = "cancelled"
    STATUS_RETRIED = "retried"


def _with_error(labels: dict[str, str], error_code: str | None) -> dict[str, str]:
    return {**labels, MetricLabels.ERROR_CODE: error_code} if error_code else labels


class FlowMetrics:
    """Run, node, queue and trigger instruments bound to one meter."""

    def __init__(self, meter: metrics.Meter):
        self._meter = meter

        self.runs_total: Counter = self._counter("runs_total", "Finished flow runs")
        self.node_invocations_total: Counter = self._counter(
            "node_invocations_total", "Node invocations"
        )
        self.jobs_total: Counter = self._counter("jobs_total", "Queued jobs handled by workers")
        self.trigger_fires_total: Counter = self._counter("trigger_fires_total", "Trigger firings")

        self.run_duration_seconds: Histogram = meter.create_histogram(
            f"{METRIC_PREFIX}_run_duration_seconds", unit="s", description="Flow run duration"
        )
        self.node_duration_seconds: Histogram = meter.create_histogram(
            f"{METRIC_PREFIX}_node_duration_seconds", unit="s", description="Node invocation duration"
        )

        self.active_runs: UpDownCounter = self._gauge("active_runs", "Runs currently executing")
        self.active_pauses: UpDownCounter = self._gauge("active_pauses", "Outstanding pause tokens")
        self.registered_nodes: UpDownCounter = self._gauge(
            "registered_nodes", "Registered node definitions"
        )

    def _counter(self, name: str, description: str) -> Counter:
        return self._meter.create_counter(f"{METRIC_PREFIX}_{name}", unit="1", description=description)

    def _gauge(self, name: str, description: str) -> UpDownCounter:
        return self._meter.create_up_down_counter(
            f"{METRIC_PREFIX}_{name}", unit="1", description=description
        )

    def record_run_start(self, workflow_id: str) -> None:
        self.active_runs.add(1, {MetricLabels.WORKFLOW_ID: workflow_id})

    def record_run_end(
        self,
        workflow_id: str,
        duration_seconds: float,
        status: str,
        error_code: str | None = None,
    ) -> None:
        """Count a finished run and release its active-run slot."""
        labels = {MetricLabels.WORKFLOW_ID: workflow_id, MetricLabels.STATUS: status}
        self.runs_total.add(1, _with_error(labels, error_code))
        self.run_duration_seconds.record(duration_seconds, labels)
        self.active_runs.add(-1, {MetricLabels.WORKFLOW_ID: workflow_id})

    def record_node_invocation(
        self,
        node_id: str,
        duration_seconds: float,
        status: str,
        error_code: str | None = None,
    ) -> None:
        labels = {MetricLabels.NODE_ID: node_id, MetricLabels.STATUS: status}
        self.node_invocations_total.add(1, _with_error(labels, error_code))
        self.node_duration_seconds.record(duration_seconds, labels)

    def record_job(self, status: str) -> None:
        self.jobs_total.add(1, {MetricLabels.STATUS: status})

    def record_trigger_fire(self, trigger_id: str, status: str) -> None:
        self.trigger_fires_total.add(
            1, {MetricLabels.TRIGGER_ID: trigger_id, MetricLabels.STATUS: status}
        )

    def record_pause_change(self, delta: int) -> None:
        self.active_pauses.add(delta)

    def record_node_registration(self, delta: int) -> None:
        self.registered_nodes.add(delta)
