"""Plugin for Prometheus metrics instrumentation."""

import time

from prometheus_client import Counter, Gauge, Histogram

from .base import PluginContext, PluginHook, SyncPlugin


class PrometheusMetricsPlugin(SyncPlugin):
    """
    Exposes Prometheus metrics for the OIOI synchronization adapter.

    This plugin tracks:
    - Partner requests by operation and outcome, with latency
    - Requests currently in flight
    - Sync runs per stream and the entities they pushed, failed or skipped
    - Last run timestamp and current backoff per stream

    Metrics are exposed via the standard prometheus_client registry.
    Use prometheus_client.start_http_server() or generate_latest() to expose /metrics.
    """

    # Class-level metrics (shared across all plugin instances)

    oioi_adapter_up = Gauge(
        "oioi_adapter_up",
        "1 if the OIOI adapter is running, 0 otherwise",
    )

    oioi_requests_total = Counter(
        "oioi_requests_total",
        "Total number of requests sent to the partner",
        labelnames=["operation", "outcome"],
    )

    oioi_request_duration_seconds = Histogram(
        "oioi_request_duration_seconds",
        "Partner request duration in seconds",
        labelnames=["operation"],
    )

    oioi_requests_in_flight = Gauge(
        "oioi_requests_in_flight",
        "Number of partner requests awaiting a response",
        labelnames=["operation"],
    )

    oioi_sync_runs_total = Counter(
        "oioi_sync_runs_total",
        "Total number of completed sync runs",
        labelnames=["stream"],
    )

    oioi_sync_entities_total = Counter(
        "oioi_sync_entities_total",
        "Entities handled by sync runs",
        labelnames=["stream", "result"],
    )

    oioi_sync_last_run_ts = Gauge(
        "oioi_sync_last_run_ts",
        "Unix timestamp of the last completed sync run",
        labelnames=["stream"],
    )

    oioi_sync_backoff_seconds = Gauge(
        "oioi_sync_backoff_seconds",
        "Delay applied to the next run after retryable failures (0 if none)",
        labelnames=["stream"],
    )

    def __init__(self):
        """Initialize the Prometheus metrics plugin."""
        super().__init__()
        self.oioi_adapter_up.set(1)
        # Clients and schedulers currently attached
        self._owners = 0

    def hooks(self) -> dict[PluginHook, str]:
        """Register hooks for every partner operation and sync run."""
        return {
            PluginHook.BEFORE_STATION_POST: "before_request",
            PluginHook.AFTER_STATION_POST: "after_request",
            PluginHook.BEFORE_CONNECTOR_POST_STATUS: "before_request",
            PluginHook.AFTER_CONNECTOR_POST_STATUS: "after_request",
            PluginHook.BEFORE_SESSION_POST: "before_request",
            PluginHook.AFTER_SESSION_POST: "after_request",
            PluginHook.BEFORE_RFID_VERIFY: "before_request",
            PluginHook.AFTER_RFID_VERIFY: "after_request",
            PluginHook.AFTER_SYNC_RUN: "after_sync_run",
        }

    async def initialize(self, owner):
        """Mark the adapter as up."""
        self._owners += 1
        self.oioi_adapter_up.set(1)

    async def cleanup(self, owner):
        """Mark the adapter as down once the last client or scheduler detaches."""
        self._owners = max(0, self._owners - 1)
        if not self._owners:
            self.oioi_adapter_up.set(0)

    # Hook handlers

    async def before_request(self, context: PluginContext):
        """Track requests in flight."""
        self.oioi_requests_in_flight.labels(operation=context.operation).inc()

    async def after_request(self, context: PluginContext):
        """Count the request by outcome and record its duration."""
        operation = context.operation
        self.oioi_requests_in_flight.labels(operation=operation).dec()

        outcome = context.result.outcome.value if context.result is not None else "unknown"
        self.oioi_requests_total.labels(operation=operation, outcome=outcome).inc()

        if context.duration is not None:
            self.oioi_request_duration_seconds.labels(operation=operation).observe(context.duration)

    async def after_sync_run(self, context: PluginContext):
        """Track run counts, entity results and backoff per stream."""
        stream = context.stream
        report = context.report

        self.oioi_sync_runs_total.labels(stream=stream).inc()
        self.oioi_sync_last_run_ts.labels(stream=stream).set(time.time())

        if report is None:
            return

        for result, count in (
            ("pushed", len(report.pushed)),
            ("failed", len(report.failed)),
            ("skipped", len(report.skipped)),
            ("unchanged", len(report.unchanged)),
        ):
            if count:
                self.oioi_sync_entities_total.labels(stream=stream, result=result).inc(count)

        self.oioi_sync_backoff_seconds.labels(stream=stream).set(report.backoff or 0)
