"""Prometheus monitoring backend for the MyApp operator.

PrometheusMonitor turns operator lifecycle events into Prometheus metrics in
three groups:

1. Reconciliation - pass duration, outcome, errors and queue behaviour
2. Child resource sync - create/update/delete counts, latency, drift
3. Status updates - which status fields were written

Every metric is labelled with the owning resource name and namespace.
"""

from typing import Dict, List, Optional, Any
import time
import logging

from prometheus_client import Counter, Histogram, Gauge, REGISTRY, CollectorRegistry

from myapp.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class PrometheusMonitor(OperatorSensor):
    """Prometheus metrics monitor for the MyApp operator.

    Metric families:
    - myappop_reconcile_* - Reconciliation pass metrics
    - myappop_resource_* - Child resource sync metrics
    - myappop_status_* - Status write metrics

    Example:
        monitor = PrometheusMonitor()

        state = monitor.on_reconcile_start("my-app", "default", 5, "update")
        monitor.on_reconcile_complete("my-app", "default", state, True)
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        super().__init__()

        # =============================================================================
        # Reconciliation Metrics
        # =============================================================================

        self.reconcile_duration = Histogram(
            "myappop_reconcile_duration_seconds",
            "Time spent in a reconciliation pass",
            labelnames=["app_name", "namespace", "trigger_source", "result"],
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
            registry=registry,
        )

        self.reconcile_total = Counter(
            "myappop_reconcile_total",
            "Total number of reconciliation passes",
            labelnames=["app_name", "namespace", "trigger_source", "result"],
            registry=registry,
        )

        self.reconcile_errors = Counter(
            "myappop_reconcile_errors_total",
            "Total number of reconciliation errors",
            labelnames=["app_name", "namespace", "error_type"],
            registry=registry,
        )

        self.reconcile_queue_depth = Gauge(
            "myappop_reconcile_queue_depth",
            "Pending reconciliation requests per resource",
            labelnames=["app_name", "namespace"],
            registry=registry,
        )

        self.reconcile_queue_wait_seconds = Histogram(
            "myappop_reconcile_queue_wait_seconds",
            "Time a request waited in the reconciliation queue",
            labelnames=["app_name", "namespace"],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
            registry=registry,
        )

        # =============================================================================
        # Child Resource Sync Metrics
        # =============================================================================

        self.resource_sync_duration = Histogram(
            "myappop_resource_sync_duration_seconds",
            "Time spent syncing a child resource",
            labelnames=[
                "app_name",
                "resource_name",
                "namespace",
                "resource_type",
                "operation",
                "result",
            ],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=registry,
        )

        self.resource_sync_total = Counter(
            "myappop_resource_sync_total",
            "Total number of child resource sync operations",
            labelnames=[
                "app_name",
                "resource_name",
                "namespace",
                "resource_type",
                "operation",
                "result",
            ],
            registry=registry,
        )

        self.resource_sync_errors = Counter(
            "myappop_resource_sync_errors_total",
            "Total number of child resource sync errors",
            labelnames=[
                "app_name",
                "resource_name",
                "namespace",
                "resource_type",
                "error_type",
            ],
            registry=registry,
        )

        self.resource_drift_detected = Counter(
            "myappop_resource_drift_detected_total",
            "Total number of child resource drift detections",
            labelnames=[
                "app_name",
                "resource_name",
                "namespace",
                "resource_type",
                "drift_field",
            ],
            registry=registry,
        )

        # =============================================================================
        # Status Update Metrics
        # =============================================================================

        self.status_updates = Counter(
            "myappop_status_updates_total",
            "Total number of status field writes",
            labelnames=["app_name", "namespace", "update_field"],
            registry=registry,
        )

        logger.info("PrometheusMonitor initialized with all metrics")

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        name: str,
        namespace: str,
        generation: int,
        trigger_source: str,
    ) -> Optional[Dict[str, Any]]:
        """Record reconciliation start time."""
        return {
            "start_time": time.time(),
            "trigger_source": trigger_source,
        }

    def on_reconcile_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record reconciliation duration and result."""
        if state:
            duration = time.time() - state["start_time"]
            result = "success" if success else "failure"
            labels = dict(
                app_name=name,
                namespace=namespace,
                trigger_source=state["trigger_source"],
                result=result,
            )
            self.reconcile_duration.labels(**labels).observe(duration)
            self.reconcile_total.labels(**labels).inc()

        if error:
            self.reconcile_errors.labels(
                app_name=name,
                namespace=namespace,
                error_type=error.__class__.__name__,
            ).inc()

    def on_reconcile_queued(self, name: str, namespace: str, queue_depth: int) -> None:
        self.reconcile_queue_depth.labels(app_name=name, namespace=namespace).set(
            queue_depth
        )

    def on_reconcile_dequeued(self, name: str, namespace: str, wait_time: float) -> None:
        self.reconcile_queue_depth.labels(app_name=name, namespace=namespace).set(0)
        self.reconcile_queue_wait_seconds.labels(
            app_name=name, namespace=namespace
        ).observe(wait_time)

    # =============================================================================
    # Resource Operation Hooks
    # =============================================================================

    def on_resource_sync_start(
        self,
        name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
    ) -> Optional[Dict[str, Any]]:
        """Record resource sync start time."""
        return {"start_time": time.time()}

    def on_resource_sync_complete(
        self,
        name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        state: Optional[Dict[str, Any]],
        operation: str,
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record resource sync duration and result."""
        if state:
            duration = time.time() - state["start_time"]
            result = "success" if success else "failure"
            labels = dict(
                app_name=name,
                resource_name=resource_name,
                namespace=namespace,
                resource_type=resource_type,
                operation=operation,
                result=result,
            )
            self.resource_sync_duration.labels(**labels).observe(duration)
            self.resource_sync_total.labels(**labels).inc()

        if error:
            self.resource_sync_errors.labels(
                app_name=name,
                resource_name=resource_name,
                namespace=namespace,
                resource_type=resource_type,
                error_type=error.__class__.__name__,
            ).inc()

    def on_resource_drift_detected(
        self,
        name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: List[str],
    ) -> None:
        for field in drift_fields:
            self.resource_drift_detected.labels(
                app_name=name,
                resource_name=resource_name,
                namespace=namespace,
                resource_type=resource_type,
                drift_field=field,
            ).inc()

    # =============================================================================
    # Status Update Hooks
    # =============================================================================

    def on_status_update(
        self,
        name: str,
        namespace: str,
        update_fields: List[str],
    ) -> None:
        for field in update_fields:
            self.status_updates.labels(
                app_name=name,
                namespace=namespace,
                update_field=field,
            ).inc()
