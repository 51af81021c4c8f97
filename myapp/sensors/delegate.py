"""Sensor delegation for fan-out pattern.

SensorDelegate routes every sensor event to each registered backend. A failing
backend is logged and skipped so that monitoring never fails a reconciliation
pass.
"""

from typing import Set, Dict, List, Optional, Any
import logging

from myapp.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class SensorDelegate(OperatorSensor):
    """Delegate sensor that fans out events to multiple backends.

    State from start/complete hook pairs is tracked per sensor: start hooks
    return a dict mapping each sensor to the state it produced.

    Example:
        delegate = SensorDelegate()
        delegate.add(PrometheusMonitor())

        state = delegate.on_reconcile_start("my-app", "default", 5, "update")
        delegate.on_reconcile_complete("my-app", "default", state, True)
    """

    def __init__(self) -> None:
        self._sensors: Set[OperatorSensor] = set()

    def add(self, sensor: OperatorSensor) -> None:
        logger.info(f"Adding sensor: {sensor.__class__.__name__}")
        self._sensors.add(sensor)

    def remove(self, sensor: OperatorSensor) -> None:
        logger.info(f"Removing sensor: {sensor.__class__.__name__}")
        self._sensors.discard(sensor)

    def clear(self) -> None:
        logger.info(f"Clearing {len(self._sensors)} sensors")
        self._sensors.clear()

    def __len__(self) -> int:
        return len(self._sensors)

    def _dispatch(self, hook: str, *args) -> Optional[Dict[OperatorSensor, Any]]:
        states = {}
        for sensor in self._sensors:
            try:
                state = getattr(sensor, hook)(*args)
                if state is not None:
                    states[sensor] = state
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )
        return states if states else None

    def _dispatch_with_state(
        self, hook: str, state: Optional[Dict[OperatorSensor, Any]], *args, **kwargs
    ) -> None:
        for sensor in self._sensors:
            try:
                sensor_state = state.get(sensor) if state else None
                getattr(sensor, hook)(*args, sensor_state, **kwargs)
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        name: str,
        namespace: str,
        generation: int,
        trigger_source: str,
    ) -> Optional[Dict[OperatorSensor, Any]]:
        return self._dispatch(
            "on_reconcile_start", name, namespace, generation, trigger_source
        )

    def on_reconcile_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        self._dispatch_with_state(
            "on_reconcile_complete",
            state,
            name,
            namespace,
            success=success,
            error=error,
        )

    def on_reconcile_queued(self, name: str, namespace: str, queue_depth: int) -> None:
        self._dispatch("on_reconcile_queued", name, namespace, queue_depth)

    def on_reconcile_dequeued(self, name: str, namespace: str, wait_time: float) -> None:
        self._dispatch("on_reconcile_dequeued", name, namespace, wait_time)

    # =============================================================================
    # Resource Operation Hooks
    # =============================================================================

    def on_resource_sync_start(
        self,
        name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
    ) -> Optional[Dict[OperatorSensor, Any]]:
        return self._dispatch(
            "on_resource_sync_start", name, resource_name, namespace, resource_type
        )

    def on_resource_sync_complete(
        self,
        name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        state: Optional[Dict[OperatorSensor, Any]],
        operation: str,
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        self._dispatch_with_state(
            "on_resource_sync_complete",
            state,
            name,
            resource_name,
            namespace,
            resource_type,
            operation=operation,
            success=success,
            error=error,
        )

    def on_resource_drift_detected(
        self,
        name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: List[str],
    ) -> None:
        self._dispatch(
            "on_resource_drift_detected",
            name,
            resource_name,
            namespace,
            resource_type,
            drift_fields,
        )

    # =============================================================================
    # Status Update Hooks
    # =============================================================================

    def on_status_update(
        self, name: str, namespace: str, update_fields: List[str]
    ) -> None:
        self._dispatch("on_status_update", name, namespace, update_fields)

    def asdict(self) -> Dict[str, Any]:
        return {
            "sensors": [sensor.__class__.__name__ for sensor in self._sensors],
        }
