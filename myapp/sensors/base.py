"""Base sensor classes for operator monitoring.

This module defines the base OperatorSensor class that provides lifecycle hooks
for monitoring reconciliation of MyAppResource declarations. All hooks are
no-ops by default, allowing subclasses to override only the events they care
about.

Hooks come in pairs where an operation has a duration: on_X_start() returns an
optional state dict which is handed back to the matching on_X_complete().
"""

from typing import Dict, List, Optional, Any
import logging

logger = logging.getLogger(__name__)


class OperatorSensor:
    """Base sensor class for operator monitoring.

    Hooks cover two categories:
    1. Reconciliation lifecycle (one pass over a declaration, and its queue)
    2. Child resource operations (create/update/delete of owned objects)

    Example:
        class LoggingSensor(OperatorSensor):
            def on_reconcile_start(self, name, namespace, generation, trigger_source):
                return {'start_time': time.time()}

            def on_reconcile_complete(self, name, namespace, state, success, error=None):
                duration = time.time() - state['start_time']
                logger.info(f"Reconciled {name} in {duration}s")
    """

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
        """Called when a reconciliation pass begins.

        Args:
            name: MyAppResource name
            namespace: Kubernetes namespace
            generation: Resource generation number
            trigger_source: What triggered the pass (create, update, resume, child)

        Returns:
            Optional state dict passed to on_reconcile_complete
        """
        pass

    def on_reconcile_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Called when a reconciliation pass completes, successfully or not."""
        pass

    def on_reconcile_queued(
        self,
        name: str,
        namespace: str,
        queue_depth: int,
    ) -> None:
        """Called when a child event enqueues a reconciliation request."""
        pass

    def on_reconcile_dequeued(
        self,
        name: str,
        namespace: str,
        wait_time: float,
    ) -> None:
        """Called when a queued request is picked up.

        Args:
            wait_time: Seconds the request spent in the queue
        """
        pass

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
        """Called before a child resource is created, updated or deleted.

        Args:
            name: Owning MyAppResource name
            resource_name: Child resource name
            namespace: Kubernetes namespace
            resource_type: Child kind (Deployment, Service)
        """
        pass

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
        """Called after a child resource operation finishes.

        Args:
            operation: create, update or delete
        """
        pass

    def on_resource_drift_detected(
        self,
        name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: List[str],
    ) -> None:
        """Called when an existing child differs from its rendered spec."""
        pass

    # =============================================================================
    # Status Update Hooks
    # =============================================================================

    def on_status_update(
        self,
        name: str,
        namespace: str,
        update_fields: List[str],
    ) -> None:
        """Called when the declaration's status is written."""
        pass

    def asdict(self) -> Dict[str, Any]:
        """Return sensor state as dictionary."""
        return {}
