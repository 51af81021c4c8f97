"""Operator sensor framework.

Hook-based instrumentation of reconciliation passes and child resource
operations. Sensors are registered on a SensorDelegate, which fans every event
out to each backend.

Usage:
    from myapp.sensors import SensorDelegate, PrometheusMonitor

    delegate = SensorDelegate()
    delegate.add(PrometheusMonitor())
"""

from myapp.sensors.base import OperatorSensor
from myapp.sensors.delegate import SensorDelegate
from myapp.sensors.prometheus import PrometheusMonitor
from myapp.sensors.server import init_metrics_server

__all__ = [
    "OperatorSensor",
    "SensorDelegate",
    "PrometheusMonitor",
    "init_metrics_server",
]
