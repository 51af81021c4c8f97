import os
from typing import Any

_TRUE, _FALSE = {"True", "true", "yes", "1"}, {"False", "false", "no", "0"}


def _getenv(name: str, *default: Any) -> Any:
    try:
        v = os.environ[name]
        if v in _TRUE:
            return True
        elif v in _FALSE:
            return False
        else:
            return v
    except KeyError:
        pass
    if default:
        return default[0]
    raise KeyError(name)


# ------------------------------------------------
# ---- Defaults and environment variables ----
# ------------------------------------------------

#: DNS suffix used to build in-cluster service endpoints
CLUSTER_DOMAIN = str(_getenv("CLUSTER_DOMAIN", "svc.cluster.local"))

#: Upper bound in seconds on any single call to the Kubernetes API
STORE_CALL_TIMEOUT_SECONDS = float(_getenv("STORE_CALL_TIMEOUT_SECONDS", 30.0))

#: Seconds Kopf waits before retrying a pass that lost an update race
CONFLICT_RETRY_DELAY_SECONDS = float(_getenv("CONFLICT_RETRY_DELAY_SECONDS", 1.0))

#: Seconds Kopf waits before retrying a pass that hit an unavailable API server
TRANSIENT_RETRY_DELAY_SECONDS = float(
    _getenv("TRANSIENT_RETRY_DELAY_SECONDS", 30.0)
)

#: Maximum number of declarations reconciled concurrently
WORKER_LIMIT = int(_getenv("WORKER_LIMIT", 4))

#: Seconds between periodic reconciliations that catch missed child events
RESYNC_INTERVAL_SECONDS = float(_getenv("RESYNC_INTERVAL_SECONDS", 60.0))

#: Port of the Prometheus metrics endpoint
METRICS_PORT = int(_getenv("METRICS_PORT", 8000))


class Settings:
    """Operator settings"""

    cluster_domain: str = CLUSTER_DOMAIN
    store_call_timeout_seconds: float = STORE_CALL_TIMEOUT_SECONDS
    conflict_retry_delay_seconds: float = CONFLICT_RETRY_DELAY_SECONDS
    transient_retry_delay_seconds: float = TRANSIENT_RETRY_DELAY_SECONDS
    worker_limit: int = WORKER_LIMIT
    metrics_port: int = METRICS_PORT

    def __init__(
        self,
        *args,
        cluster_domain: str = None,
        store_call_timeout_seconds: float = None,
        conflict_retry_delay_seconds: float = None,
        transient_retry_delay_seconds: float = None,
        worker_limit: int = None,
        metrics_port: int = None,
        **kwargs,
    ):
        if cluster_domain is not None:
            self.cluster_domain = cluster_domain

        if store_call_timeout_seconds is not None:
            self.store_call_timeout_seconds = store_call_timeout_seconds

        if conflict_retry_delay_seconds is not None:
            self.conflict_retry_delay_seconds = conflict_retry_delay_seconds

        if transient_retry_delay_seconds is not None:
            self.transient_retry_delay_seconds = transient_retry_delay_seconds

        if worker_limit is not None:
            self.worker_limit = worker_limit

        if metrics_port is not None:
            self.metrics_port = metrics_port
