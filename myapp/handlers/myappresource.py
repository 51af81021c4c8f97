import asyncio
import kopf
import time
import logging
from logging import Logger
from collections import defaultdict
from typing import Dict, Optional, Set, Tuple
from kubernetes_asyncio.client import AppsV1Api, CoreV1Api, CustomObjectsApi
from myapp.common.models.labels import Labels
from myapp.resources import KubeStore, MyAppResource, owner_name
from myapp.types.models import ReconcileResult
from myapp.types.settings import Settings, RESYNC_INTERVAL_SECONDS
from myapp.utils.errors import ReconcileError, convert_reconcile_error

KIND = MyAppResource.KIND

RECONCILE_FAILED = "ReconcileFailed"

Key = Tuple[str, str]

# Declarations with a pending reconciliation request
names_in_queue: Set[Key] = set()
# The actual queue for ordered processing
reconciliation_queue: Dict[Key, asyncio.Queue] = defaultdict(asyncio.Queue)
# Makes the check-and-add of a request atomic
queue_locks: Dict[Key, asyncio.Lock] = defaultdict(asyncio.Lock)
# Timers run alongside change handlers; one pass per declaration at a time
pass_locks: Dict[Key, asyncio.Lock] = defaultdict(asyncio.Lock)

CHILD_LABELS = {Labels.KUBERNETES_MANAGED_BY_LABEL: MyAppResource.OPERATOR_NAME}


class TimerLogFilter(logging.Filter):
    def filter(self, record):
        """Timer logs are noisy so we filter them out."""
        return "Timer " not in record.getMessage()


kopf_logger = logging.getLogger("kopf.objects")
kopf_logger.addFilter(TimerLogFilter())


def get_sensor():
    return MyAppResource.sensor


def build_store(conf: Settings) -> KubeStore:
    """Store over the operator's shared API client."""
    api_client = MyAppResource.shared_api_client
    return KubeStore(
        AppsV1Api(api_client),
        CoreV1Api(api_client),
        CustomObjectsApi(api_client),
        timeout=conf.store_call_timeout_seconds,
    )


async def reconcile_pass(
    name: str,
    namespace: str,
    store: KubeStore,
    conf: Settings = None,
    logger: Logger = None,
) -> ReconcileResult:
    """Run one reconciliation pass for a declaration.

    Fetches the declaration, converges its child objects and writes observed
    readiness back to its status. A declaration that no longer exists is a
    successful no-op. Failures are raised as ReconcileError subclasses.
    """
    logger = logger or logging.getLogger(__name__)
    body = await store.get_declaration(
        MyAppResource.GROUP_NAME,
        MyAppResource.GROUP_VERSION,
        MyAppResource.PLURAL_NAME,
        name,
        namespace,
    )
    if body is None:
        logger.info(f"{KIND} {namespace}/{name} no longer exists, nothing to do.")
        return ReconcileResult()

    app = MyAppResource.from_body(body, store=store, conf=conf, logger=logger)
    logger.debug(f"Reconciling {KIND}/{name} in {namespace} namespace.")
    observed, changes = await app.synchronize()
    status_updated = await app.sync_status(
        body.get("status"), observed.primary, observed.cache_deployment
    )
    logger.debug(f"Reconciled {KIND}/{name} in {namespace} namespace.")
    return ReconcileResult(changes=changes, status_updated=status_updated)


async def run_reconciliation(
    name: str,
    namespace: str,
    body: Dict,
    logger: Logger,
    trigger_source: str = "manual",
) -> Optional[ReconcileResult]:
    """Run a pass on behalf of a Kopf handler.

    Reports changes as Kubernetes events and turns reconcile errors into
    kopf.TemporaryError or kopf.PermanentError.
    """
    conf = MyAppResource.conf
    sensor = get_sensor()
    generation = (body.get("metadata") or {}).get("generation", 0)

    async with pass_locks[(namespace, name)]:
        sensor_state = sensor.on_reconcile_start(
            name, namespace, generation, trigger_source
        )
        success, error = True, None
        try:
            result = await reconcile_pass(
                name, namespace, build_store(conf), conf=conf, logger=logger
            )
        except ReconcileError as e:
            success, error = False, e
            logger.error(f"Reconciliation of {KIND}/{name} failed: {e}")
            kopf.warn(body, reason=RECONCILE_FAILED, message=str(e))
            convert_reconcile_error(
                e,
                conflict_delay=conf.conflict_retry_delay_seconds,
                transient_delay=conf.transient_retry_delay_seconds,
            )
        except Exception as e:
            success, error = False, e
            logger.error(f"Unexpected error during reconciliation: {e}")
            logger.exception(e)
            raise
        finally:
            sensor.on_reconcile_complete(
                name, namespace, sensor_state, success, error
            )

    for change in result.changed:
        kopf.info(
            body,
            reason=f"{change.kind}{change.outcome.value.capitalize()}",
            message=f"{change.kind} `{change.name}` {change.outcome.value}.",
        )
    return result


async def request_reconciliation(name: str, namespace: str):
    """Request reconciliation for a declaration.

    Enqueues the request only if one is not already pending, so a burst of
    child events collapses into a single pass.
    """
    key = (namespace, name)
    async with queue_locks[key]:
        if key not in names_in_queue:
            names_in_queue.add(key)
            await reconciliation_queue[key].put(time.time())
            get_sensor().on_reconcile_queued(
                name, namespace, reconciliation_queue[key].qsize()
            )


@kopf.on.resume(kind=KIND)
@kopf.on.create(kind=KIND)
@kopf.on.update(kind=KIND, field="spec")
async def reconciliation(name, namespace, body, reason, logger: Logger, **kwargs):
    """Reconcile MyAppResource children after a spec change."""
    await run_reconciliation(
        name, namespace, body, logger, trigger_source=str(getattr(reason, "value", reason))
    )


@kopf.on.event("apps", "v1", "deployments", labels=CHILD_LABELS)
@kopf.on.event("v1", "services", labels=CHILD_LABELS)
async def on_child_event(body, logger: Logger, **kwargs):
    """Map a change to a managed child back to its owning declaration."""
    owner = owner_name(body)
    if owner is None:
        return
    namespace = (body.get("metadata") or {}).get("namespace")
    await request_reconciliation(owner, namespace)


@kopf.timer(KIND, initial_delay=5.0, interval=RESYNC_INTERVAL_SECONDS)
async def periodic_reconciliation(name, namespace, **kwargs):
    """Catch drift on children whose events were missed."""
    await request_reconciliation(name, namespace)


@kopf.timer(KIND, initial_delay=3.0, interval=1.5)
async def process_reconciliation_requests(
    name, namespace, body, logger: Logger, stopped, **kwargs
):
    """Process reconciliation requests from the queue.

    Processes each request exactly once, even if it was requested multiple
    times while processing another request. A request that failed with a
    retryable error is queued again before the error is handed to Kopf.
    """
    if stopped:
        return
    key = (namespace, name)
    try:
        queued_at = reconciliation_queue[key].get_nowait()
    except asyncio.QueueEmpty:
        return

    get_sensor().on_reconcile_dequeued(name, namespace, time.time() - queued_at)
    retry = False
    try:
        start_time = time.time()
        await run_reconciliation(name, namespace, body, logger, trigger_source="queue")
        logger.info(
            f"Reconciliation for {name} completed in {time.time() - start_time:.2f} seconds"
        )
    except kopf.TemporaryError:
        retry = True
        raise
    finally:
        # Allow this declaration to be requeued after processing
        names_in_queue.discard(key)
        reconciliation_queue[key].task_done()
        if retry:
            await request_reconciliation(name, namespace)


@kopf.on.delete(kind=KIND)
async def on_delete(name, namespace, logger: Logger, **kwargs):
    """Drop queue state; children are removed through their owner references."""
    key = (namespace, name)
    reconciliation_queue.pop(key, None)
    queue_locks.pop(key, None)
    pass_locks.pop(key, None)
    names_in_queue.discard(key)
    logger.info(f"{KIND} {namespace}/{name} deleted.")
