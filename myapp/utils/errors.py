import json
import kopf
import kubernetes_asyncio

# Statuses worth retrying as-is; any other 4xx is a problem with the request.
_RETRYABLE_CLIENT_STATUSES = (408, 429)


class ReconcileError(Exception):
    """Base class of every failure a reconciliation pass reports."""

    retryable: bool = False

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class NotFoundError(ReconcileError):
    """The object does not exist. Callers decide whether that is fine."""


class ConflictError(ReconcileError):
    """A concurrent writer won: the object already exists or its version moved on."""

    retryable = True


class TransientStoreError(ReconcileError):
    """The API server was unreachable, overloaded or too slow to answer."""

    retryable = True


class InvalidError(ReconcileError):
    """The request or declaration is malformed; retrying will not help."""


def not_found_error(ex: kubernetes_asyncio.client.ApiException) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 404


def conflict_error(ex: kubernetes_asyncio.client.ApiException) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 409


def describe_api_exception(ex: kubernetes_asyncio.client.ApiException) -> str:
    error_msg = f"Kubernetes API error ({ex.status}): {ex.reason}"
    try:
        if ex.body:
            body = json.loads(ex.body)
            if "message" in body:
                error_msg = f"{error_msg} - {body['message']}"
    except (json.JSONDecodeError, AttributeError, TypeError):
        pass
    return error_msg


def classify_api_exception(
    ex: kubernetes_asyncio.client.ApiException,
) -> ReconcileError:
    """Map a kubernetes ApiException onto the reconciler's error taxonomy.

    404 is NotFound, 409 (AlreadyExists or a stale resourceVersion) is a
    Conflict, 5xx/408/429 and status-less failures are transient, and every
    other 4xx is Invalid.
    """
    message = describe_api_exception(ex)
    status = ex.status
    if not_found_error(ex):
        return NotFoundError(message, status)
    if conflict_error(ex):
        return ConflictError(message, status)
    if not status or status >= 500 or status in _RETRYABLE_CLIENT_STATUSES:
        return TransientStoreError(message, status)
    return InvalidError(message, status)


def convert_reconcile_error(
    err: ReconcileError, conflict_delay: float, transient_delay: float
):
    """
    Convert a classified reconcile error to a Kopf-friendly exception.

    Args:
        err: The classified error
        conflict_delay: Seconds before Kopf retries after a conflict
        transient_delay: Seconds before Kopf retries after a transient store failure

    Raises:
        kopf.TemporaryError for retryable errors, kopf.PermanentError otherwise
    """
    if isinstance(err, ConflictError):
        raise kopf.TemporaryError(str(err), delay=conflict_delay) from err
    if err.retryable:
        raise kopf.TemporaryError(str(err), delay=transient_delay) from err
    raise kopf.PermanentError(str(err)) from err
