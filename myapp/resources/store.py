import asyncio
import aiohttp
from typing import Any, Awaitable, Dict, List, NamedTuple, Optional
from kubernetes_asyncio.client import (
    ApiException,
    AppsV1Api,
    CoreV1Api,
    CustomObjectsApi,
    V1DeleteOptions,
)
from myapp.utils.errors import (
    NotFoundError,
    TransientStoreError,
    classify_api_exception,
)
from myapp.utils.helpers import label_selector


class KindOperations(NamedTuple):
    """Bound API calls for one child kind."""

    read: Any
    list: Any
    create: Any
    replace: Any
    delete: Any


class KubeStore:
    """Typed access to the Kubernetes API server used by a reconciliation pass.

    Every call is bounded by `timeout` seconds, and API failures are raised as
    classified reconcile errors (see `myapp.utils.errors`).
    """

    DEPLOYMENT = "Deployment"
    SERVICE = "Service"

    apps_v1_api: AppsV1Api
    core_v1_api: CoreV1Api
    custom_objects_api: CustomObjectsApi
    timeout: Optional[float]

    def __init__(
        self,
        apps_v1_api: AppsV1Api,
        core_v1_api: CoreV1Api,
        custom_objects_api: CustomObjectsApi,
        timeout: float = None,
    ):
        self.apps_v1_api = apps_v1_api
        self.core_v1_api = core_v1_api
        self.custom_objects_api = custom_objects_api
        self.timeout = timeout
        self._kinds: Dict[str, KindOperations] = {
            self.DEPLOYMENT: KindOperations(
                read=apps_v1_api.read_namespaced_deployment,
                list=apps_v1_api.list_namespaced_deployment,
                create=apps_v1_api.create_namespaced_deployment,
                replace=apps_v1_api.replace_namespaced_deployment,
                delete=apps_v1_api.delete_namespaced_deployment,
            ),
            self.SERVICE: KindOperations(
                read=core_v1_api.read_namespaced_service,
                list=core_v1_api.list_namespaced_service,
                create=core_v1_api.create_namespaced_service,
                replace=core_v1_api.replace_namespaced_service,
                delete=core_v1_api.delete_namespaced_service,
            ),
        }

    def operations(self, kind: str) -> KindOperations:
        try:
            return self._kinds[kind]
        except KeyError:
            raise ValueError(f"Unsupported child kind: {kind}") from None

    async def _call(self, call: Awaitable) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except ApiException as ex:
            raise classify_api_exception(ex) from ex
        except asyncio.TimeoutError as ex:
            raise TransientStoreError(
                f"Kubernetes API call timed out after {self.timeout}s"
            ) from ex
        except aiohttp.ClientError as ex:
            raise TransientStoreError(f"Kubernetes API unreachable: {ex}") from ex

    async def get(self, kind: str, name: str, namespace: str) -> Optional[Any]:
        """Fetch a child object, or None if it does not exist."""
        try:
            return await self._call(
                self.operations(kind).read(name=name, namespace=namespace)
            )
        except NotFoundError:
            return None

    async def list(
        self, kind: str, namespace: str, labels: Dict[str, str] = None
    ) -> List[Any]:
        result = await self._call(
            self.operations(kind).list(
                namespace=namespace, label_selector=label_selector(labels)
            )
        )
        return list(result.items or [])

    async def create(self, kind: str, namespace: str, obj: Any) -> Any:
        return await self._call(
            self.operations(kind).create(namespace=namespace, body=obj)
        )

    async def replace(self, kind: str, name: str, namespace: str, obj: Any) -> Any:
        """Replace an object.

        `obj.metadata.resource_version` must carry the version that was read;
        the API server rejects the write with a conflict if it moved on.
        """
        return await self._call(
            self.operations(kind).replace(name=name, namespace=namespace, body=obj)
        )

    async def delete(self, kind: str, name: str, namespace: str) -> None:
        try:
            await self._call(
                self.operations(kind).delete(
                    name=name,
                    namespace=namespace,
                    body=V1DeleteOptions(propagation_policy="Background"),
                )
            )
        except NotFoundError:
            return

    async def get_declaration(
        self, group: str, version: str, plural: str, name: str, namespace: str
    ) -> Optional[Dict]:
        try:
            return await self._call(
                self.custom_objects_api.get_namespaced_custom_object(
                    group=group,
                    version=version,
                    namespace=namespace,
                    plural=plural,
                    name=name,
                )
            )
        except NotFoundError:
            return None

    async def update_status(
        self,
        group: str,
        version: str,
        plural: str,
        name: str,
        namespace: str,
        status: Dict,
    ) -> Dict:
        """Merge-patch the status subresource of a declaration."""
        return await self._call(
            self.custom_objects_api.patch_namespaced_custom_object_status(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
                body={"status": status},
            )
        )
