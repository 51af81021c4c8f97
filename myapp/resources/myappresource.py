import logging
from collections.abc import Mapping
from logging import Logger
from typing import Any, Dict, List, NamedTuple, Optional, Tuple
from marshmallow import ValidationError
from kubernetes_asyncio.client import (
    V1ObjectMeta,
    V1OwnerReference,
    V1Deployment,
    V1DeploymentSpec,
    V1LabelSelector,
    V1PodTemplateSpec,
    V1PodSpec,
    V1Container,
    V1ContainerPort,
    V1EnvVar,
    V1ResourceRequirements,
    V1Service,
    V1ServiceSpec,
    V1ServicePort,
)
from kubernetes_asyncio.client.api_client import ApiClient

from myapp.common.models.labels import Labels
from myapp.resources.base import BaseResource, prepare_watch_fields
from myapp.resources.store import KubeStore
from myapp.types.settings import Settings
from myapp.types.models import (
    ImageSpec,
    MyAppResourceSpec,
    MyAppResourceStatus,
    MyAppResourceResources,
    ResourceRequirements,
    ConvergeOutcome,
    ChildChange,
)
from myapp.types.schemas import MyAppResourceSpecSchema, MyAppResourceStatusSchema
from myapp.types.base import EXCLUDE
from myapp.utils.errors import InvalidError


class RenderedResources(NamedTuple):
    """Desired child objects of one declaration. Cache objects are None when disabled."""

    primary: V1Deployment
    cache_deployment: Optional[V1Deployment] = None
    cache_service: Optional[V1Service] = None


class MyAppResource(BaseResource):
    """MyAppResource kubernetes resource."""

    conf: Settings = Settings()
    shared_api_client: ApiClient = None

    KIND = "MyAppResource"
    GROUP_NAME = "my.api.group"
    GROUP_VERSION = "v1alpha1"
    API_VERSION = f"{GROUP_NAME}/{GROUP_VERSION}"
    PLURAL_NAME = "myappresources"
    COMPONENT_TYPE = "podinfo"
    CACHE_COMPONENT_TYPE = "cache"

    PODINFO_CONTAINER_NAME = "podinfo"
    PODINFO_PORT = 9898
    PODINFO_PORT_NAME = "http"

    CACHE_CONTAINER_NAME = "cache"
    CACHE_IMAGE = "redis/redis-stack:latest"
    CACHE_PORT = 6379
    CACHE_PORT_NAME = "redis"
    CACHE_REPLICAS = 1

    UI_COLOR_ENV = "UI_COLOR"
    UI_MESSAGE_ENV = "UI_MESSAGE"
    CACHE_ENDPOINT_ENV = "CACHE_ENDPOINT"

    DEFAULT_REPLICAS = 1

    uid: str
    replicas: int
    image: ImageSpec
    resources: Optional[ResourceRequirements]
    ui_color: str
    ui_message: str
    cache_enabled: bool
    cache_name: str

    def __init__(self, name: str, namespace: str):
        component_name = MyAppResourceResources.component_name(name)
        labels = Labels.generate_default_labels(
            component_name,
            name,
            self.KIND,
            self.COMPONENT_TYPE,
            self.OPERATOR_NAME,
        )
        super().__init__(
            name=name,
            namespace=namespace,
            component_name=component_name,
            labels=labels,
        )
        self.cache_name = MyAppResourceResources.cache_name(name)
        self.cache_labels = Labels.generate_default_labels(
            self.cache_name,
            name,
            self.KIND,
            self.CACHE_COMPONENT_TYPE,
            self.OPERATOR_NAME,
        )

    @classmethod
    def from_spec(
        cls,
        name: str,
        namespace: str,
        spec: MyAppResourceSpec,
        uid: str = None,
        store: KubeStore = None,
        conf: Settings = None,
        logger: Logger = None,
    ) -> "MyAppResource":
        app = MyAppResource(name, namespace)
        app.uid = uid
        app.store = store
        if conf is not None:
            app.conf = conf
        app.logger = logger or logging.getLogger(__name__)
        app.replicas = (
            spec.replica_count
            if spec.replica_count is not None
            else cls.DEFAULT_REPLICAS
        )
        app.image = spec.image if spec.image is not None else ImageSpec.default()
        app.resources = spec.resources
        app.ui_color = spec.ui.color
        app.ui_message = spec.ui.message
        app.cache_enabled = bool(spec.cache and spec.cache.enabled)
        return app

    @classmethod
    def from_body(
        cls,
        body: Dict,
        store: KubeStore = None,
        conf: Settings = None,
        logger: Logger = None,
    ) -> "MyAppResource":
        """Build from a raw declaration as returned by the API server.

        Raises InvalidError if the spec does not validate.
        """
        metadata = body.get("metadata", {})
        try:
            spec = MyAppResourceSpecSchema().load(body.get("spec") or {})
        except ValidationError as e:
            raise InvalidError(
                f"{cls.KIND} {metadata.get('namespace')}/{metadata.get('name')} "
                f"is invalid: {e.messages}"
            ) from e
        return cls.from_spec(
            metadata.get("name"),
            metadata.get("namespace"),
            spec,
            uid=metadata.get("uid"),
            store=store,
            conf=conf,
            logger=logger,
        )

    def render(self) -> RenderedResources:
        """Desired child objects for the current spec."""
        if not self.cache_enabled:
            return RenderedResources(primary=self.prepare_primary_deployment())
        return RenderedResources(
            primary=self.prepare_primary_deployment(),
            cache_deployment=self.prepare_cache_deployment(),
            cache_service=self.prepare_cache_service(),
        )

    async def synchronize(self) -> Tuple[RenderedResources, List[ChildChange]]:
        """Converge every child object toward the current spec.

        Returns the child objects as last observed, with None for cache objects
        that do not exist, and what was changed.
        """
        desired = self.render()
        changes = []
        cache_deployment = cache_service = None

        if not self.cache_enabled:
            # Stale cache objects from an earlier enabled spec
            for kind in (KubeStore.DEPLOYMENT, KubeStore.SERVICE):
                if await self.delete_child_if_present(
                    kind, self.cache_name, self.namespace
                ):
                    changes.append(
                        ChildChange(kind, self.cache_name, ConvergeOutcome.DELETED)
                    )
        else:
            cache_deployment, outcome = await self.converge_child(
                KubeStore.DEPLOYMENT,
                self.cache_name,
                self.namespace,
                desired.cache_deployment,
            )
            changes.append(ChildChange(KubeStore.DEPLOYMENT, self.cache_name, outcome))
            cache_service, outcome = await self.converge_child(
                KubeStore.SERVICE,
                self.cache_name,
                self.namespace,
                desired.cache_service,
            )
            changes.append(ChildChange(KubeStore.SERVICE, self.cache_name, outcome))

        primary, outcome = await self.converge_child(
            KubeStore.DEPLOYMENT, self.component_name, self.namespace, desired.primary
        )
        changes.append(ChildChange(KubeStore.DEPLOYMENT, self.component_name, outcome))

        return RenderedResources(primary, cache_deployment, cache_service), changes

    def prepare_status(
        self, primary: Optional[V1Deployment], cache: Optional[V1Deployment]
    ) -> MyAppResourceStatus:
        return MyAppResourceStatus(
            primary_ready_replicas=ready_replicas(primary),
            cache_ready_replicas=ready_replicas(cache),
        )

    async def sync_status(
        self,
        status: Optional[Dict],
        primary: Optional[V1Deployment],
        cache: Optional[V1Deployment] = None,
    ) -> bool:
        """Write observed readiness to the status subresource if it changed.

        Returns True if a status write was made.
        """
        current: MyAppResourceStatus = MyAppResourceStatusSchema(unknown=EXCLUDE).load(
            status or {}
        )
        observed = self.prepare_status(primary, cache)
        update = {}
        if (current.primary_ready_replicas or 0) != observed.primary_ready_replicas:
            update["primaryReadyReplicas"] = observed.primary_ready_replicas
        if (current.cache_ready_replicas or 0) != observed.cache_ready_replicas:
            update["cacheReadyReplicas"] = observed.cache_ready_replicas
        if not update:
            return False

        await self.store.update_status(
            self.GROUP_NAME,
            self.GROUP_VERSION,
            self.PLURAL_NAME,
            self.name,
            self.namespace,
            {
                "primaryReadyReplicas": observed.primary_ready_replicas,
                "cacheReadyReplicas": observed.cache_ready_replicas,
            },
        )
        self.sensor.on_status_update(self.name, self.namespace, list(update))
        self.logger.info(
            f"Updated status: primaryReadyReplicas={observed.primary_ready_replicas}, "
            f"cacheReadyReplicas={observed.cache_ready_replicas}."
        )
        return True

    def prepare_owner_references(self) -> List[V1OwnerReference]:
        return [
            V1OwnerReference(
                api_version=self.API_VERSION,
                kind=self.KIND,
                name=self.name,
                uid=self.uid,
                controller=True,
                block_owner_deletion=True,
            )
        ]

    def prepare_metadata(self, name: str, labels: Labels) -> V1ObjectMeta:
        return V1ObjectMeta(
            name=name,
            namespace=self.namespace,
            labels=labels.as_dict(),
            owner_references=self.prepare_owner_references(),
        )

    def prepare_image(self) -> str:
        return self.image.reference

    def prepare_cache_endpoint(self) -> str:
        return MyAppResourceResources.cache_url(
            self.name, self.namespace, self.CACHE_PORT, self.conf.cluster_domain
        )

    def prepare_env_vars(self) -> List[V1EnvVar]:
        env_vars = [
            V1EnvVar(name=self.UI_COLOR_ENV, value=self.ui_color),
            V1EnvVar(name=self.UI_MESSAGE_ENV, value=self.ui_message),
        ]
        if self.cache_enabled:
            env_vars.append(
                V1EnvVar(name=self.CACHE_ENDPOINT_ENV, value=self.prepare_cache_endpoint())
            )
        return env_vars

    def prepare_container_resource_requirements(
        self,
    ) -> Dict[str, V1ResourceRequirements]:
        if self.resources is None:
            return {}
        return {
            "resources": V1ResourceRequirements(
                claims=self.resources.claims,
                limits=self.resources.limits,
                requests=self.resources.requests,
            )
        }

    def prepare_podinfo_container(self) -> V1Container:
        return V1Container(
            name=self.PODINFO_CONTAINER_NAME,
            image=self.prepare_image(),
            ports=[
                V1ContainerPort(
                    name=self.PODINFO_PORT_NAME,
                    container_port=self.PODINFO_PORT,
                    protocol="TCP",
                )
            ],
            env=self.prepare_env_vars(),
            **self.prepare_container_resource_requirements(),
        )

    def prepare_deployment(
        self, name: str, labels: Labels, replicas: int, container: V1Container
    ) -> V1Deployment:
        deployment = V1Deployment(
            api_version="apps/v1",
            kind="Deployment",
            metadata=self.prepare_metadata(name, labels),
            spec=V1DeploymentSpec(
                replicas=replicas,
                selector=V1LabelSelector(match_labels=labels.selector().as_dict()),
                template=V1PodTemplateSpec(
                    metadata=V1ObjectMeta(labels=labels.as_dict()),
                    spec=V1PodSpec(containers=[container]),
                ),
            ),
        )
        deployment.metadata.annotations = self.prepare_hash_annotation(
            self.compute_hash(prepare_watch_fields(KubeStore.DEPLOYMENT, deployment))
        )
        return deployment

    def prepare_primary_deployment(self) -> V1Deployment:
        """Build the podinfo deployment."""
        return self.prepare_deployment(
            self.component_name,
            self.labels,
            self.replicas,
            self.prepare_podinfo_container(),
        )

    def prepare_cache_container(self) -> V1Container:
        return V1Container(
            name=self.CACHE_CONTAINER_NAME,
            image=self.CACHE_IMAGE,
            ports=[
                V1ContainerPort(
                    name=self.CACHE_PORT_NAME,
                    container_port=self.CACHE_PORT,
                    protocol="TCP",
                )
            ],
        )

    def prepare_cache_deployment(self) -> V1Deployment:
        """Build the cache deployment. Only depends on the declaration's identity."""
        return self.prepare_deployment(
            self.cache_name,
            self.cache_labels,
            self.CACHE_REPLICAS,
            self.prepare_cache_container(),
        )

    def prepare_cache_service(self) -> V1Service:
        """Build the service in front of the cache deployment."""
        service = V1Service(
            api_version="v1",
            kind="Service",
            metadata=self.prepare_metadata(self.cache_name, self.cache_labels),
            spec=V1ServiceSpec(
                type="ClusterIP",
                selector=self.cache_labels.selector().as_dict(),
                ports=[
                    V1ServicePort(
                        name=self.CACHE_PORT_NAME,
                        protocol="TCP",
                        port=self.CACHE_PORT,
                        target_port=self.CACHE_PORT,
                    )
                ],
            ),
        )
        service.metadata.annotations = self.prepare_hash_annotation(
            self.compute_hash(prepare_watch_fields(KubeStore.SERVICE, service))
        )
        return service


def ready_replicas(deployment: Optional[V1Deployment]) -> int:
    """Ready replica count of an observed deployment; 0 if absent or unreported."""
    if deployment is None or deployment.status is None:
        return 0
    return deployment.status.ready_replicas or 0


def owner_name(child: Any) -> Optional[str]:
    """Name of the MyAppResource controlling a child object, if any.

    Accepts a kubernetes model or a raw body mapping (such as `kopf.Body`) as
    delivered to event handlers.
    """
    if isinstance(child, Mapping):
        refs = (child.get("metadata") or {}).get("ownerReferences") or []
        refs = [
            (r.get("apiVersion"), r.get("kind"), r.get("name"), r.get("controller"))
            for r in refs
        ]
    else:
        refs = [
            (r.api_version, r.kind, r.name, r.controller)
            for r in (child.metadata.owner_references or [])
        ]
    for api_version, kind, name, controller in refs:
        if (
            controller
            and api_version == MyAppResource.API_VERSION
            and kind == MyAppResource.KIND
        ):
            return name
    return None


WATCHED_KIND = MyAppResource.KIND
OWNED_KINDS = (KubeStore.DEPLOYMENT, KubeStore.SERVICE)
