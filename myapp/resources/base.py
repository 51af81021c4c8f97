import copy
import mmh3
import hashlib
from logging import Logger
from typing import Any, Dict, List, Optional, Tuple, Union
from myapp.utils.helpers import canonical_quantities, canonicalize_dict
from myapp.common.models.labels import Labels
from myapp.resources.store import KubeStore
from myapp.sensors import OperatorSensor
from myapp.types.models.reconcile import ConvergeOutcome
from kubernetes_asyncio.client import V1Deployment, V1Service

# Fields the API server assigns to a Service spec on creation. A desired spec
# leaves them unset, so they are carried over from the live object.
SERVICE_ASSIGNED_FIELDS = ("cluster_ip", "cluster_ips", "ip_families", "ip_family_policy")

RESOURCE_HASH_ANNOTATION = "my.api.group/resource-hash"


def merge_spec(current: Any, desired: Any) -> Any:
    """Return a copy of `current` carrying the spec and ownership of `desired`.

    Name, uid, resourceVersion and other store-assigned metadata stay as they
    are on `current`, so the result can be written back with a conditional
    replace. Neither argument is modified.
    """
    merged = copy.deepcopy(current)
    spec = copy.deepcopy(desired.spec)
    if isinstance(current, V1Service) and current.spec is not None:
        for field in SERVICE_ASSIGNED_FIELDS:
            if getattr(spec, field) is None:
                setattr(spec, field, copy.deepcopy(getattr(current.spec, field)))
    merged.spec = spec
    merged.metadata.owner_references = copy.deepcopy(
        desired.metadata.owner_references
    )
    labels = dict(current.metadata.labels or {})
    labels.update(desired.metadata.labels or {})
    merged.metadata.labels = labels
    if desired.metadata.annotations:
        annotations = dict(current.metadata.annotations or {})
        annotations.update(desired.metadata.annotations)
        merged.metadata.annotations = annotations
    return merged


def _owner_references(obj: Any) -> List[Dict]:
    return [
        {
            "apiVersion": ref.api_version,
            "kind": ref.kind,
            "name": ref.name,
            "uid": ref.uid,
            "controller": ref.controller,
            "blockOwnerDeletion": ref.block_owner_deletion,
        }
        for ref in (obj.metadata.owner_references or [])
    ]


def prepare_deployment_watch_fields(deployment: V1Deployment) -> Dict:
    """
    Prepare fields of interest when comparing actual vs desired state.
    Fields the API server defaults (strategy, pull policy, ...) are left out so
    a freshly read object compares equal to the spec it was created from.
    """
    spec = deployment.spec
    template = spec.template
    containers = []
    for container in template.spec.containers or []:
        resources = container.resources
        containers.append(
            {
                "name": container.name,
                "image": container.image,
                "ports": [
                    {
                        "containerPort": port.container_port,
                        "name": port.name,
                        "protocol": port.protocol,
                    }
                    for port in container.ports or []
                ],
                "env": [
                    {"name": env.name, "value": env.value or ""}
                    for env in container.env or []
                ],
                "resources": {
                    "limits": canonical_quantities(resources.limits if resources else None),
                    "requests": canonical_quantities(
                        resources.requests if resources else None
                    ),
                },
            }
        )
    return {
        "metadata": {
            "labels": deployment.metadata.labels or {},
            "ownerReferences": _owner_references(deployment),
        },
        "replicas": spec.replicas,
        "selector": spec.selector.match_labels if spec.selector else {},
        "template": {
            "labels": (template.metadata.labels if template.metadata else None) or {},
            "containers": containers,
        },
    }


def prepare_service_watch_fields(service: V1Service) -> Dict:
    """
    Prepare fields of interest when comparing actual vs desired state.
    """
    spec = service.spec
    return {
        "metadata": {
            "labels": service.metadata.labels or {},
            "ownerReferences": _owner_references(service),
        },
        "type": spec.type,
        "selector": spec.selector or {},
        "ports": [
            {
                "name": port.name,
                "port": port.port,
                "targetPort": port.target_port,
                "protocol": port.protocol,
            }
            for port in spec.ports or []
        ],
    }


WATCH_FIELDS = {
    KubeStore.DEPLOYMENT: prepare_deployment_watch_fields,
    KubeStore.SERVICE: prepare_service_watch_fields,
}


def prepare_watch_fields(kind: str, obj: Any) -> Dict:
    return WATCH_FIELDS[kind](obj)


class BaseResource:
    """Base resource model."""

    OPERATOR_NAME = "myapp-operator"

    # Default no-op sensor; replaced with a SensorDelegate at operator startup.
    sensor: OperatorSensor = OperatorSensor()

    logger: Logger
    store: Optional[KubeStore]

    _name: str
    _namespace: str
    _component_name: str
    _labels: Labels

    def __init__(
        self, name: str, namespace: str, component_name: str, labels: Labels
    ):
        self._name = name
        self._namespace = namespace
        self._component_name = component_name
        self._labels = labels

    @property
    def name(self) -> str:
        return self._name

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def component_name(self) -> str:
        return self._component_name

    @property
    def labels(self) -> Labels:
        return self._labels

    def compute_hash(self, data: Any) -> str:
        """Compute a murmur3 hash."""
        if isinstance(data, dict):
            _data = canonicalize_dict(data)
        elif isinstance(data, str):
            _data = data.encode()
        else:
            raise ValueError(f"Hash of {type(data)} is not supported.")
        mumur_str = str(mmh3.hash128(_data))

        hash_obj = hashlib.sha256(mumur_str.encode("utf-8"))
        full_hash = hash_obj.hexdigest()

        # First 16 characters are enough for an annotation
        return full_hash[:16]

    def prepare_hash_annotation(self, hash: Union[str, int]) -> Dict[str, str]:
        """Prepare hash annotation for k8s resources."""
        return {RESOURCE_HASH_ANNOTATION: str(hash)}

    def detect_drift(self, kind: str, actual: Any, desired: Any) -> List[str]:
        """Names of the watched fields that differ between two objects."""
        actual_fields = prepare_watch_fields(kind, actual)
        desired_fields = prepare_watch_fields(kind, desired)
        if self.compute_hash(actual_fields) == self.compute_hash(desired_fields):
            return []
        return [
            field
            for field in desired_fields
            if self.compute_hash({field: actual_fields.get(field)})
            != self.compute_hash({field: desired_fields[field]})
        ]

    async def converge_child(
        self, kind: str, name: str, namespace: str, desired: Any
    ) -> Tuple[Any, ConvergeOutcome]:
        """Create `desired` if absent, or replace the live object if it drifted.

        Returns the object as last seen in the cluster and what was done.
        """
        current = await self.store.get(kind, name, namespace)
        if current is None:
            sensor_state = self.sensor.on_resource_sync_start(
                self.name, name, namespace, kind
            )
            success, error = True, None
            try:
                observed = await self.store.create(kind, namespace, desired)
            except Exception as e:
                success, error = False, e
                raise
            finally:
                self.sensor.on_resource_sync_complete(
                    self.name, name, namespace, kind, sensor_state, "create", success, error
                )
            self.logger.info(f"Created {kind} {namespace}/{name}.")
            return observed, ConvergeOutcome.CREATED

        merged = merge_spec(current, desired)
        drift_fields = self.detect_drift(kind, current, merged)
        if not drift_fields:
            self.logger.debug(f"{kind} {namespace}/{name} is up to date.")
            return current, ConvergeOutcome.UNCHANGED

        self.sensor.on_resource_drift_detected(
            self.name, name, namespace, kind, drift_fields
        )
        sensor_state = self.sensor.on_resource_sync_start(
            self.name, name, namespace, kind
        )
        success, error = True, None
        try:
            observed = await self.store.replace(kind, name, namespace, merged)
        except Exception as e:
            success, error = False, e
            raise
        finally:
            self.sensor.on_resource_sync_complete(
                self.name, name, namespace, kind, sensor_state, "update", success, error
            )
        self.logger.info(
            f"Updated {kind} {namespace}/{name} (changed: {', '.join(drift_fields)})."
        )
        return observed, ConvergeOutcome.UPDATED

    async def delete_child_if_present(self, kind: str, name: str, namespace: str) -> bool:
        """Delete a child object. Returns False if there was nothing to delete."""
        current = await self.store.get(kind, name, namespace)
        if current is None:
            return False
        sensor_state = self.sensor.on_resource_sync_start(
            self.name, name, namespace, kind
        )
        success, error = True, None
        try:
            await self.store.delete(kind, name, namespace)
        except Exception as e:
            success, error = False, e
            raise
        finally:
            self.sensor.on_resource_sync_complete(
                self.name, name, namespace, kind, sensor_state, "delete", success, error
            )
        self.logger.info(f"Deleted {kind} {namespace}/{name}.")
        return True
