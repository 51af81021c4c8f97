"""Shared fixtures: an in-memory stand-in for the Kubernetes API server."""

import copy
import json
import uuid
import pytest
from collections import Counter
from types import SimpleNamespace
from kubernetes_asyncio.client import ApiException, V1DeploymentStatus
from myapp.resources.store import KubeStore
from myapp.types.settings import Settings

DEPLOYMENT = "Deployment"
SERVICE = "Service"


def api_error(status: int, reason: str, message: str = "") -> ApiException:
    ex = ApiException(status=status, reason=reason)
    ex.body = json.dumps({"reason": reason.replace(" ", ""), "message": message})
    return ex


class FakeCluster:
    """Implements the AppsV1Api, CoreV1Api and CustomObjectsApi calls KubeStore makes.

    Objects are stored as deep copies, so callers never share state with the
    "server". Every write is counted in `calls` by (verb, kind).
    """

    def __init__(self):
        self.objects = {}
        self.declarations = {}
        self.calls = Counter()
        self.failures = {}
        self._version = 0

    # helpers

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _maybe_fail(self, verb: str, kind: str):
        error = self.failures.pop((verb, kind), None)
        if error is not None:
            raise error

    def fail_next(self, verb: str, kind: str, error: Exception):
        self.failures[(verb, kind)] = error

    def writes(self, verb: str = None) -> int:
        return sum(
            count
            for (v, kind), count in self.calls.items()
            if v != "read" and (verb is None or v == verb)
        )

    def get_object(self, kind: str, name: str, namespace: str = "default"):
        return self.objects.get((kind, namespace, name))

    def set_ready(self, name: str, ready: int, namespace: str = "default"):
        obj = self.objects[(DEPLOYMENT, namespace, name)]
        obj.status = V1DeploymentStatus(ready_replicas=ready)

    def add_declaration(
        self, name: str, spec: dict, namespace: str = "default", status: dict = None
    ) -> dict:
        body = {
            "apiVersion": "my.api.group/v1alpha1",
            "kind": "MyAppResource",
            "metadata": {
                "name": name,
                "namespace": namespace,
                "uid": str(uuid.uuid4()),
                "generation": 1,
            },
            "spec": spec,
        }
        if status is not None:
            body["status"] = status
        self.declarations[(namespace, name)] = body
        return body

    def set_spec(self, name: str, spec: dict, namespace: str = "default"):
        body = self.declarations[(namespace, name)]
        body["spec"] = spec
        body["metadata"]["generation"] += 1

    # generic verbs

    async def _read(self, kind, name, namespace):
        self.calls[("read", kind)] += 1
        self._maybe_fail("read", kind)
        obj = self.objects.get((kind, namespace, name))
        if obj is None:
            raise api_error(404, "Not Found", f'{kind} "{name}" not found')
        return copy.deepcopy(obj)

    async def _list(self, kind, namespace, label_selector=None):
        self.calls[("list", kind)] += 1
        wanted = dict(
            pair.split("=", 1) for pair in (label_selector or "").split(",") if pair
        )
        items = [
            copy.deepcopy(obj)
            for (k, ns, _), obj in sorted(self.objects.items(), key=lambda i: i[0])
            if k == kind
            and ns == namespace
            and all((obj.metadata.labels or {}).get(key) == v for key, v in wanted.items())
        ]
        return SimpleNamespace(items=items)

    async def _create(self, kind, namespace, body):
        self.calls[("create", kind)] += 1
        self._maybe_fail("create", kind)
        name = body.metadata.name
        if (kind, namespace, name) in self.objects:
            raise api_error(409, "AlreadyExists", f'{kind} "{name}" already exists')
        obj = copy.deepcopy(body)
        obj.metadata.namespace = namespace
        obj.metadata.uid = str(uuid.uuid4())
        obj.metadata.resource_version = self._next_version()
        if kind == SERVICE:
            obj.spec.cluster_ip = "10.0.0.10"
            obj.spec.cluster_ips = ["10.0.0.10"]
        self.objects[(kind, namespace, name)] = obj
        return copy.deepcopy(obj)

    async def _replace(self, kind, name, namespace, body):
        self.calls[("replace", kind)] += 1
        self._maybe_fail("replace", kind)
        current = self.objects.get((kind, namespace, name))
        if current is None:
            raise api_error(404, "Not Found", f'{kind} "{name}" not found')
        if body.metadata.resource_version != current.metadata.resource_version:
            raise api_error(
                409, "Conflict", "the object has been modified; please apply your changes"
            )
        obj = copy.deepcopy(body)
        obj.metadata.resource_version = self._next_version()
        obj.status = current.status
        self.objects[(kind, namespace, name)] = obj
        return copy.deepcopy(obj)

    async def _delete(self, kind, name, namespace, body=None):
        self.calls[("delete", kind)] += 1
        self._maybe_fail("delete", kind)
        if self.objects.pop((kind, namespace, name), None) is None:
            raise api_error(404, "Not Found", f'{kind} "{name}" not found')

    # AppsV1Api

    async def read_namespaced_deployment(self, name, namespace):
        return await self._read(DEPLOYMENT, name, namespace)

    async def list_namespaced_deployment(self, namespace, label_selector=None):
        return await self._list(DEPLOYMENT, namespace, label_selector)

    async def create_namespaced_deployment(self, namespace, body):
        return await self._create(DEPLOYMENT, namespace, body)

    async def replace_namespaced_deployment(self, name, namespace, body):
        return await self._replace(DEPLOYMENT, name, namespace, body)

    async def delete_namespaced_deployment(self, name, namespace, body=None):
        return await self._delete(DEPLOYMENT, name, namespace, body)

    # CoreV1Api

    async def read_namespaced_service(self, name, namespace):
        return await self._read(SERVICE, name, namespace)

    async def list_namespaced_service(self, namespace, label_selector=None):
        return await self._list(SERVICE, namespace, label_selector)

    async def create_namespaced_service(self, namespace, body):
        return await self._create(SERVICE, namespace, body)

    async def replace_namespaced_service(self, name, namespace, body):
        return await self._replace(SERVICE, name, namespace, body)

    async def delete_namespaced_service(self, name, namespace, body=None):
        return await self._delete(SERVICE, name, namespace, body)

    # CustomObjectsApi

    async def get_namespaced_custom_object(self, group, version, namespace, plural, name):
        self.calls[("read", "MyAppResource")] += 1
        self._maybe_fail("read", "MyAppResource")
        body = self.declarations.get((namespace, name))
        if body is None:
            raise api_error(404, "Not Found", f'myappresources "{name}" not found')
        return copy.deepcopy(body)

    async def patch_namespaced_custom_object_status(
        self, group, version, namespace, plural, name, body
    ):
        self.calls[("patch_status", "MyAppResource")] += 1
        self._maybe_fail("patch_status", "MyAppResource")
        declaration = self.declarations.get((namespace, name))
        if declaration is None:
            raise api_error(404, "Not Found", f'myappresources "{name}" not found')
        declaration.setdefault("status", {}).update(body["status"])
        return copy.deepcopy(declaration)


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def store(cluster):
    return KubeStore(cluster, cluster, cluster, timeout=5.0)


@pytest.fixture
def conf():
    return Settings(cluster_domain="svc.cluster.local")


@pytest.fixture
def spec():
    """A valid declaration spec with the cache disabled."""
    return {
        "replicaCount": 2,
        "resources": {
            "limits": {"memory": "64Mi"},
            "requests": {"cpu": "100m"},
        },
        "image": {"repository": "ghcr.io/stefanprodan/podinfo", "tag": "6.5.0"},
        "ui": {"color": "#34577c", "message": "hello"},
    }


@pytest.fixture
def cache_spec(spec):
    return dict(spec, cache={"enabled": True})


@pytest.fixture
def api_error_for():
    return api_error
