"""Unit tests for rendering MyAppResource child objects."""

import pytest
from myapp.resources.myappresource import MyAppResource
from myapp.types.schemas import MyAppResourceSpecSchema
from myapp.types.settings import Settings


def make_app(spec: dict, name="whatever", namespace="default", conf=None):
    spec_model = MyAppResourceSpecSchema().load(spec)
    return MyAppResource.from_spec(
        name, namespace, spec_model, uid="uid-1234", conf=conf or Settings()
    )


def env_of(deployment):
    return {
        env.name: env.value
        for env in deployment.spec.template.spec.containers[0].env
    }


class TestPrimaryDeployment:
    """Tests for the podinfo deployment."""

    def test_name_and_namespace(self, spec):
        primary = make_app(spec).render().primary
        assert primary.metadata.name == "whatever"
        assert primary.metadata.namespace == "default"
        assert primary.kind == "Deployment"
        assert primary.api_version == "apps/v1"

    def test_image_composed_from_repository_and_tag(self, spec):
        spec["image"] = {"repository": "r", "tag": "t"}
        container = make_app(spec).render().primary.spec.template.spec.containers[0]
        assert container.image == "r:t"

    def test_defaults_when_optional_fields_absent(self):
        app = make_app({"ui": {"color": "#000000", "message": "m"}})
        primary = app.render().primary
        container = primary.spec.template.spec.containers[0]
        assert primary.spec.replicas == 1
        assert container.image == "ghcr.io/stefanprodan/podinfo:latest"
        assert container.resources is None

    def test_zero_replicas_kept(self, spec):
        spec["replicaCount"] = 0
        assert make_app(spec).render().primary.spec.replicas == 0

    def test_replicas_from_spec(self, spec):
        assert make_app(spec).render().primary.spec.replicas == 2

    def test_container_port(self, spec):
        container = make_app(spec).render().primary.spec.template.spec.containers[0]
        assert container.name == "podinfo"
        assert len(container.ports) == 1
        port = container.ports[0]
        assert port.container_port == 9898
        assert port.name == "http"
        assert port.protocol == "TCP"

    def test_resources_passed_through(self, spec):
        container = make_app(spec).render().primary.spec.template.spec.containers[0]
        assert container.resources.limits == {"memory": "64Mi"}
        assert container.resources.requests == {"cpu": "100m"}

    def test_ui_env_without_cache(self, spec):
        primary = make_app(spec).render().primary
        names = [env.name for env in primary.spec.template.spec.containers[0].env]
        assert names == ["UI_COLOR", "UI_MESSAGE"]
        assert env_of(primary) == {"UI_COLOR": "#34577c", "UI_MESSAGE": "hello"}

    def test_cache_endpoint_appended_when_enabled(self, cache_spec):
        primary = make_app(cache_spec).render().primary
        names = [env.name for env in primary.spec.template.spec.containers[0].env]
        assert names == ["UI_COLOR", "UI_MESSAGE", "CACHE_ENDPOINT"]
        assert (
            env_of(primary)["CACHE_ENDPOINT"]
            == "tcp://whatever-cache.default.svc.cluster.local:6379"
        )

    def test_cache_endpoint_uses_configured_cluster_domain(self, cache_spec):
        app = make_app(
            cache_spec, namespace="apps", conf=Settings(cluster_domain="cluster.example")
        )
        assert (
            env_of(app.render().primary)["CACHE_ENDPOINT"]
            == "tcp://whatever-cache.apps.cluster.example:6379"
        )

    def test_selector_matches_pod_labels(self, spec):
        primary = make_app(spec).render().primary
        assert primary.spec.selector.match_labels == {"app": "whatever"}
        pod_labels = primary.spec.template.metadata.labels
        assert pod_labels["app"] == "whatever"

    def test_long_name_labels_are_valid_and_distinct(self, cache_spec):
        name = "a" * 70
        rendered = make_app(cache_spec, name=name).render()

        primary_selector = rendered.primary.spec.selector.match_labels
        cache_selector = rendered.cache_service.spec.selector
        assert primary_selector != cache_selector
        assert rendered.cache_deployment.spec.selector.match_labels == cache_selector
        for obj in rendered:
            assert all(len(v) <= 63 for v in obj.metadata.labels.values())
        assert rendered.primary.metadata.name == name

    def test_owner_reference(self, spec):
        primary = make_app(spec).render().primary
        (ref,) = primary.metadata.owner_references
        assert ref.api_version == "my.api.group/v1alpha1"
        assert ref.kind == "MyAppResource"
        assert ref.name == "whatever"
        assert ref.uid == "uid-1234"
        assert ref.controller is True
        assert ref.block_owner_deletion is True

    def test_managed_by_label(self, spec):
        labels = make_app(spec).render().primary.metadata.labels
        assert labels["app.kubernetes.io/managed-by"] == "myapp-operator"
        assert labels["my.api.group/owner"] == "whatever"


class TestCacheObjects:
    """Tests for the cache deployment and service."""

    def test_absent_when_cache_disabled(self, spec):
        rendered = make_app(spec).render()
        assert rendered.cache_deployment is None
        assert rendered.cache_service is None

    def test_absent_when_cache_explicitly_disabled(self, spec):
        spec["cache"] = {"enabled": False}
        rendered = make_app(spec).render()
        assert rendered.cache_deployment is None
        assert rendered.cache_service is None

    def test_cache_deployment(self, cache_spec):
        deployment = make_app(cache_spec).render().cache_deployment
        container = deployment.spec.template.spec.containers[0]
        assert deployment.metadata.name == "whatever-cache"
        assert deployment.spec.replicas == 1
        assert container.name == "cache"
        assert container.image == "redis/redis-stack:latest"
        assert container.ports[0].container_port == 6379
        assert container.ports[0].name == "redis"
        assert deployment.spec.selector.match_labels == {"app": "whatever-cache"}

    def test_cache_deployment_ignores_primary_spec(self, cache_spec):
        other = dict(cache_spec, replicaCount=7, image={"repository": "x", "tag": "y"})
        first = make_app(cache_spec).render().cache_deployment
        second = make_app(other).render().cache_deployment
        assert first.to_dict() == second.to_dict()

    def test_cache_service(self, cache_spec):
        service = make_app(cache_spec).render().cache_service
        (port,) = service.spec.ports
        assert service.metadata.name == "whatever-cache"
        assert service.kind == "Service"
        assert service.spec.selector == {"app": "whatever-cache"}
        assert port.port == 6379
        assert port.target_port == 6379
        assert port.protocol == "TCP"

    def test_cache_objects_owned_by_declaration(self, cache_spec):
        rendered = make_app(cache_spec).render()
        for obj in (rendered.cache_deployment, rendered.cache_service):
            (ref,) = obj.metadata.owner_references
            assert ref.name == "whatever"
            assert ref.controller is True


class TestRenderDeterminism:
    @pytest.mark.parametrize("cache_enabled", [False, True])
    def test_same_input_same_output(self, spec, cache_enabled):
        spec["cache"] = {"enabled": cache_enabled}
        first = make_app(spec).render()
        second = make_app(spec).render()
        for a, b in zip(first, second):
            assert (a.to_dict() if a else None) == (b.to_dict() if b else None)

    def test_hash_annotation_tracks_spec(self, spec):
        first = make_app(spec).render().primary
        spec["replicaCount"] = 5
        second = make_app(spec).render().primary
        key = "my.api.group/resource-hash"
        assert first.metadata.annotations[key] != second.metadata.annotations[key]
