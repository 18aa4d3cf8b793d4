"""
Tests for the health evaluator.
"""

import pytest

from src.adapters.base import ApiError
from src.adapters.mock import FakeCluster
from src.core.engine.errors import HealthCheckError
from src.core.engine.health import (
    HealthRegistry,
    crd_established,
    default_health_registry,
    job_succeeded,
    pod_running,
    replicas_ready,
)


def _obj(kind: str, spec: dict | None = None, status: dict | None = None, **meta) -> dict:
    obj = {
        "apiVersion": "planengine.dev/v1beta1" if kind == "Instance" else "v1",
        "kind": kind,
        "metadata": {"name": "x", "namespace": "ns", **meta},
    }
    if spec is not None:
        obj["spec"] = spec
    if status is not None:
        obj["status"] = status
    return obj


@pytest.fixture
def registry() -> HealthRegistry:
    return default_health_registry()


class TestStatefulSet:
    def test_ready(self, fake_cluster):
        obj = _obj("StatefulSet", {"replicas": 3}, {"readyReplicas": 3})
        assert replicas_ready(obj, fake_cluster) == (True, "")

    def test_not_ready(self, fake_cluster):
        healthy, message = replicas_ready(
            _obj("StatefulSet", {"replicas": 3}, {"readyReplicas": 1}), fake_cluster,
        )
        assert not healthy
        assert "1/3" in message

    def test_desired_defaults_to_one(self, fake_cluster):
        assert replicas_ready(_obj("StatefulSet", {}, {"readyReplicas": 1}), fake_cluster)[0]
        assert not replicas_ready(_obj("StatefulSet", {}, {}), fake_cluster)[0]

    def test_zero_replicas_is_healthy(self, fake_cluster):
        assert replicas_ready(_obj("StatefulSet", {"replicas": 0}), fake_cluster)[0]


class TestDeployment:
    def test_healthy_as_soon_as_it_exists(self, registry, fake_cluster):
        obj = _obj("Deployment", {"replicas": 3}, {"readyReplicas": 0})
        assert registry.is_healthy(obj, fake_cluster) == (True, "")

    def test_stricter_check_can_be_registered(self, registry, fake_cluster):
        registry.register("Deployment", replicas_ready)
        obj = _obj("Deployment", {"replicas": 3}, {"readyReplicas": 0})
        assert not registry.is_healthy(obj, fake_cluster)[0]


class TestJob:
    def test_succeeded(self, fake_cluster):
        assert job_succeeded(_obj("Job", status={"succeeded": 1}), fake_cluster)[0]

    def test_running_or_failed(self, fake_cluster):
        for status in ({}, {"active": 1}, {"failed": 3}):
            healthy, message = job_succeeded(_obj("Job", status=status), fake_cluster)
            assert not healthy
            assert "still running or failed" in message


class TestPod:
    @pytest.mark.parametrize("phase,healthy", [
        ("Running", True),
        ("Succeeded", True),
        ("Pending", False),
        ("Failed", False),
    ])
    def test_phases(self, fake_cluster, phase, healthy):
        assert pod_running(_obj("Pod", status={"phase": phase}), fake_cluster)[0] is healthy


class TestCustomResourceDefinition:
    def test_readable_definition_is_healthy(self, fake_cluster):
        crd = fake_cluster.add({
            "apiVersion": "apiextensions.k8s.io/v1",
            "kind": "CustomResourceDefinition",
            "metadata": {"name": "widgets.example.com"},
        })
        assert crd_established(crd, fake_cluster)[0]

    def test_missing_definition_is_unhealthy(self, fake_cluster):
        crd = {
            "apiVersion": "apiextensions.k8s.io/v1",
            "kind": "CustomResourceDefinition",
            "metadata": {"name": "widgets.example.com"},
        }
        assert not crd_established(crd, fake_cluster)[0]

    def test_api_failure_raises(self, fake_cluster):
        fake_cluster.fail_on("get", ApiError("connection refused"))
        crd = {"kind": "CustomResourceDefinition", "metadata": {"name": "w"}}
        with pytest.raises(HealthCheckError):
            crd_established(crd, fake_cluster)


class TestNestedInstance:
    def _plan_execution(self, cluster: FakeCluster, state: str) -> None:
        cluster.add({
            "apiVersion": "planengine.dev/v1beta1",
            "kind": "PlanExecution",
            "metadata": {"name": "child-deploy", "namespace": "ns"},
            "status": {"state": state},
        })

    def test_no_active_plan_yet(self, registry, fake_cluster):
        healthy, message = registry.is_healthy(_obj("Instance", status={}), fake_cluster)
        assert not healthy
        assert "no active plan" in message

    def test_active_plan_complete(self, registry, fake_cluster):
        self._plan_execution(fake_cluster, "COMPLETE")
        obj = _obj("Instance", status={"activePlan": {"name": "child-deploy"}})
        assert registry.is_healthy(obj, fake_cluster) == (True, "")

    def test_active_plan_in_progress(self, registry, fake_cluster):
        self._plan_execution(fake_cluster, "IN_PROGRESS")
        obj = _obj("Instance", status={"activePlan": {"name": "child-deploy", "namespace": "ns"}})
        healthy, message = registry.is_healthy(obj, fake_cluster)
        assert not healthy
        assert "IN_PROGRESS" in message

    def test_dangling_reference_raises(self, registry, fake_cluster):
        obj = _obj("Instance", status={"activePlan": {"name": "gone"}})
        with pytest.raises(HealthCheckError, match="not found"):
            registry.is_healthy(obj, fake_cluster)


class TestRegistry:
    def test_unknown_kind_is_healthy(self, registry, fake_cluster):
        assert registry.is_healthy(_obj("ConfigMap"), fake_cluster) == (True, "")

    def test_default_kinds(self, registry):
        assert {"StatefulSet", "Deployment", "Job", "Instance"} <= set(registry.kinds())

    def test_register_and_unregister(self, fake_cluster):
        registry = HealthRegistry()
        registry.register("ConfigMap", lambda obj, client: (False, "never"))
        assert registry.is_healthy(_obj("ConfigMap"), fake_cluster) == (False, "never")

        registry.unregister("ConfigMap")
        assert registry.get("ConfigMap") is None
        assert registry.is_healthy(_obj("ConfigMap"), fake_cluster)[0]
