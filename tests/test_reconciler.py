"""
Tests for the reconciler — create / patch / delete against the cluster.
"""

import pytest

from src.adapters.base import ApiError, ConflictError
from src.core.engine.errors import HealthCheckError, ReconcileError
from src.core.engine.health import HealthRegistry
from src.core.engine.reconciler import Reconciler
from src.core.models.resource import ObjectKey, Resource

CM_KEY = ObjectKey("ConfigMap", "demo-cm", "ns")
WIDGET_KEY = ObjectKey("Widget", "demo-w", "ns")


def _configmap(**data) -> Resource:
    return Resource(manifest={
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": "demo-cm", "namespace": "ns"},
        "data": data,
    })


def _widget(size: int = 1) -> Resource:
    return Resource(manifest={
        "apiVersion": "example.com/v1",
        "kind": "Widget",
        "metadata": {"name": "demo-w", "namespace": "ns"},
        "spec": {"size": size},
    })


class TestApply:
    def test_creates_missing_object(self, fake_cluster):
        outcome = Reconciler(fake_cluster).reconcile(_configmap(a="1"))

        assert outcome.action == "created"
        assert outcome.healthy
        assert fake_cluster.stored(CM_KEY)["data"] == {"a": "1"}

    def test_patches_existing_object(self, fake_cluster):
        reconciler = Reconciler(fake_cluster)
        reconciler.reconcile(_configmap(a="1"))
        outcome = reconciler.reconcile(_configmap(a="2"))

        assert outcome.action == "patched"
        assert fake_cluster.stored(CM_KEY)["data"] == {"a": "2"}
        assert fake_cluster.calls("patch")[0].detail == "strategic"

    def test_does_not_mutate_descriptor(self, fake_cluster):
        resource = _configmap(a="1")
        Reconciler(fake_cluster).reconcile(resource)
        assert "uid" not in resource.manifest["metadata"]

    def test_custom_kind_falls_back_to_merge_patch(self, fake_cluster):
        fake_cluster.add(_widget(1).manifest)
        outcome = Reconciler(fake_cluster).reconcile(_widget(2))

        assert outcome.action == "patched"
        assert [c.detail for c in fake_cluster.calls("patch")] == ["strategic", "merge"]
        assert fake_cluster.stored(WIDGET_KEY)["spec"]["size"] == 2

    def test_patch_failure_is_an_error(self, fake_cluster):
        fake_cluster.add(_widget(1).manifest)
        fake_cluster.fail_on("patch", ApiError("invalid"))
        with pytest.raises(ReconcileError, match="patching"):
            Reconciler(fake_cluster).reconcile(_widget(2))

    def test_create_conflict_is_an_error(self, fake_cluster):
        fake_cluster.fail_on("create", ConflictError("already exists", reason="AlreadyExists"))
        with pytest.raises(ReconcileError) as exc:
            Reconciler(fake_cluster).reconcile(_configmap())
        assert exc.value.verb == "create"
        assert exc.value.key == CM_KEY

    def test_get_failure_is_an_error(self, fake_cluster):
        fake_cluster.fail_on("get", ApiError("timeout", status_code=504))
        with pytest.raises(ReconcileError, match="getting ConfigMap ns/demo-cm"):
            Reconciler(fake_cluster).reconcile(_configmap())
        assert fake_cluster.calls("create") == []

    def test_health_uses_server_copy(self, fake_cluster):
        health = HealthRegistry()
        health.register("ConfigMap", lambda obj, client: (
            "uid" in obj["metadata"], "no uid",
        ))
        outcome = Reconciler(fake_cluster, health).reconcile(_configmap())
        assert outcome.healthy

    def test_unhealthy_outcome_carries_message(self, fake_cluster):
        health = HealthRegistry()
        health.register("ConfigMap", lambda obj, client: (False, "waiting"))
        outcome = Reconciler(fake_cluster, health).reconcile(_configmap())
        assert not outcome.healthy
        assert outcome.message == "waiting"

    def test_health_check_error_propagates(self, fake_cluster):
        def broken(obj, client):
            raise HealthCheckError("cannot evaluate")

        health = HealthRegistry()
        health.register("ConfigMap", broken)
        with pytest.raises(ReconcileError):
            Reconciler(fake_cluster, health).reconcile(_configmap())


class TestDelete:
    def test_deletes_existing_object(self, fake_cluster):
        fake_cluster.add(_configmap().manifest)
        outcome = Reconciler(fake_cluster).reconcile(_configmap(), delete=True)

        assert outcome.action == "deleted"
        assert outcome.healthy
        assert fake_cluster.stored(CM_KEY) is None

    def test_absent_object_is_fine(self, fake_cluster):
        outcome = Reconciler(fake_cluster).reconcile(_configmap(), delete=True)
        assert outcome.action == "absent"
        assert outcome.healthy

    def test_delete_failure_is_an_error(self, fake_cluster):
        fake_cluster.fail_on("delete", ApiError("forbidden", status_code=403))
        with pytest.raises(ReconcileError, match="deleting"):
            Reconciler(fake_cluster).reconcile(_configmap(), delete=True)

    def test_delete_never_creates(self, fake_cluster):
        Reconciler(fake_cluster).reconcile(_configmap(), delete=True)
        assert [c.verb for c in fake_cluster.call_log] == ["delete"]
