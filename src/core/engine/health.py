"""
Health evaluator — kind-polymorphic readiness predicates.

A registered table maps resource kind -> predicate. Each predicate
receives the live object and the cluster client and returns
``(healthy, message)``. "Not healthy yet" is a normal answer; a
predicate raises ``HealthCheckError`` only when it cannot reach a
verdict at all (e.g. a cross-referenced object is gone).

Kinds with no registered predicate are healthy by default.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from src.adapters.base import ApiError, ClusterClient, NotFoundError, key_of
from src.core.engine.errors import HealthCheckError
from src.core.models.plan import ExecutionStatus
from src.core.models.resource import ObjectKey

logger = logging.getLogger(__name__)

HealthPredicate = Callable[[dict[str, Any], ClusterClient], tuple[bool, str]]


def _name(obj: dict[str, Any]) -> str:
    return (obj.get("metadata") or {}).get("name", "")


def _status(obj: dict[str, Any]) -> dict[str, Any]:
    return obj.get("status") or {}


# ═══════════════════════════════════════════════════════════════════
#  Predicates
# ═══════════════════════════════════════════════════════════════════


def replicas_ready(obj: dict[str, Any], client: ClusterClient) -> tuple[bool, str]:
    """Healthy when observed ready replicas equal the desired count (default 1)."""
    desired = (obj.get("spec") or {}).get("replicas")
    if desired is None:
        desired = 1
    ready = _status(obj).get("readyReplicas") or 0
    if ready == desired:
        return True, ""
    return False, (
        f"{obj.get('kind')} {_name(obj)}: not enough ready replicas: {ready}/{desired}"
    )


def always_healthy(obj: dict[str, Any], client: ClusterClient) -> tuple[bool, str]:
    """Healthy as soon as the object exists on the server."""
    return True, ""


def job_succeeded(obj: dict[str, Any], client: ClusterClient) -> tuple[bool, str]:
    """Healthy once at least one pod has succeeded.

    Failed runs are reported the same way as running ones.
    """
    succeeded = _status(obj).get("succeeded") or 0
    if succeeded >= 1:
        return True, ""
    return False, f"job {_name(obj)} still running or failed"


def pod_running(obj: dict[str, Any], client: ClusterClient) -> tuple[bool, str]:
    phase = _status(obj).get("phase", "")
    if phase in ("Running", "Succeeded"):
        return True, ""
    return False, f"pod {_name(obj)} is not running yet: {phase or 'Unknown'}"


def crd_established(obj: dict[str, Any], client: ClusterClient) -> tuple[bool, str]:
    """Healthy once the definition can be read back from the server."""
    try:
        client.get(key_of(obj), api_version=obj.get("apiVersion", ""))
    except NotFoundError:
        return False, f"custom resource definition {_name(obj)} not found yet"
    except ApiError as e:
        raise HealthCheckError(
            f"reading custom resource definition {_name(obj)}: {e}", key=key_of(obj), verb="get",
        ) from e
    return True, ""


def instance_plan_complete(obj: dict[str, Any], client: ClusterClient) -> tuple[bool, str]:
    """Healthy when the nested instance's active plan is COMPLETE.

    The instance status points at its PlanExecution through
    ``status.activePlan`` ({name, namespace}). No pointer yet means
    the nested controller has not picked the instance up; a pointer
    to an object that does not exist is an error.
    """
    ref = _status(obj).get("activePlan") or {}
    if not ref.get("name"):
        return False, f"instance {_name(obj)} has no active plan yet"

    meta = obj.get("metadata") or {}
    key = ObjectKey(
        kind="PlanExecution",
        name=ref["name"],
        namespace=ref.get("namespace") or meta.get("namespace", ""),
    )
    try:
        plan = client.get(key, api_version=obj.get("apiVersion", ""))
    except ApiError as e:
        raise HealthCheckError(
            f"instance {_name(obj)} active plan not found: {e}", key=key, verb="get",
        ) from e

    state = _status(plan).get("state", "")
    logger.info("Instance %s active plan %s is in state %s", _name(obj), key.name, state)
    if state == ExecutionStatus.COMPLETE:
        return True, ""
    return False, f"instance {_name(obj)} active plan is in state {state or 'unknown'}"


# ═══════════════════════════════════════════════════════════════════
#  Registry
# ═══════════════════════════════════════════════════════════════════


class HealthRegistry:
    """Kind -> health predicate table.

    New kinds are supported by registering a predicate, not by
    editing a dispatch switch.
    """

    def __init__(self) -> None:
        self._predicates: dict[str, HealthPredicate] = {}

    def register(self, kind: str, predicate: HealthPredicate) -> None:
        if kind in self._predicates:
            logger.debug("Overwriting health predicate for %s", kind)
        self._predicates[kind] = predicate

    def unregister(self, kind: str) -> None:
        self._predicates.pop(kind, None)

    def get(self, kind: str) -> HealthPredicate | None:
        return self._predicates.get(kind)

    def kinds(self) -> list[str]:
        return list(self._predicates)

    def is_healthy(self, obj: dict[str, Any], client: ClusterClient) -> tuple[bool, str]:
        """Evaluate ``obj`` with the predicate registered for its kind.

        Raises:
            HealthCheckError: The predicate could not evaluate the object.
        """
        kind = obj.get("kind", "")
        predicate = self._predicates.get(kind)
        if predicate is None:
            logger.debug("Unknown kind %s is marked healthy by default", kind)
            return True, ""

        healthy, message = predicate(obj, client)
        if healthy:
            logger.debug("%s %s is marked healthy", kind, _name(obj))
        else:
            logger.info("%s %s is NOT healthy: %s", kind, _name(obj), message)
        return healthy, message


def default_health_registry() -> HealthRegistry:
    registry = HealthRegistry()
    registry.register("StatefulSet", replicas_ready)
    registry.register("Deployment", always_healthy)
    registry.register("Job", job_succeeded)
    registry.register("Instance", instance_plan_complete)
    registry.register("Pod", pod_running)
    registry.register("CustomResourceDefinition", crd_established)
    return registry
