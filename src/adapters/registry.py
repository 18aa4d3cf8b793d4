"""
Kind registry — what the engine knows about each resource kind.

An explicit registry object, built once at startup and handed to the
components that need it (overlay, fake cluster), instead of global
scheme registration at import time. Lookups for unknown kinds fall
back to "namespaced custom resource".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# API group/version for the orchestrator's own custom resources
PLAN_API_VERSION = "planengine.dev/v1beta1"


@dataclass(frozen=True)
class KindInfo:
    kind: str
    api_version: str
    namespaced: bool = True
    custom: bool = False


class KindRegistry:
    """Central registry of resource kinds.

    Features:
        - Register/unregister kinds by name
        - Namespaced vs cluster-scoped lookups
        - Built-in vs custom resource lookups
    """

    def __init__(self) -> None:
        self._kinds: dict[str, KindInfo] = {}

    def register(self, info: KindInfo) -> None:
        if info.kind in self._kinds:
            logger.warning("Overwriting existing kind: %s", info.kind)
        self._kinds[info.kind] = info
        logger.debug("Registered kind: %s (%s)", info.kind, info.api_version)

    def unregister(self, kind: str) -> None:
        self._kinds.pop(kind, None)

    def get(self, kind: str) -> KindInfo | None:
        return self._kinds.get(kind)

    def list_kinds(self) -> list[str]:
        return list(self._kinds.keys())

    def is_namespaced(self, kind: str) -> bool:
        info = self._kinds.get(kind)
        return True if info is None else info.namespaced

    def is_custom(self, kind: str) -> bool:
        info = self._kinds.get(kind)
        return True if info is None else info.custom


_BUILTIN_KINDS = (
    # core
    ("Pod", "v1", True),
    ("Service", "v1", True),
    ("ConfigMap", "v1", True),
    ("Secret", "v1", True),
    ("ServiceAccount", "v1", True),
    ("PersistentVolumeClaim", "v1", True),
    ("Namespace", "v1", False),
    ("PersistentVolume", "v1", False),
    # workloads
    ("Deployment", "apps/v1", True),
    ("StatefulSet", "apps/v1", True),
    ("DaemonSet", "apps/v1", True),
    ("ReplicaSet", "apps/v1", True),
    ("Job", "batch/v1", True),
    ("CronJob", "batch/v1", True),
    # networking / policy
    ("Ingress", "networking.k8s.io/v1", True),
    ("NetworkPolicy", "networking.k8s.io/v1", True),
    ("PodDisruptionBudget", "policy/v1", True),
    ("HorizontalPodAutoscaler", "autoscaling/v2", True),
    # rbac
    ("Role", "rbac.authorization.k8s.io/v1", True),
    ("RoleBinding", "rbac.authorization.k8s.io/v1", True),
    ("ClusterRole", "rbac.authorization.k8s.io/v1", False),
    ("ClusterRoleBinding", "rbac.authorization.k8s.io/v1", False),
    # storage / extensions
    ("StorageClass", "storage.k8s.io/v1", False),
    ("CustomResourceDefinition", "apiextensions.k8s.io/v1", False),
)


def default_kinds() -> KindRegistry:
    """Registry pre-loaded with built-in kinds and the orchestrator's own CRDs."""
    registry = KindRegistry()
    for kind, api_version, namespaced in _BUILTIN_KINDS:
        registry.register(KindInfo(kind=kind, api_version=api_version, namespaced=namespaced))
    registry.register(KindInfo(kind="Instance", api_version=PLAN_API_VERSION, custom=True))
    registry.register(KindInfo(kind="PlanExecution", api_version=PLAN_API_VERSION, custom=True))
    return registry
