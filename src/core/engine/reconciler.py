"""
Reconciler — idempotently drive one resource descriptor to the cluster.

Apply branch:
    get → NotFound → create
        → found    → strategic merge patch
                     → 415 UnsupportedMediaType → merge patch
    then evaluate health on the object the server returned.

Delete branch:
    foreground-cascading delete; NotFound counts as done.

Every API failure other than the NotFound cases above is raised as a
``ReconcileError``. An unhealthy object is not an error; it only means
the owning step is not complete yet.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from src.adapters.base import (
    ApiError,
    ClusterClient,
    NotFoundError,
    PatchType,
    Propagation,
    UnsupportedMediaTypeError,
)
from src.core.engine.errors import ReconcileError
from src.core.engine.health import HealthRegistry, default_health_registry
from src.core.models.resource import ObjectKey, Resource

logger = logging.getLogger(__name__)


@dataclass
class ReconcileOutcome:
    """What happened to one resource in one pass."""

    key: ObjectKey
    action: str = ""   # created, patched, deleted, absent
    healthy: bool = False
    message: str = ""


class Reconciler:
    def __init__(self, client: ClusterClient, health: HealthRegistry | None = None):
        self._client = client
        self._health = health or default_health_registry()

    @property
    def client(self) -> ClusterClient:
        return self._client

    def reconcile(self, resource: Resource, delete: bool = False) -> ReconcileOutcome:
        """Apply or delete ``resource`` and report its health.

        Raises:
            ReconcileError: Any cluster failure other than an expected NotFound.
        """
        if delete:
            return self._delete(resource)
        return self._apply(resource)

    # ── Delete ───────────────────────────────────────────────────

    def _delete(self, resource: Resource) -> ReconcileOutcome:
        key = resource.key
        logger.info("Deleting %s", key)
        try:
            self._client.delete(resource.manifest, propagation=Propagation.FOREGROUND)
        except NotFoundError:
            logger.debug("%s already absent", key)
            return ReconcileOutcome(key=key, action="absent", healthy=True)
        except ApiError as e:
            raise ReconcileError(f"deleting {key}: {e}", key=key, verb="delete") from e
        return ReconcileOutcome(key=key, action="deleted", healthy=True)

    # ── Apply ────────────────────────────────────────────────────

    def _apply(self, resource: Resource) -> ReconcileOutcome:
        key = resource.key
        try:
            self._client.get(key, api_version=resource.api_version)
        except NotFoundError:
            live = self._create(resource)
            action = "created"
        except ApiError as e:
            raise ReconcileError(f"getting {key}: {e}", key=key, verb="get") from e
        else:
            live = self._patch(resource)
            action = "patched"

        healthy, message = self._health.is_healthy(live, self._client)
        return ReconcileOutcome(key=key, action=action, healthy=healthy, message=message)

    def _create(self, resource: Resource) -> dict:
        key = resource.key
        logger.info("Creating %s", key)
        try:
            return self._client.create(resource.copy_manifest())
        except ApiError as e:
            raise ReconcileError(f"creating {key}: {e}", key=key, verb="create") from e

    def _patch(self, resource: Resource) -> dict:
        """Patch an existing object, falling back to a merge patch.

        Strategic merge patches are rejected for custom resource kinds
        with 415 UnsupportedMediaType; a plain merge patch works there.
        """
        key = resource.key
        logger.info("Patching %s", key)
        try:
            return self._client.patch(resource.copy_manifest(), PatchType.STRATEGIC)
        except UnsupportedMediaTypeError:
            logger.debug("Strategic merge patch unsupported for %s, retrying as merge patch", key)
        except ApiError as e:
            raise ReconcileError(f"patching {key}: {e}", key=key, verb="patch") from e

        try:
            return self._client.patch(resource.copy_manifest(), PatchType.MERGE)
        except ApiError as e:
            raise ReconcileError(f"merge-patching {key}: {e}", key=key, verb="patch") from e
