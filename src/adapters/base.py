"""
Cluster client base — the protocol contract between engine and cluster.

The reconciler and the health evaluator only talk to the cluster
through this interface, never directly to kubectl or an HTTP client.
Every call blocks until the server answers; there is no caching, each
pass re-reads live state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import Any

from src.core.models.resource import ObjectKey


class PatchType(StrEnum):
    STRATEGIC = "strategic"
    MERGE = "merge"


class Propagation(StrEnum):
    FOREGROUND = "Foreground"
    BACKGROUND = "Background"
    ORPHAN = "Orphan"


# ═══════════════════════════════════════════════════════════════════
#  API errors
# ═══════════════════════════════════════════════════════════════════


class ApiError(Exception):
    """Error returned by the cluster API server."""

    status_code: int = 500
    default_reason = "InternalError"

    def __init__(self, message: str, reason: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.reason = reason or self.default_reason
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(ApiError):
    status_code = 404
    default_reason = "NotFound"


class ConflictError(ApiError):
    status_code = 409
    default_reason = "Conflict"


class UnsupportedMediaTypeError(ApiError):
    """The server rejected the patch content type (e.g. SMP on a custom resource)."""

    status_code = 415
    default_reason = "UnsupportedMediaType"


# ═══════════════════════════════════════════════════════════════════
#  Client contract
# ═══════════════════════════════════════════════════════════════════


class ClusterClient(ABC):
    """Abstract base class for cluster clients.

    Objects cross this boundary as plain manifest mappings
    (``apiVersion``/``kind``/``metadata``/...). Implementations raise
    ``ApiError`` subclasses; they never return error values.

    To create a new client:
        1. Subclass ClusterClient
        2. Implement name, get, list, create, patch, delete
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The client identifier (e.g., 'kubectl', 'fake')."""

    @abstractmethod
    def get(self, key: ObjectKey, api_version: str = "") -> dict[str, Any]:
        """Fetch one object by kind and namespaced name.

        Raises:
            NotFoundError: The object does not exist.
        """

    @abstractmethod
    def list(
        self,
        kind: str,
        namespace: str = "",
        label_selector: dict[str, str] | None = None,
        api_version: str = "",
    ) -> list[dict[str, Any]]:
        """List objects of ``kind`` matching every label in ``label_selector``."""

    @abstractmethod
    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Create ``obj`` and return the server's copy."""

    @abstractmethod
    def patch(self, obj: dict[str, Any], patch_type: PatchType) -> dict[str, Any]:
        """Patch the object identified by ``obj`` with ``obj`` as the patch body.

        Raises:
            UnsupportedMediaTypeError: The server does not accept ``patch_type``
                for this kind.
        """

    @abstractmethod
    def delete(
        self,
        obj: dict[str, Any],
        propagation: Propagation = Propagation.FOREGROUND,
    ) -> None:
        """Delete the object identified by ``obj``."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


def key_of(obj: dict[str, Any]) -> ObjectKey:
    """Build the ObjectKey of a manifest mapping."""
    meta = obj.get("metadata") or {}
    return ObjectKey(
        kind=obj.get("kind", ""),
        name=meta.get("name", ""),
        namespace=meta.get("namespace", "") or "",
    )
