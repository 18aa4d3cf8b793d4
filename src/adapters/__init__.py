"""Adapters — cluster bindings for the plan engine.

Public re-exports for convenient access.
"""

from src.adapters.base import (
    ApiError,
    ClusterClient,
    ConflictError,
    NotFoundError,
    PatchType,
    Propagation,
    UnsupportedMediaTypeError,
)
from src.adapters.kubectl import KubectlClient
from src.adapters.mock import FakeCluster
from src.adapters.registry import KindInfo, KindRegistry, default_kinds

__all__ = [
    "ApiError",
    "ClusterClient",
    "ConflictError",
    "FakeCluster",
    "KindInfo",
    "KindRegistry",
    "KubectlClient",
    "NotFoundError",
    "PatchType",
    "Propagation",
    "UnsupportedMediaTypeError",
    "default_kinds",
]
