"""
Resource descriptor — one concrete manifest targeting one cluster object.

Descriptors are produced by the convention overlay, owned by the step
that produced them, and discarded at the end of the engine pass.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ObjectKey:
    """Identity of a cluster object. ``namespace`` is empty for cluster-scoped kinds."""

    kind: str
    name: str
    namespace: str = ""

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind} {self.namespace}/{self.name}"
        return f"{self.kind} {self.name}"


@dataclass
class Resource:
    """A manifest mapping plus the template it was rendered from."""

    manifest: dict[str, Any]
    template: str = ""

    @property
    def api_version(self) -> str:
        return self.manifest.get("apiVersion", "")

    @property
    def kind(self) -> str:
        return self.manifest.get("kind", "")

    @property
    def metadata(self) -> dict[str, Any]:
        return self.manifest.setdefault("metadata", {})

    @property
    def name(self) -> str:
        return self.metadata.get("name", "")

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace", "") or ""

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(kind=self.kind, name=self.name, namespace=self.namespace)

    def copy_manifest(self) -> dict[str, Any]:
        return copy.deepcopy(self.manifest)

    def to_json(self) -> str:
        return json.dumps(self.manifest, sort_keys=True)
