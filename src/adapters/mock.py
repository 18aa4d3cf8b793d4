"""
Fake cluster — in-memory test double for the cluster client.

Used by tests and by ``planengine plan run --fake`` to exercise the
engine without a live cluster. Behaves like an API server where it
matters to the engine: NotFound on missing objects, AlreadyExists on
duplicate creates, server-owned ``status`` that patches cannot
overwrite, and strategic merge patches rejected for custom kinds.
"""

from __future__ import annotations

import copy
import itertools
import uuid
from dataclasses import dataclass
from typing import Any

from src.adapters.base import (
    ApiError,
    ClusterClient,
    ConflictError,
    NotFoundError,
    PatchType,
    Propagation,
    UnsupportedMediaTypeError,
    key_of,
)
from src.adapters.registry import KindRegistry, default_kinds
from src.core.models.resource import ObjectKey


@dataclass
class CallRecord:
    verb: str
    key: ObjectKey | None = None
    detail: str = ""


def merge_patch(target: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Apply a JSON merge patch (RFC 7386) and return the merged mapping."""
    result = copy.deepcopy(target)
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_patch(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


class FakeCluster(ClusterClient):
    """Universal in-memory cluster for testing.

    Objects can be seeded with ``add`` and their server-side status
    moved forward with ``set_status``. Failures can be injected per
    verb (and optionally per key) with ``fail_on``.
    """

    def __init__(self, kinds: KindRegistry | None = None, client_name: str = "fake"):
        self._name = client_name
        self._kinds = kinds or default_kinds()
        self._objects: dict[ObjectKey, dict[str, Any]] = {}
        self._failures: list[tuple[str, ObjectKey | None, ApiError]] = []
        self._call_log: list[CallRecord] = []
        self._versions = itertools.count(1)

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[CallRecord]:
        """Every call this fake has received, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls(self, verb: str) -> list[CallRecord]:
        return [c for c in self._call_log if c.verb == verb]

    # ── Test setup ───────────────────────────────────────────────

    def add(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Seed an object (status included) without logging a call."""
        stored = copy.deepcopy(obj)
        self._stamp(stored)
        self._objects[key_of(stored)] = stored
        return copy.deepcopy(stored)

    def set_status(self, key: ObjectKey, status: dict[str, Any]) -> None:
        """Replace the server-owned status of an existing object."""
        if key not in self._objects:
            raise KeyError(str(key))
        self._objects[key]["status"] = copy.deepcopy(status)

    def stored(self, key: ObjectKey) -> dict[str, Any] | None:
        obj = self._objects.get(key)
        return copy.deepcopy(obj) if obj is not None else None

    def fail_on(self, verb: str, error: ApiError, key: ObjectKey | None = None) -> None:
        """Make the next ``verb`` call (optionally only for ``key``) raise ``error``."""
        self._failures.append((verb, key, error))

    def reset(self) -> None:
        """Clear objects, call log, and injected failures."""
        self._objects.clear()
        self._failures.clear()
        self._call_log.clear()

    # ── ClusterClient ────────────────────────────────────────────

    def get(self, key: ObjectKey, api_version: str = "") -> dict[str, Any]:
        self._record("get", key)
        obj = self._objects.get(key)
        if obj is None:
            raise NotFoundError(f'{key.kind.lower()} "{key.name}" not found')
        return copy.deepcopy(obj)

    def list(
        self,
        kind: str,
        namespace: str = "",
        label_selector: dict[str, str] | None = None,
        api_version: str = "",
    ) -> list[dict[str, Any]]:
        self._record("list", None, detail=kind)
        selector = label_selector or {}
        items = []
        for key, obj in self._objects.items():
            if key.kind != kind:
                continue
            if namespace and key.namespace != namespace:
                continue
            labels = (obj.get("metadata") or {}).get("labels") or {}
            if all(labels.get(k) == v for k, v in selector.items()):
                items.append(copy.deepcopy(obj))
        return items

    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        key = key_of(obj)
        self._record("create", key)
        if key in self._objects:
            raise ConflictError(
                f'{key.kind.lower()} "{key.name}" already exists', reason="AlreadyExists",
            )
        stored = copy.deepcopy(obj)
        stored.pop("status", None)
        self._stamp(stored)
        self._objects[key] = stored
        return copy.deepcopy(stored)

    def patch(self, obj: dict[str, Any], patch_type: PatchType) -> dict[str, Any]:
        key = key_of(obj)
        self._record("patch", key, detail=str(patch_type))
        existing = self._objects.get(key)
        if existing is None:
            raise NotFoundError(f'{key.kind.lower()} "{key.name}" not found')
        if patch_type == PatchType.STRATEGIC and self._kinds.is_custom(key.kind):
            raise UnsupportedMediaTypeError(
                "the body of the request was in an unknown format - accepted media "
                "types include: application/json-patch+json, application/merge-patch+json"
            )
        body = {k: v for k, v in obj.items() if k != "status"}
        merged = merge_patch(existing, body)
        self._stamp(merged)
        self._objects[key] = merged
        return copy.deepcopy(merged)

    def delete(
        self,
        obj: dict[str, Any],
        propagation: Propagation = Propagation.FOREGROUND,
    ) -> None:
        key = key_of(obj)
        self._record("delete", key, detail=str(propagation))
        if self._objects.pop(key, None) is None:
            raise NotFoundError(f'{key.kind.lower()} "{key.name}" not found')

    # ── Internals ────────────────────────────────────────────────

    def _record(self, verb: str, key: ObjectKey | None, detail: str = "") -> None:
        self._call_log.append(CallRecord(verb=verb, key=key, detail=detail))
        for i, (f_verb, f_key, error) in enumerate(self._failures):
            if f_verb == verb and (f_key is None or f_key == key):
                del self._failures[i]
                raise error

    def _stamp(self, obj: dict[str, Any]) -> None:
        meta = obj.setdefault("metadata", {})
        meta.setdefault("uid", uuid.uuid4().hex)
        meta["resourceVersion"] = str(next(self._versions))
