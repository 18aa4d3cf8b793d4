"""
Kubectl cluster client — drives a real cluster through the kubectl CLI.

Objects are passed as JSON on stdin and read back with ``-o json``.
Server failures surface on stderr as ``Error from server (<Reason>)``;
the reason is mapped onto the ``ApiError`` taxonomy so the reconciler
can tell NotFound and UnsupportedMediaType apart from real failures.
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
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
from src.core.models.resource import ObjectKey

logger = logging.getLogger(__name__)

_REASON_RE = re.compile(r"Error from server \((\w+)\)")

_UNSUPPORTED_PATCH_MARKERS = (
    "unknown format",
    "strategic merge patch format is not supported",
    "UnsupportedMediaType",
)


def _run_kubectl(
    *args: str,
    stdin: str | None = None,
    timeout: int = 30,
) -> subprocess.CompletedProcess[str]:
    """Run a kubectl command and return the result."""
    return subprocess.run(
        ["kubectl", *args],
        input=stdin,
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def _resource_arg(kind: str, api_version: str) -> str:
    """Fully-qualified kubectl resource type, e.g. ``deployment.v1.apps``."""
    if "/" not in api_version:
        return kind.lower()
    group, version = api_version.split("/", 1)
    return f"{kind.lower()}.{version}.{group}"


def _api_error(stderr: str) -> ApiError:
    """Translate kubectl stderr into the matching ApiError subclass."""
    message = stderr.strip() or "kubectl failed without output"
    match = _REASON_RE.search(message)
    reason = match.group(1) if match else ""

    if reason == "NotFound":
        return NotFoundError(message)
    if reason in ("AlreadyExists", "Conflict"):
        return ConflictError(message, reason=reason)
    if reason == "UnsupportedMediaType" or any(m in message for m in _UNSUPPORTED_PATCH_MARKERS):
        return UnsupportedMediaTypeError(message)
    return ApiError(message, reason=reason or None)


class KubectlClient(ClusterClient):
    """Cluster client backed by the kubectl binary.

    Args:
        context: Optional kubeconfig context to pin every call to.
        timeout: Per-call timeout in seconds.
    """

    def __init__(self, context: str | None = None, timeout: int = 30):
        self._context = context
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "kubectl"

    def get(self, key: ObjectKey, api_version: str = "") -> dict[str, Any]:
        args = ["get", _resource_arg(key.kind, api_version), key.name, "-o", "json"]
        return self._json(self._call(*args, namespace=key.namespace))

    def list(
        self,
        kind: str,
        namespace: str = "",
        label_selector: dict[str, str] | None = None,
        api_version: str = "",
    ) -> list[dict[str, Any]]:
        args = ["get", _resource_arg(kind, api_version), "-o", "json"]
        if label_selector:
            selector = ",".join(f"{k}={v}" for k, v in sorted(label_selector.items()))
            args.extend(["-l", selector])
        data = self._json(self._call(*args, namespace=namespace))
        return data.get("items", [])

    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        out = self._call("create", "-f", "-", "-o", "json", stdin=json.dumps(obj))
        return self._json(out)

    def patch(self, obj: dict[str, Any], patch_type: PatchType) -> dict[str, Any]:
        key = key_of(obj)
        args = [
            "patch", _resource_arg(key.kind, obj.get("apiVersion", "")), key.name,
            "--type", str(patch_type),
            "-p", json.dumps(obj),
            "-o", "json",
        ]
        return self._json(self._call(*args, namespace=key.namespace))

    def delete(
        self,
        obj: dict[str, Any],
        propagation: Propagation = Propagation.FOREGROUND,
    ) -> None:
        key = key_of(obj)
        self._call(
            "delete", _resource_arg(key.kind, obj.get("apiVersion", "")), key.name,
            f"--cascade={str(propagation).lower()}",
            "--wait=false",
            namespace=key.namespace,
        )

    # ── Internals ────────────────────────────────────────────────

    def _call(self, *args: str, namespace: str = "", stdin: str | None = None) -> str:
        full = list(args)
        if namespace:
            full.extend(["-n", namespace])
        if self._context:
            full.extend(["--context", self._context])

        logger.debug("kubectl %s", " ".join(a for a in full if not a.startswith("{")))
        try:
            result = _run_kubectl(*full, stdin=stdin, timeout=self._timeout)
        except FileNotFoundError as e:
            raise ApiError("kubectl not available", reason="ClientUnavailable") from e
        except subprocess.TimeoutExpired as e:
            raise ApiError(
                f"kubectl timed out after {self._timeout}s", reason="Timeout", status_code=504,
            ) from e

        if result.returncode != 0:
            raise _api_error(result.stderr)
        return result.stdout

    @staticmethod
    def _json(out: str) -> dict[str, Any]:
        if not out.strip():
            return {}
        try:
            return json.loads(out)
        except ValueError as e:
            raise ApiError(f"kubectl returned invalid JSON: {e}") from e
