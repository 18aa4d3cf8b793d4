"""
Convention overlay — uniform naming, namespace, labels, and annotations.

Takes the renderer's output for one step (template name -> manifest
text) and turns it into concrete resource descriptors:

    - name prefixed with "<instance>-"
    - namespace set on namespaced kinds
    - identifying labels on metadata and pod templates
    - correlation annotations (plan execution, plan, phase, step)
    - name references between resources of the same step rewritten
      to the prefixed names

Workload and Service selectors only receive the labels that never
change across upgrades; selectors are immutable on the server.
"""

from __future__ import annotations

import logging
from typing import Any

import yaml
from pydantic import BaseModel

from src.adapters.registry import KindRegistry, default_kinds
from src.core.engine.errors import OverlayError
from src.core.models.resource import Resource

logger = logging.getLogger(__name__)

# ── Label and annotation keys ──────────────────────────────────────

HERITAGE_LABEL = "heritage"
APP_LABEL = "app"
VERSION_LABEL = "version"
INSTANCE_LABEL = "instance"

HERITAGE_VALUE = "plan-engine"

PLAN_EXECUTION_ANNOTATION = "planengine.dev/plan-execution"
PLAN_ANNOTATION = "planengine.dev/plan"
PHASE_ANNOTATION = "planengine.dev/phase"
STEP_ANNOTATION = "planengine.dev/step"

# Kinds whose pod spec lives at spec.template.spec
_TEMPLATED_WORKLOADS = frozenset({
    "Deployment", "StatefulSet", "DaemonSet", "ReplicaSet", "Job",
})
# Kinds whose selector is a LabelSelector (spec.selector.matchLabels)
_SELECTOR_WORKLOADS = frozenset({
    "Deployment", "StatefulSet", "DaemonSet", "ReplicaSet",
})


class OverlayMetadata(BaseModel):
    """Identity of the step whose resources are being overlaid."""

    instance_name: str
    namespace: str
    operator_name: str
    operator_version: str = ""
    plan_execution_id: str = ""
    plan_name: str = ""
    phase_name: str = ""
    step_name: str = ""

    @property
    def name_prefix(self) -> str:
        return f"{self.instance_name}-"

    def labels(self) -> dict[str, str]:
        return {
            HERITAGE_LABEL: HERITAGE_VALUE,
            APP_LABEL: self.operator_name,
            VERSION_LABEL: self.operator_version,
            INSTANCE_LABEL: self.instance_name,
        }

    def selector_labels(self) -> dict[str, str]:
        return {
            HERITAGE_LABEL: HERITAGE_VALUE,
            APP_LABEL: self.operator_name,
            INSTANCE_LABEL: self.instance_name,
        }

    def annotations(self) -> dict[str, str]:
        return {
            PLAN_EXECUTION_ANNOTATION: self.plan_execution_id,
            PLAN_ANNOTATION: self.plan_name,
            PHASE_ANNOTATION: self.phase_name,
            STEP_ANNOTATION: self.step_name,
        }


def parse_manifests(name: str, text: str) -> list[dict[str, Any]]:
    """Parse a multi-document YAML manifest.

    Empty documents are skipped.

    Raises:
        OverlayError: The YAML is invalid, or a document is not an object
            with apiVersion, kind, and metadata.name.
    """
    try:
        docs = list(yaml.safe_load_all(text))
    except yaml.YAMLError as e:
        raise OverlayError(f"parsing YAML from {name}: {e}") from e

    objects: list[dict[str, Any]] = []
    for index, doc in enumerate(docs):
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise OverlayError(
                f"{name} document {index}: expected a mapping, got {type(doc).__name__}"
            )
        meta = doc.get("metadata")
        if not doc.get("apiVersion") or not doc.get("kind"):
            raise OverlayError(f"{name} document {index}: missing apiVersion or kind")
        if not isinstance(meta, dict) or not meta.get("name"):
            raise OverlayError(f"{name} document {index}: missing metadata.name")
        objects.append(doc)
    return objects


class ConventionOverlay:
    """Applies naming/namespace/label/annotation conventions to a step's manifests."""

    def __init__(self, kinds: KindRegistry | None = None):
        self._kinds = kinds or default_kinds()

    def apply(self, templates: dict[str, str], metadata: OverlayMetadata) -> list[Resource]:
        """Overlay every rendered manifest of one step.

        Returns resources in template order, then document order.

        Raises:
            OverlayError: A manifest cannot be parsed or transformed.
        """
        parsed: list[tuple[str, dict[str, Any]]] = []
        for name, text in templates.items():
            for obj in parse_manifests(name, text):
                parsed.append((name, obj))

        # (kind, original name) of everything this step owns
        local = {(obj["kind"], obj["metadata"]["name"]) for _, obj in parsed}

        resources: list[Resource] = []
        for name, obj in parsed:
            try:
                self._overlay(obj, metadata, local)
            except (AttributeError, TypeError) as e:
                raise OverlayError(
                    f"applying conventions to {obj.get('kind')} from {name}: {e}"
                ) from e
            resources.append(Resource(manifest=obj, template=name))

        logger.debug(
            "Overlay produced %d resources for step %s/%s",
            len(resources), metadata.phase_name, metadata.step_name,
        )
        return resources

    # ── Transform ────────────────────────────────────────────────

    def _overlay(
        self,
        obj: dict[str, Any],
        metadata: OverlayMetadata,
        local: set[tuple[str, str]],
    ) -> None:
        kind = obj["kind"]
        meta = obj["metadata"]
        prefix = metadata.name_prefix

        meta["name"] = prefix + meta["name"]
        if self._kinds.is_namespaced(kind):
            meta["namespace"] = metadata.namespace
        else:
            meta.pop("namespace", None)

        _merge(meta, "labels", metadata.labels())
        _merge(meta, "annotations", metadata.annotations())

        spec = obj.get("spec")
        if not isinstance(spec, dict):
            spec = None

        template_meta = _pod_template_metadata(kind, spec)
        if template_meta is not None:
            _merge(template_meta, "labels", metadata.labels())
            _merge(template_meta, "annotations", metadata.annotations())

        if spec is not None and kind in _SELECTOR_WORKLOADS:
            selector = spec.setdefault("selector", {})
            _merge(selector, "matchLabels", metadata.selector_labels())
        elif spec is not None and kind == "Service" and spec.get("type") != "ExternalName":
            _merge(spec, "selector", metadata.selector_labels())

        _rewrite_references(obj, prefix, local)


def _merge(parent: dict[str, Any], field: str, values: dict[str, str]) -> None:
    current = parent.get(field) or {}
    current.update(values)
    parent[field] = current


def _pod_template_metadata(kind: str, spec: dict[str, Any] | None) -> dict[str, Any] | None:
    if spec is None:
        return None
    if kind in _TEMPLATED_WORKLOADS:
        template = spec.setdefault("template", {})
    elif kind == "CronJob":
        template = (
            spec.setdefault("jobTemplate", {})
            .setdefault("spec", {})
            .setdefault("template", {})
        )
    else:
        return None
    return template.setdefault("metadata", {})


def _pod_spec(kind: str, spec: dict[str, Any] | None) -> dict[str, Any] | None:
    if spec is None:
        return None
    if kind == "Pod":
        return spec
    if kind in _TEMPLATED_WORKLOADS:
        return (spec.get("template") or {}).get("spec")
    if kind == "CronJob":
        job = (spec.get("jobTemplate") or {}).get("spec") or {}
        return (job.get("template") or {}).get("spec")
    return None


# ── Name references ──────────────────────────────────────────────


def _rename(
    holder: dict[str, Any] | None,
    field: str,
    kind: str,
    prefix: str,
    local: set[tuple[str, str]],
) -> None:
    if not isinstance(holder, dict):
        return
    value = holder.get(field)
    if isinstance(value, str) and (kind, value) in local:
        holder[field] = prefix + value


def _rewrite_references(obj: dict[str, Any], prefix: str, local: set[tuple[str, str]]) -> None:
    kind = obj["kind"]
    spec = obj.get("spec") if isinstance(obj.get("spec"), dict) else None

    if kind == "StatefulSet" and spec is not None:
        _rename(spec, "serviceName", "Service", prefix, local)

    if kind in ("RoleBinding", "ClusterRoleBinding"):
        role_ref = obj.get("roleRef")
        if isinstance(role_ref, dict):
            _rename(role_ref, "name", role_ref.get("kind", ""), prefix, local)
        for subject in obj.get("subjects") or []:
            if isinstance(subject, dict) and subject.get("kind") == "ServiceAccount":
                _rename(subject, "name", "ServiceAccount", prefix, local)

    pod_spec = _pod_spec(kind, spec)
    if pod_spec is None:
        return

    _rename(pod_spec, "serviceAccountName", "ServiceAccount", prefix, local)

    for volume in pod_spec.get("volumes") or []:
        _rename(volume.get("configMap"), "name", "ConfigMap", prefix, local)
        _rename(volume.get("secret"), "secretName", "Secret", prefix, local)

    containers = (pod_spec.get("containers") or []) + (pod_spec.get("initContainers") or [])
    for container in containers:
        for source in container.get("envFrom") or []:
            _rename(source.get("configMapRef"), "name", "ConfigMap", prefix, local)
            _rename(source.get("secretRef"), "name", "Secret", prefix, local)
        for env in container.get("env") or []:
            value_from = env.get("valueFrom") or {}
            _rename(value_from.get("configMapKeyRef"), "name", "ConfigMap", prefix, local)
            _rename(value_from.get("secretKeyRef"), "name", "Secret", prefix, local)
