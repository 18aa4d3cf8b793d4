"""
Instance init use case — create the instance state file for a package.

A new instance starts with every plan NEVER_RUN. If the package
declares a ``deploy`` plan and ``deploy`` is requested, it is made the
active plan straight away, so the first ``plan run`` installs the
operator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from src.core.config.loader import ConfigError, load_package
from src.core.engine.errors import PlanConflictError
from src.core.models.instance import Instance
from src.core.observability.events import PLAN_STARTED, EventRecorder, EventType, emit
from src.core.persistence.state_file import load_instance, save_instance

logger = logging.getLogger(__name__)

DEPLOY_PLAN = "deploy"


@dataclass
class InitResult:
    instance: Instance | None = None
    active_plan: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        assert self.instance is not None
        return {
            "instance": self.instance.name,
            "namespace": self.instance.namespace,
            "operator": self.instance.operator,
            "operator_version": self.instance.operator_version,
            "active_plan": self.active_plan,
        }


def init_instance(
    name: str,
    state_path: Path,
    namespace: str = "default",
    package_dir: Path | None = None,
    parameters: dict[str, str] | None = None,
    deploy: bool = True,
    force: bool = False,
    recorder: EventRecorder | None = None,
) -> InitResult:
    """Create (or with ``force``, replace) the instance record."""
    result = InitResult()

    try:
        package = load_package(package_dir)
        existing = load_instance(state_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    if existing is not None and not force:
        result.error = (
            f"Instance state already exists at {state_path} "
            f"({existing.namespace}/{existing.name}). Use --force to replace it."
        )
        return result

    parameters = parameters or {}
    try:
        package.resolve_params(parameters)
    except ValueError as e:
        result.error = str(e)
        return result

    instance = Instance(
        name=name,
        namespace=namespace,
        operator=package.name,
        operator_version=package.version,
        parameters=parameters,
        resource_version=existing.resource_version if existing is not None else 0,
    )
    instance.ensure_plan_status(package)

    if deploy and package.get_plan(DEPLOY_PLAN) is not None:
        instance.start_plan(DEPLOY_PLAN, package)
        result.active_plan = DEPLOY_PLAN

    try:
        save_instance(instance, state_path)
    except PlanConflictError as e:
        result.error = str(e)
        return result

    result.instance = instance
    logger.info(
        "Initialised instance %s/%s of operator %s %s",
        namespace, name, package.name, package.version,
    )
    if result.active_plan:
        status = instance.plan_status[DEPLOY_PLAN]
        emit(
            recorder, f"{namespace}/{name}", EventType.NORMAL, PLAN_STARTED,
            f"plan {DEPLOY_PLAN} started (execution {status.execution_id})",
        )
    return result
