"""
Plan use cases — start a plan, run one engine pass, read plan status.

These are the vertical slices the CLI calls: load the operator package
and the instance record, drive the engine, persist the returned status
with a check-and-set write, and record events to the ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from src.adapters.base import ClusterClient
from src.core.config.loader import ConfigError, load_package
from src.core.engine.errors import PlanConflictError, StatusTreeError
from src.core.engine.executor import EngineMetadata, ExecutionResult, execute_plan
from src.core.models.instance import Instance
from src.core.models.package import OperatorPackage
from src.core.models.plan import ActivePlan, PlanStatus
from src.core.observability.events import (
    INVALID_PLAN_NAME,
    PLAN_STARTED,
    EventRecorder,
    EventType,
    emit,
)
from src.core.persistence.audit import DEFAULT_LEDGER_FILE, EventLedger, LedgerEventRecorder
from src.core.persistence.state_file import load_instance, save_instance

logger = logging.getLogger(__name__)


def ledger_recorder(state_path: Path) -> LedgerEventRecorder:
    """Event recorder writing next to the instance state file."""
    return LedgerEventRecorder(EventLedger(path=state_path.parent / DEFAULT_LEDGER_FILE))


def _load(
    package_dir: Path | None,
    state_path: Path,
) -> tuple[OperatorPackage, Instance]:
    """Load package and instance, and check they belong together.

    Raises:
        ConfigError: Either is missing or invalid, or they do not match.
    """
    package = load_package(package_dir)
    instance = load_instance(state_path)
    if instance is None:
        raise ConfigError(
            f"No instance state at {state_path}. Run 'planengine instance init' first."
        )
    if instance.operator != package.name:
        raise ConfigError(
            f"Instance {instance.name} belongs to operator '{instance.operator}', "
            f"not '{package.name}'"
        )
    instance.ensure_plan_status(package)
    return package, instance


# ═══════════════════════════════════════════════════════════════════
#  Start
# ═══════════════════════════════════════════════════════════════════


@dataclass
class StartResult:
    """Result of pointing an instance at a plan."""

    plan: str = ""
    execution_id: str = ""
    superseded: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "plan": self.plan,
            "execution_id": self.execution_id,
            "superseded": self.superseded,
        }


def start_plan(
    plan_name: str,
    state_path: Path,
    package_dir: Path | None = None,
    force: bool = False,
    recorder: EventRecorder | None = None,
) -> StartResult:
    """Set the instance's active plan to ``plan_name`` and reset its status."""
    result = StartResult(plan=plan_name)
    if recorder is None:
        recorder = ledger_recorder(state_path)

    try:
        package, instance = _load(package_dir, state_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    subject = f"{instance.namespace}/{instance.name}"
    previous = instance.plan_in_flight()

    try:
        status = instance.start_plan(plan_name, package, force=force)
    except KeyError:
        result.error = (
            f"Plan '{plan_name}' is not defined by operator {package.name} "
            f"(available: {', '.join(package.plans) or 'none'})"
        )
        emit(recorder, subject, EventType.WARNING, INVALID_PLAN_NAME, result.error)
        return result
    except PlanConflictError as e:
        result.error = str(e)
        return result

    try:
        save_instance(instance, state_path)
    except PlanConflictError as e:
        result.error = str(e)
        return result

    result.execution_id = status.execution_id
    if previous and previous != plan_name:
        result.superseded = previous

    logger.info("Started plan %s for %s (execution %s)", plan_name, subject, status.execution_id)
    emit(
        recorder, subject, EventType.NORMAL, PLAN_STARTED,
        f"plan {plan_name} started (execution {status.execution_id})",
    )
    return result


# ═══════════════════════════════════════════════════════════════════
#  Run one pass
# ═══════════════════════════════════════════════════════════════════


@dataclass
class PassResult:
    """Result of one engine pass over the instance's active plan."""

    plan: str = ""
    execution: ExecutionResult | None = None
    saved: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and (self.execution is None or self.execution.ok)

    def to_dict(self) -> dict:
        result: dict = {"plan": self.plan, "saved": self.saved}
        if self.error:
            result["error"] = self.error
        if self.execution:
            result["execution"] = self.execution.to_dict()
        return result


def run_pass(
    state_path: Path,
    client: ClusterClient,
    package_dir: Path | None = None,
    recorder: EventRecorder | None = None,
) -> PassResult:
    """Run one engine pass for the active plan and persist the result."""
    result = PassResult()
    if recorder is None:
        recorder = ledger_recorder(state_path)

    try:
        package, instance = _load(package_dir, state_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    if instance.active_plan is None:
        result.error = "No active plan. Run 'planengine plan start NAME' first."
        return result

    result.plan = instance.active_plan
    spec = package.get_plan(instance.active_plan)
    if spec is None:
        result.error = f"Active plan '{instance.active_plan}' is not defined by operator {package.name}"
        return result

    try:
        params = package.resolve_params(instance.parameters)
    except ValueError as e:
        result.error = str(e)
        return result

    active = ActivePlan(
        name=instance.active_plan,
        spec=spec,
        status=instance.plan_status[instance.active_plan],
        tasks=package.task_map,
        templates=package.templates,
        params=params,
    )
    metadata = EngineMetadata(
        instance_name=instance.name,
        namespace=instance.namespace,
        operator_name=package.name,
        operator_version=package.version,
    )

    try:
        execution = execute_plan(active, metadata, client, recorder=recorder)
    except StatusTreeError as e:
        result.error = f"Status of plan '{active.name}' is inconsistent with its definition: {e}"
        return result
    result.execution = execution

    if execution.status is active.status:
        logger.debug("Plan %s unchanged, not saving", active.name)
        return result

    instance.plan_status[active.name] = execution.status
    try:
        save_instance(instance, state_path)
    except PlanConflictError as e:
        result.error = str(e)
        return result

    result.saved = True
    return result


# ═══════════════════════════════════════════════════════════════════
#  Status
# ═══════════════════════════════════════════════════════════════════


@dataclass
class StatusResult:
    """Plan status of an instance."""

    instance: Instance | None = None
    plans: list[PlanStatus] = field(default_factory=list)
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
            "active_plan": self.instance.active_plan,
            "resource_version": self.instance.resource_version,
            "plans": [p.model_dump(mode="json") for p in self.plans],
        }


def get_plan_status(state_path: Path, plan_name: str | None = None) -> StatusResult:
    """Read the status trees recorded for the instance."""
    result = StatusResult()
    try:
        instance = load_instance(state_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    if instance is None:
        result.error = f"No instance state at {state_path}. Run 'planengine instance init' first."
        return result

    result.instance = instance
    if plan_name is not None:
        status = instance.plan_status.get(plan_name)
        if status is None:
            result.error = f"No status recorded for plan '{plan_name}'"
            return result
        result.plans = [status]
    else:
        result.plans = list(instance.plan_status.values())
    return result
