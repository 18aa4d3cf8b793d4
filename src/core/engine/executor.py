"""
Engine executor — one pass of the plan state machine.

The caller (a controller loop, the CLI, a test) hands in the active
plan and its current status; the engine renders every resource of the
plan, walks phases and steps in spec order, reconciles each step's
resources against the cluster, and returns the updated status tree.

Flow:
    short-circuit → render all (renderer + overlay) → walk phases
        → walk steps → reconcile resources → fold health into status

Ordering:
    - phases are always visited in spec order, one unfinished phase
      per pass
    - serial phase: a step is only attempted once every earlier step
      is COMPLETE
    - parallel phase: every unfinished step is attempted every pass

The engine never retries and never rolls back. ERROR is sticky.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pydantic import BaseModel

from src.adapters.base import ClusterClient
from src.core.engine.conventions import ConventionOverlay, OverlayMetadata
from src.core.engine.errors import PlanEngineError, ReconcileError
from src.core.engine.health import HealthRegistry
from src.core.engine.reconciler import ReconcileOutcome, Reconciler
from src.core.engine.renderer import RenderContext, TemplateRenderer
from src.core.models.plan import (
    ActivePlan,
    ExecutionStatus,
    PhaseStatus,
    PlanStatus,
    Step,
    StepStatus,
    Strategy,
)
from src.core.models.resource import Resource
from src.core.observability.events import (
    PHASE_COMPLETE,
    PLAN_COMPLETE,
    EventRecorder,
    EventType,
    emit,
)

logger = logging.getLogger(__name__)

# Plan states in which a pass does nothing at all
_SHORT_CIRCUIT = frozenset({
    ExecutionStatus.COMPLETE,
    ExecutionStatus.ERROR,
    ExecutionStatus.FATAL,
    ExecutionStatus.SUSPEND,
})

# Phase states that are skipped by the walk
_SKIPPED_PHASES = frozenset({
    ExecutionStatus.COMPLETE,
    ExecutionStatus.ERROR,
    ExecutionStatus.FATAL,
})


class EngineMetadata(BaseModel):
    """Identity of the instance the plan is executed for."""

    instance_name: str
    namespace: str
    operator_name: str
    operator_version: str = ""

    @property
    def subject(self) -> str:
        return f"{self.namespace}/{self.instance_name}"


@dataclass
class PlanResources:
    """Rendered, overlaid resources of a whole plan, per (phase, step)."""

    steps: dict[tuple[str, str], list[Resource]] = field(default_factory=dict)

    def for_step(self, phase: str, step: str) -> list[Resource]:
        return self.steps.get((phase, step), [])

    @property
    def total(self) -> int:
        return sum(len(r) for r in self.steps.values())


@dataclass
class ExecutionResult:
    """Result of one engine pass: the new status and the error, if any."""

    status: PlanStatus
    error: PlanEngineError | None = None
    outcomes: list[ReconcileOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def fatal(self) -> bool:
        return self.error is not None and self.error.fatal

    @property
    def settled(self) -> bool:
        """True once further passes would return the status unchanged."""
        return self.status.state in _SHORT_CIRCUIT

    def to_dict(self) -> dict:
        return {
            "plan": self.status.name,
            "state": str(self.status.state),
            "error": str(self.error) if self.error else None,
            "fatal": self.fatal,
            "outcomes": [
                {
                    "resource": str(o.key),
                    "action": o.action,
                    "healthy": o.healthy,
                    "message": o.message,
                }
                for o in self.outcomes
            ],
            "status": self.status.model_dump(mode="json"),
        }


# ═══════════════════════════════════════════════════════════════════
#  Render phase
# ═══════════════════════════════════════════════════════════════════


def prepare_resources(
    active_plan: ActivePlan,
    metadata: EngineMetadata,
    status: PlanStatus,
    renderer: TemplateRenderer,
    overlay: ConventionOverlay,
) -> PlanResources:
    """Render and overlay every resource of every step of the plan.

    Nothing touches the cluster here. On failure the failing step and
    its phase are marked ERROR in ``status`` and the error is re-raised.

    Raises:
        FatalError: Unknown task or template, or a template that fails.
        OverlayError: A rendered manifest cannot be parsed or overlaid.
    """
    result = PlanResources()

    for phase in active_plan.spec.phases:
        for index, step in enumerate(phase.steps):
            context = RenderContext(
                instance_name=metadata.instance_name,
                namespace=metadata.namespace,
                operator_name=metadata.operator_name,
                operator_version=metadata.operator_version,
                plan_name=active_plan.name,
                phase_name=phase.name,
                step_name=step.name,
                step_number=index,
                params=active_plan.params,
            )
            overlay_meta = OverlayMetadata(
                instance_name=metadata.instance_name,
                namespace=metadata.namespace,
                operator_name=metadata.operator_name,
                operator_version=metadata.operator_version,
                plan_execution_id=status.execution_id,
                plan_name=active_plan.name,
                phase_name=phase.name,
                step_name=step.name,
            )
            try:
                rendered = renderer.render_step(
                    step.tasks, active_plan.tasks, active_plan.templates, context,
                )
                result.steps[(phase.name, step.name)] = overlay.apply(rendered, overlay_meta)
            except PlanEngineError as e:
                message = str(e)
                status.phase(phase.name).step(step.name).set(ExecutionStatus.ERROR, message)
                status.phase(phase.name).set(ExecutionStatus.ERROR, message)
                logger.error(
                    "Rendering step %s of phase %s in plan %s for %s failed: %s",
                    step.name, phase.name, active_plan.name, metadata.subject, e,
                )
                raise

    logger.debug("Prepared %d resources for plan %s", result.total, active_plan.name)
    return result


# ═══════════════════════════════════════════════════════════════════
#  Execution
# ═══════════════════════════════════════════════════════════════════


def execute_plan(
    active_plan: ActivePlan,
    metadata: EngineMetadata,
    client: ClusterClient,
    *,
    renderer: TemplateRenderer | None = None,
    overlay: ConventionOverlay | None = None,
    health: HealthRegistry | None = None,
    recorder: EventRecorder | None = None,
) -> ExecutionResult:
    """Run one pass of ``active_plan`` and return the updated status.

    The input status is never mutated; the pass works on a deep copy.
    A plan that is COMPLETE, ERROR, FATAL_ERROR, or SUSPEND is returned
    as-is without any cluster call.

    Raises:
        StatusTreeError: The status tree does not mirror the plan spec.
            This is a caller bug, not an execution outcome.
    """
    status = active_plan.status
    if status.state in _SHORT_CIRCUIT:
        logger.info(
            "Plan %s for %s is %s, nothing to do",
            active_plan.name, metadata.subject, status.state,
        )
        return ExecutionResult(status=status)

    status.check_shape(active_plan.spec)
    working = status.model_copy(deep=True)

    try:
        resources = prepare_resources(
            active_plan,
            metadata,
            working,
            renderer or TemplateRenderer(),
            overlay or ConventionOverlay(),
        )
    except PlanEngineError as e:
        working.set(ExecutionStatus.FATAL if e.fatal else ExecutionStatus.ERROR, str(e))
        working.touch()
        emit(recorder, metadata.subject, EventType.WARNING, e.event_reason, str(e))
        return ExecutionResult(status=working, error=e)

    reconciler = Reconciler(client, health)
    outcomes: list[ReconcileOutcome] = []
    working.set(ExecutionStatus.IN_PROGRESS)

    for phase in active_plan.spec.phases:
        phase_status = working.phase(phase.name)
        if phase_status.state in _SKIPPED_PHASES:
            logger.debug("Phase %s is %s, skipping", phase.name, phase_status.state)
            continue

        phase_status.set(ExecutionStatus.IN_PROGRESS)
        logger.info(
            "Executing phase %s of plan %s for %s",
            phase.name, active_plan.name, metadata.subject,
        )

        for step in phase.steps:
            step_status = phase_status.step(step.name)
            if step_status.state == ExecutionStatus.COMPLETE:
                continue

            if step_status.state not in (ExecutionStatus.ERROR, ExecutionStatus.FATAL):
                try:
                    _execute_step(
                        step,
                        step_status,
                        resources.for_step(phase.name, step.name),
                        reconciler,
                        outcomes,
                    )
                except ReconcileError as e:
                    _mark_error(working, phase_status, step_status, str(e))
                    logger.error(
                        "Step %s of phase %s in plan %s for %s failed: %s",
                        step.name, phase.name, active_plan.name, metadata.subject, e,
                    )
                    emit(recorder, metadata.subject, EventType.WARNING, e.event_reason, str(e))
                    return ExecutionResult(status=working, error=e, outcomes=outcomes)

            if step_status.state != ExecutionStatus.COMPLETE and phase.strategy == Strategy.SERIAL:
                logger.info(
                    "Step %s of phase %s is not complete, holding later steps",
                    step.name, phase.name,
                )
                break

        if all(s.state == ExecutionStatus.COMPLETE for s in phase_status.steps.values()):
            phase_status.set(ExecutionStatus.COMPLETE)
            emit(
                recorder, metadata.subject, EventType.NORMAL, PHASE_COMPLETE,
                f"phase {phase.name} of plan {active_plan.name} is complete",
            )

        if phase_status.state != ExecutionStatus.COMPLETE:
            break

    if all(p.state == ExecutionStatus.COMPLETE for p in working.phases.values()):
        working.set(ExecutionStatus.COMPLETE)
        logger.info("All phases of plan %s for %s are complete", active_plan.name, metadata.subject)
        emit(
            recorder, metadata.subject, EventType.NORMAL, PLAN_COMPLETE,
            f"plan {active_plan.name} is complete",
        )

    working.touch()
    return ExecutionResult(status=working, outcomes=outcomes)


def _execute_step(
    step: Step,
    step_status: StepStatus,
    resources: list[Resource],
    reconciler: Reconciler,
    outcomes: list[ReconcileOutcome],
) -> None:
    """Reconcile every resource of a step and fold their health into its status."""
    step_status.set(ExecutionStatus.IN_PROGRESS)

    waiting: list[str] = []
    for resource in resources:
        outcome = reconciler.reconcile(resource, delete=step.delete)
        outcomes.append(outcome)
        if not outcome.healthy:
            waiting.append(outcome.message or f"{outcome.key} is not healthy")

    if waiting:
        step_status.set(ExecutionStatus.IN_PROGRESS, "; ".join(waiting))
    else:
        step_status.set(ExecutionStatus.COMPLETE)


def _mark_error(
    plan_status: PlanStatus,
    phase_status: PhaseStatus,
    step_status: StepStatus,
    message: str,
) -> None:
    step_status.set(ExecutionStatus.ERROR, message)
    phase_status.set(ExecutionStatus.ERROR, message)
    plan_status.set(ExecutionStatus.ERROR, message)
    plan_status.touch()

