"""
Plan model — the declared workflow and its status mirror.

A Plan is an ordered tree of phases and steps; each step names tasks,
and each task names resource templates. The status tree mirrors the
spec 1:1 by name and order. Children are held in insertion-ordered
name-keyed mappings, so lookups are O(1) and iteration order is the
spec's display order.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from src.core.engine.errors import StatusTreeError


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Strategy(StrEnum):
    """Ordering strategy for phases of a plan or steps of a phase."""

    SERIAL = "serial"
    PARALLEL = "parallel"


class ExecutionStatus(StrEnum):
    """State of a plan, phase, or step."""

    NEVER_RUN = "NEVER_RUN"
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"
    FATAL = "FATAL_ERROR"
    SUSPEND = "SUSPEND"

    @property
    def is_terminal(self) -> bool:
        """Terminal states are only left through an external reset."""
        return self in (ExecutionStatus.COMPLETE, ExecutionStatus.FATAL)

    @property
    def is_finished(self) -> bool:
        return self == ExecutionStatus.COMPLETE

    @property
    def is_running(self) -> bool:
        return self in (
            ExecutionStatus.PENDING,
            ExecutionStatus.IN_PROGRESS,
            ExecutionStatus.ERROR,
        )


# ═══════════════════════════════════════════════════════════════════
#  Spec
# ═══════════════════════════════════════════════════════════════════


class Task(BaseModel):
    """Named reference to one or more resource templates."""

    name: str
    resources: list[str] = Field(default_factory=list)


class Step(BaseModel):
    """A group of tasks; health is aggregated and gated per step."""

    name: str
    tasks: list[str] = Field(default_factory=list)
    delete: bool = False


class Phase(BaseModel):
    """A named, ordered group of steps sharing one strategy."""

    name: str
    strategy: Strategy = Strategy.SERIAL
    steps: list[Step] = Field(default_factory=list)

    @field_validator("steps")
    @classmethod
    def _unique_step_names(cls, steps: list[Step]) -> list[Step]:
        names = [s.name for s in steps]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"duplicate step names: {', '.join(dupes)}")
        return steps


class Plan(BaseModel):
    """Top-level ordered workflow composed of phases.

    The plan-level strategy is recorded and displayed; phases are
    always walked in spec order.
    """

    strategy: Strategy = Strategy.SERIAL
    phases: list[Phase] = Field(default_factory=list)

    @field_validator("phases")
    @classmethod
    def _unique_phase_names(cls, phases: list[Phase]) -> list[Phase]:
        names = [p.name for p in phases]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"duplicate phase names: {', '.join(dupes)}")
        return phases


# ═══════════════════════════════════════════════════════════════════
#  Status mirror
# ═══════════════════════════════════════════════════════════════════


class StepStatus(BaseModel):
    name: str
    state: ExecutionStatus = ExecutionStatus.PENDING
    message: str = ""

    def set(self, state: ExecutionStatus, message: str = "") -> None:
        self.state = state
        self.message = message


class PhaseStatus(BaseModel):
    name: str
    strategy: Strategy = Strategy.SERIAL
    state: ExecutionStatus = ExecutionStatus.PENDING
    message: str = ""
    steps: dict[str, StepStatus] = Field(default_factory=dict)

    @property
    def step_names(self) -> list[str]:
        return list(self.steps)

    def step(self, name: str) -> StepStatus:
        """Look up a step status by name.

        Raises:
            StatusTreeError: The step is not part of this phase's status.
        """
        try:
            return self.steps[name]
        except KeyError:
            raise StatusTreeError(
                f"phase '{self.name}' has no status for step '{name}'"
            ) from None

    def set(self, state: ExecutionStatus, message: str = "") -> None:
        self.state = state
        self.message = message


class PlanStatus(BaseModel):
    """Status of one plan for one instance.

    Created PENDING when a plan is requested, mutated by each engine
    pass, and only made terminal (COMPLETE or FATAL_ERROR) by the
    engine itself.
    """

    name: str
    strategy: Strategy = Strategy.SERIAL
    state: ExecutionStatus = ExecutionStatus.PENDING
    message: str = ""
    execution_id: str = ""
    last_updated_at: str | None = None
    phases: dict[str, PhaseStatus] = Field(default_factory=dict)

    @classmethod
    def from_plan(
        cls,
        name: str,
        plan: Plan,
        state: ExecutionStatus = ExecutionStatus.PENDING,
        execution_id: str = "",
    ) -> PlanStatus:
        """Build a status tree mirroring ``plan``, every node in ``state``."""
        status = cls(
            name=name,
            strategy=plan.strategy,
            state=state,
            execution_id=execution_id,
        )
        for phase in plan.phases:
            ps = PhaseStatus(name=phase.name, strategy=phase.strategy, state=state)
            for step in phase.steps:
                ps.steps[step.name] = StepStatus(name=step.name, state=state)
            status.phases[phase.name] = ps
        return status

    @property
    def phase_names(self) -> list[str]:
        return list(self.phases)

    def phase(self, name: str) -> PhaseStatus:
        """Look up a phase status by name.

        Raises:
            StatusTreeError: The phase is not part of this plan's status.
        """
        try:
            return self.phases[name]
        except KeyError:
            raise StatusTreeError(
                f"plan '{self.name}' has no status for phase '{name}'"
            ) from None

    def set(self, state: ExecutionStatus, message: str = "") -> None:
        self.state = state
        self.message = message

    def touch(self) -> None:
        self.last_updated_at = _now_iso()

    def reset(self, plan: Plan, state: ExecutionStatus = ExecutionStatus.PENDING) -> None:
        """Re-initialise the whole tree for a new execution of ``plan``."""
        fresh = PlanStatus.from_plan(
            self.name, plan, state=state, execution_id=uuid.uuid4().hex,
        )
        self.strategy = fresh.strategy
        self.state = fresh.state
        self.message = ""
        self.execution_id = fresh.execution_id
        self.phases = fresh.phases
        self.touch()

    def check_shape(self, plan: Plan) -> None:
        """Verify this tree mirrors ``plan`` by name and order.

        Raises:
            StatusTreeError: On any missing, extra, or reordered entry.
        """
        expected = [p.name for p in plan.phases]
        if self.phase_names != expected:
            raise StatusTreeError(
                f"plan '{self.name}' status phases {self.phase_names} "
                f"do not mirror spec phases {expected}"
            )
        for phase in plan.phases:
            ps = self.phases[phase.name]
            expected_steps = [s.name for s in phase.steps]
            if ps.step_names != expected_steps:
                raise StatusTreeError(
                    f"phase '{phase.name}' status steps {ps.step_names} "
                    f"do not mirror spec steps {expected_steps}"
                )


class ActivePlan(BaseModel):
    """The working set for one engine invocation.

    Built by the caller from the instance's active-plan pointer, the
    current status, and the package's tasks and templates.
    """

    name: str
    spec: Plan
    status: PlanStatus
    tasks: dict[str, Task] = Field(default_factory=dict)
    templates: dict[str, str] = Field(default_factory=dict)
    params: dict[str, str] = Field(default_factory=dict)

    def task(self, name: str) -> Task | None:
        return self.tasks.get(name)
