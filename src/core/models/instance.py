"""
Instance model — the managed resource record.

The instance carries the active-plan pointer and the status tree of
every plan its package declares. The engine never touches this record;
the single-pass caller reads it, runs the engine, and writes the
returned status back. Writes are check-and-set on ``resource_version``
(see ``src.core.persistence.state_file``).
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from src.core.engine.errors import PlanConflictError
from src.core.models.package import OperatorPackage
from src.core.models.plan import ExecutionStatus, PlanStatus

logger = logging.getLogger(__name__)


class Instance(BaseModel):
    # ── Declared ─────────────────────────────────────────────────
    name: str
    namespace: str = "default"
    operator: str
    operator_version: str
    parameters: dict[str, str] = Field(default_factory=dict)

    # ── Concurrency token ────────────────────────────────────────
    resource_version: int = 0

    # ── Observed ─────────────────────────────────────────────────
    active_plan: str | None = None
    plan_status: dict[str, PlanStatus] = Field(default_factory=dict)

    def ensure_plan_status(self, package: OperatorPackage) -> None:
        """Initialise a NEVER_RUN status tree for every plan not yet tracked."""
        for name, plan in package.plans.items():
            if name not in self.plan_status:
                self.plan_status[name] = PlanStatus.from_plan(
                    name, plan, state=ExecutionStatus.NEVER_RUN,
                )

    def active_status(self) -> PlanStatus | None:
        if self.active_plan is None:
            return None
        return self.plan_status.get(self.active_plan)

    def plan_in_flight(self) -> str | None:
        """Name of the active plan if it is still running."""
        status = self.active_status()
        if status is not None and status.state.is_running:
            return status.name
        return None

    def start_plan(
        self,
        plan_name: str,
        package: OperatorPackage,
        force: bool = False,
    ) -> PlanStatus:
        """Point the instance at ``plan_name`` and reset its status to PENDING.

        Raises:
            KeyError: The package declares no such plan.
            PlanConflictError: A different plan is still in flight and
                ``force`` is not set.
        """
        plan = package.get_plan(plan_name)
        if plan is None:
            raise KeyError(plan_name)

        in_flight = self.plan_in_flight()
        if in_flight and in_flight != plan_name and not force:
            raise PlanConflictError(
                f"plan '{in_flight}' is still in flight for instance "
                f"{self.namespace}/{self.name}"
            )
        if in_flight and in_flight != plan_name:
            logger.warning(
                "Plan %s on %s/%s superseded by %s",
                in_flight, self.namespace, self.name, plan_name,
            )

        self.ensure_plan_status(package)
        status = self.plan_status[plan_name]
        status.reset(plan, state=ExecutionStatus.PENDING)
        self.active_plan = plan_name
        return status
