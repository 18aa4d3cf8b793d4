"""
Domain models — Pydantic types for the plan engine.

All models are re-exported here for convenient access:

    from src.core.models import Plan, PlanStatus, ActivePlan, Instance
"""

from src.core.models.instance import Instance
from src.core.models.package import OperatorPackage, Parameter
from src.core.models.plan import (
    ActivePlan,
    ExecutionStatus,
    Phase,
    PhaseStatus,
    Plan,
    PlanStatus,
    Step,
    StepStatus,
    Strategy,
    Task,
)
from src.core.models.resource import ObjectKey, Resource

__all__ = [
    "ActivePlan",
    "ExecutionStatus",
    # instance.py
    "Instance",
    "ObjectKey",
    # package.py
    "OperatorPackage",
    "Parameter",
    "Phase",
    "PhaseStatus",
    # plan.py
    "Plan",
    "PlanStatus",
    # resource.py
    "Resource",
    "Step",
    "StepStatus",
    "Strategy",
    "Task",
]
