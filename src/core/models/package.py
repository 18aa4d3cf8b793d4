"""
Operator package model — plans, tasks, templates, and parameters.

A package is the versioned unit an operator author ships. The engine
never reads one directly; the caller resolves the active plan, its
tasks, its templates, and the effective parameters from it.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.core.models.plan import Plan, Task


def _scalar_to_str(value: Any) -> Any:
    """Accept unquoted YAML scalars (``3``, ``1.0``, ``true``) where a string is expected."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    return value


class Parameter(BaseModel):
    """A user-tunable value substituted into templates as ``Params.<name>``."""

    name: str
    description: str = ""
    default: str | None = None
    required: bool = False

    @field_validator("name", "default", mode="before")
    @classmethod
    def _coerce_scalars(cls, value: Any) -> Any:
        return _scalar_to_str(value)


class OperatorPackage(BaseModel):
    name: str
    version: str
    app_version: str = ""
    parameters: list[Parameter] = Field(default_factory=list)
    tasks: list[Task] = Field(default_factory=list)
    plans: dict[str, Plan] = Field(default_factory=dict)
    templates: dict[str, str] = Field(default_factory=dict)

    @field_validator("name", "version", "app_version", mode="before")
    @classmethod
    def _coerce_scalars(cls, value: Any) -> Any:
        return _scalar_to_str(value)

    @property
    def task_map(self) -> dict[str, Task]:
        return {t.name: t for t in self.tasks}

    def get_plan(self, name: str) -> Plan | None:
        return self.plans.get(name)

    def resolve_params(self, overrides: dict[str, str] | None = None) -> dict[str, str]:
        """Merge parameter defaults with instance overrides.

        Overrides for names the package does not declare are kept, so
        templates can still reference them.

        Raises:
            ValueError: A required parameter has neither default nor override.
        """
        overrides = overrides or {}
        resolved: dict[str, str] = {}
        missing: list[str] = []

        for param in self.parameters:
            if param.name in overrides:
                resolved[param.name] = overrides[param.name]
            elif param.default is not None:
                resolved[param.name] = param.default
            elif param.required:
                missing.append(param.name)

        if missing:
            raise ValueError(f"missing required parameters: {', '.join(missing)}")

        for key, value in overrides.items():
            resolved.setdefault(key, value)
        return resolved
