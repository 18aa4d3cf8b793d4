"""
Template renderer — substitute parameters into named resource templates.

Rendering is pure: the same templates and context always produce the
same text, and nothing here talks to the cluster. Templates are Jinja2
rendered in a sandbox with strict undefined handling, so a reference
to a missing variable or parameter fails the render instead of
silently producing an empty string.

Template variables:
    Name, Namespace, OperatorName, OperatorVersion,
    PlanName, PhaseName, StepName, StepNumber, Params
"""

from __future__ import annotations

import base64
import logging
from typing import Any

import yaml
from jinja2 import StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment
from pydantic import BaseModel, Field

from src.core.engine.errors import FatalError
from src.core.models.plan import Task

logger = logging.getLogger(__name__)


class RenderContext(BaseModel):
    """Everything a template can see."""

    instance_name: str
    namespace: str
    operator_name: str
    operator_version: str = ""
    plan_name: str = ""
    phase_name: str = ""
    step_name: str = ""
    step_number: int = 0
    params: dict[str, str] = Field(default_factory=dict)

    def variables(self) -> dict[str, Any]:
        return {
            "Name": self.instance_name,
            "Namespace": self.namespace,
            "OperatorName": self.operator_name,
            "OperatorVersion": self.operator_version,
            "PlanName": self.plan_name,
            "PhaseName": self.phase_name,
            "StepName": self.step_name,
            "StepNumber": str(self.step_number),
            "Params": dict(self.params),
        }


def _to_yaml(value: Any) -> str:
    return yaml.safe_dump(value, default_flow_style=False, sort_keys=False).rstrip("\n")


def _b64enc(value: Any) -> str:
    return base64.b64encode(str(value).encode("utf-8")).decode("ascii")


def _b64dec(value: Any) -> str:
    return base64.b64decode(str(value).encode("ascii")).decode("utf-8")


class TemplateRenderer:
    """Sandboxed, strict Jinja2 renderer for resource templates."""

    def __init__(self) -> None:
        self._env = SandboxedEnvironment(
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        self._env.filters["toyaml"] = _to_yaml
        self._env.filters["b64enc"] = _b64enc
        self._env.filters["b64dec"] = _b64dec

    def render(self, name: str, source: str, context: RenderContext) -> str:
        """Render one template.

        Raises:
            FatalError: The template does not parse, references an
                undefined variable, or a filter or expression fails on
                the supplied values.
        """
        try:
            template = self._env.from_string(source)
            return template.render(context.variables())
        except TemplateError as e:
            raise FatalError(f"error expanding template {name}: {e}") from e
        except Exception as e:
            raise FatalError(
                f"error expanding template {name}: {type(e).__name__}: {e}"
            ) from e

    def render_templates(
        self,
        names: list[str],
        templates: dict[str, str],
        context: RenderContext,
    ) -> dict[str, str]:
        """Render ``names`` from the template set, preserving order.

        Raises:
            FatalError: A name is absent from ``templates`` or fails to render.
        """
        rendered: dict[str, str] = {}
        for name in names:
            source = templates.get(name)
            if source is None:
                raise FatalError(f"error finding resource template named {name}")
            rendered[name] = self.render(name, source, context)
        return rendered

    def render_step(
        self,
        task_names: list[str],
        tasks: dict[str, Task],
        templates: dict[str, str],
        context: RenderContext,
    ) -> dict[str, str]:
        """Render every resource of every task of a step.

        Raises:
            FatalError: A task name is unknown, or one of its templates is.
        """
        names: list[str] = []
        for task_name in task_names:
            task = tasks.get(task_name)
            if task is None:
                raise FatalError(f"error finding task named {task_name}")
            names.extend(n for n in task.resources if n not in names)

        logger.debug(
            "Rendering %d templates for %s/%s/%s",
            len(names), context.plan_name, context.phase_name, context.step_name,
        )
        return self.render_templates(names, templates, context)
