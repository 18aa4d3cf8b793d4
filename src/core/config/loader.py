"""
Configuration loader — reads an operator package directory into models.

Layout:

    <package>/
        operator.yaml      name, version, appVersion, tasks, plans
        params.yaml        parameters (optional)
        templates/*.yaml   resource templates, keyed by file name

It reads YAML, validates against Pydantic schemas, and returns a typed
``OperatorPackage``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from src.core.models.package import OperatorPackage

logger = logging.getLogger(__name__)

OPERATOR_FILE = "operator.yaml"
PARAMS_FILE = "params.yaml"
TEMPLATES_DIR = "templates"
_TEMPLATE_SUFFIXES = (".yaml", ".yml")


class ConfigError(Exception):
    """Raised when an operator package or instance state is invalid or missing."""


def find_package_dir(start_dir: Path | None = None) -> Path | None:
    """Search for a directory holding operator.yaml, walking up from ``start_dir``."""
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        if (current / OPERATOR_FILE).is_file():
            return current
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def _read_yaml(path: Path) -> Any:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e


def load_templates(package_dir: Path) -> dict[str, str]:
    """Read every template file under templates/, keyed by file name.

    Templates are kept as raw text; they are rendered per step later.
    """
    templates_dir = package_dir / TEMPLATES_DIR
    if not templates_dir.is_dir():
        return {}

    templates: dict[str, str] = {}
    for path in sorted(templates_dir.iterdir()):
        if not path.is_file() or path.suffix not in _TEMPLATE_SUFFIXES:
            continue
        try:
            templates[path.name] = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read template {path}: {e}") from e
    return templates


def load_package(package_dir: Path | None = None) -> OperatorPackage:
    """Load and validate an operator package.

    Args:
        package_dir: Package directory. If None, searches upward from cwd.

    Raises:
        ConfigError: If the package is missing or invalid.
    """
    if package_dir is None:
        package_dir = find_package_dir()

    if package_dir is None:
        raise ConfigError(
            f"No {OPERATOR_FILE} found. Point --package at an operator package directory."
        )

    operator_path = package_dir / OPERATOR_FILE
    if not operator_path.is_file():
        raise ConfigError(f"Operator file not found: {operator_path}")

    logger.debug("Loading operator package from %s", package_dir)

    data = _read_yaml(operator_path)
    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected a YAML mapping in {operator_path}, got {type(data).__name__}"
        )

    # appVersion is the conventional spelling in operator.yaml
    if "appVersion" in data and "app_version" not in data:
        data["app_version"] = data.pop("appVersion")

    params_path = package_dir / PARAMS_FILE
    if params_path.is_file():
        params = _read_yaml(params_path) or {}
        if isinstance(params, dict):
            params = params.get("parameters", [])
        if not isinstance(params, list):
            raise ConfigError(f"Expected a list of parameters in {params_path}")
        data["parameters"] = params

    data["templates"] = load_templates(package_dir)

    try:
        package = OperatorPackage.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid operator package {package_dir}: {e}") from e

    _check_references(package)

    logger.info(
        "Loaded operator package '%s' %s with %d plans and %d templates",
        package.name, package.version, len(package.plans), len(package.templates),
    )
    return package


def _check_references(package: OperatorPackage) -> None:
    """Warn about dangling task and template names.

    Dangling references are not rejected here: they surface as a fatal
    render error when the plan that uses them runs.
    """
    tasks = package.task_map
    for task in package.tasks:
        for template in task.resources:
            if template not in package.templates:
                logger.warning("Task %s references unknown template %s", task.name, template)
    for plan_name, plan in package.plans.items():
        for phase in plan.phases:
            for step in phase.steps:
                for task_name in step.tasks:
                    if task_name not in tasks:
                        logger.warning(
                            "Plan %s step %s/%s references unknown task %s",
                            plan_name, phase.name, step.name, task_name,
                        )
