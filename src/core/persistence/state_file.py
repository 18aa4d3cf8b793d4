"""
State file persistence — atomic, check-and-set read/write for Instance.

The instance record is stored as JSON in .state/instance.json. Writes
are atomic (write to temp file, then rename) so a crash mid-write never
leaves a torn file behind.

Every save is a check-and-set on ``resource_version``: the version on
disk must equal the version the caller loaded, otherwise somebody else
wrote in between and ``PlanConflictError`` is raised. A successful save
bumps the version.

The version is checked before the temp file is written and again just
before the rename. There is no file lock, so two writers that both pass
the second check within the same instant can still race; the last
rename wins. Callers that need a stronger guarantee serialise their saves.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from pydantic import ValidationError

from src.core.config.loader import ConfigError
from src.core.engine.errors import PlanConflictError
from src.core.models.instance import Instance

logger = logging.getLogger(__name__)

# Default state file path (relative to the working directory)
DEFAULT_STATE_DIR = ".state"
DEFAULT_STATE_FILE = "instance.json"


def default_state_path(root: Path) -> Path:
    """Get the default instance state file path under ``root``."""
    return root / DEFAULT_STATE_DIR / DEFAULT_STATE_FILE


def load_instance(path: Path) -> Instance | None:
    """Load the instance record from a JSON file.

    Returns:
        The Instance, or None if the file does not exist.

    Raises:
        ConfigError: The file exists but is not a valid instance record.
    """
    if not path.is_file():
        logger.info("No instance state file at %s", path)
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read instance state {path}: {e}") from e

    try:
        instance = Instance.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid instance state in {path}: {e}") from e

    logger.debug(
        "Loaded instance %s/%s from %s (resource_version=%d)",
        instance.namespace, instance.name, path, instance.resource_version,
    )
    return instance


def _version_on_disk(path: Path) -> int | None:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read instance state {path}: {e}") from e
    return int(data.get("resource_version", 0))


def _check_version(instance: Instance, path: Path) -> None:
    on_disk = _version_on_disk(path)
    expected = instance.resource_version
    if (on_disk is None and expected != 0) or (on_disk is not None and on_disk != expected):
        raise PlanConflictError(
            f"instance {instance.namespace}/{instance.name} was modified concurrently "
            f"(expected resource_version {expected}, found {on_disk})"
        )


def save_instance(instance: Instance, path: Path) -> Instance:
    """Save the instance record (atomic, check-and-set).

    The in-memory ``resource_version`` must match the file on disk. A
    missing file matches version 0 only. On success the version is
    incremented on ``instance`` and written.

    Raises:
        PlanConflictError: The file changed since ``instance`` was loaded.
    """
    expected = instance.resource_version
    _check_version(instance, path)

    path.parent.mkdir(parents=True, exist_ok=True)

    updated = instance.model_copy(update={"resource_version": expected + 1})
    content = json.dumps(updated.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    try:
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".instance_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with open(fd, "w", encoding="utf-8") as f:
                f.write(content)
            _check_version(instance, path)
            tmp.replace(path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
    except OSError as e:
        logger.error("Failed to save instance state to %s: %s", path, e)
        raise

    instance.resource_version = updated.resource_version
    logger.debug(
        "Instance %s/%s saved to %s (resource_version=%d)",
        instance.namespace, instance.name, path, instance.resource_version,
    )
    return instance
