"""
Engine error taxonomy.

    PlanEngineError
    ├── FatalError          render phase: unknown task/template, broken template
    ├── OverlayError        rendered manifest cannot be parsed or overlaid
    ├── ReconcileError      cluster call failed (anything but NotFound)
    │   └── HealthCheckError  health predicate could not reach a verdict
    ├── StatusTreeError     status tree does not mirror the plan spec
    └── PlanConflictError   active-plan pointer changed under the caller

Adapter-level API errors live in ``src.adapters.base``; the reconciler
translates them into ``ReconcileError`` so the engine only ever sees
this hierarchy.
"""

from __future__ import annotations


class PlanEngineError(Exception):
    """Base class for every error raised by the plan engine."""

    #: Event reason used when this error is reported to the event recorder.
    event_reason = "ExecutionError"

    @property
    def fatal(self) -> bool:
        return False


class FatalError(PlanEngineError):
    """Unrecoverable render failure. Retrying the same plan cannot succeed."""

    event_reason = "FatalExecutionError"

    @property
    def fatal(self) -> bool:
        return True


class OverlayError(PlanEngineError):
    """A rendered manifest could not be parsed or convention-overlaid."""


class ReconcileError(PlanEngineError):
    """A create/patch/delete/get call against the cluster failed."""

    def __init__(self, message: str, key: object = None, verb: str = ""):
        super().__init__(message)
        self.key = key
        self.verb = verb


class HealthCheckError(ReconcileError):
    """A health predicate failed to evaluate (as opposed to "unhealthy")."""


class StatusTreeError(PlanEngineError, LookupError):
    """The status tree is missing an entry the plan spec declares."""


class PlanConflictError(PlanEngineError):
    """Optimistic-concurrency check on the active plan failed."""
