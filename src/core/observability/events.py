"""
Event recording — human-readable progress notifications.

The engine reports milestones ("plan complete", "fatal execution
error") to an event recorder. Recording is fire-and-forget: a recorder
that fails is logged and ignored, it never fails the engine pass.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import StrEnum

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    NORMAL = "Normal"
    WARNING = "Warning"


# Event reasons
PLAN_STARTED = "PlanStarted"
PLAN_COMPLETE = "PlanComplete"
PHASE_COMPLETE = "PhaseComplete"
INVALID_PLAN_NAME = "InvalidPlanName"
EXECUTION_ERROR = "ExecutionError"
FATAL_EXECUTION_ERROR = "FatalExecutionError"


class EventRecorder(ABC):
    """Sink for progress notifications about one managed instance."""

    @abstractmethod
    def record(self, subject: str, event_type: EventType, reason: str, message: str) -> None:
        """Record one event. May raise; callers go through ``emit``."""


class LoggingEventRecorder(EventRecorder):
    """Writes events to the process log."""

    def record(self, subject: str, event_type: EventType, reason: str, message: str) -> None:
        level = logging.WARNING if event_type == EventType.WARNING else logging.INFO
        logger.log(level, "[%s] %s %s: %s", subject, event_type, reason, message)


class MemoryEventRecorder(EventRecorder):
    """Keeps events in a list. Used by tests and dry runs."""

    def __init__(self) -> None:
        self.events: list[tuple[str, EventType, str, str]] = []

    def record(self, subject: str, event_type: EventType, reason: str, message: str) -> None:
        self.events.append((subject, event_type, reason, message))

    def reasons(self) -> list[str]:
        return [reason for _, _, reason, _ in self.events]


def emit(
    recorder: EventRecorder | None,
    subject: str,
    event_type: EventType,
    reason: str,
    message: str,
) -> None:
    """Record an event, swallowing recorder failures."""
    if recorder is None:
        return
    try:
        recorder.record(subject, event_type, reason, message)
    except Exception as e:
        logger.warning("Failed to record event %s for %s: %s", reason, subject, e)
