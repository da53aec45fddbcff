"""
Events produced by the run engine.

A run yields zero or more StepCompleted events followed by exactly one
terminal event, RunCompleted or RunFailed. Consumers dispatch on the event
class (or on ``type``) to persist logs and bookkeeping, which keeps the
engine free of persistence concerns.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Union

from stepflow.core.state import RunError, WorkflowRunState
from stepflow.executors.base import StepOutput
from stepflow.storage.schemas import WorkflowStep


class EventType(Enum):
    """All possible run event types."""

    STEP_COMPLETED = "step.completed"
    RUN_COMPLETED = "run.completed"
    RUN_FAILED = "run.failed"


@dataclass
class StepCompleted:
    """A step finished successfully and the run moved past it."""

    step_index: int
    step: WorkflowStep
    output: StepOutput
    state: WorkflowRunState
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    type: EventType = field(default=EventType.STEP_COMPLETED, init=False)


@dataclass
class RunCompleted:
    """Every step of the workflow succeeded."""

    state: WorkflowRunState
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    type: EventType = field(default=EventType.RUN_COMPLETED, init=False)


@dataclass
class RunFailed:
    """
    The run stopped at ``error.step``; remaining steps were skipped.

    ``step`` is the step that failed, or None when the run failed before
    reaching any step.
    """

    state: WorkflowRunState
    error: RunError
    step: Union[WorkflowStep, None] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    type: EventType = field(default=EventType.RUN_FAILED, init=False)


RunEvent = Union[StepCompleted, RunCompleted, RunFailed]
