"""
Data models for schedules, workflows, steps, and execution logs.

These schemas define the structure of data stored in the storage backends.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from stepflow.core.exceptions import InvalidWorkflowError
from stepflow.utils.duration import parse_optional_duration


class ScheduleStatus(Enum):
    """Schedule status."""

    ACTIVE = "active"
    PAUSED = "paused"
    ERROR = "error"


class WorkflowStatus(Enum):
    """Workflow definition status."""

    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class LogStatus(Enum):
    """Execution log entry status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


def _now() -> datetime:
    return datetime.now(UTC)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class ScheduleConfig:
    """
    Per-schedule execution settings.

    ``timeout`` is in seconds and bounds every step executor call of a run.
    Keys this class doesn't know about are kept in ``extra`` so they survive
    a round trip through storage.
    """

    max_retries: int = 3
    timeout: Optional[float] = None
    notifications: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.timeout = parse_optional_duration(self.timeout)
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update(
            {
                "max_retries": self.max_retries,
                "timeout": self.timeout,
                "notifications": self.notifications,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ScheduleConfig":
        data = dict(data or {})
        # Older records used camelCase keys
        max_retries = data.pop("max_retries", data.pop("maxRetries", 3))
        timeout = data.pop("timeout", None)
        notifications = data.pop("notifications", False)
        return cls(
            max_retries=int(max_retries),
            timeout=timeout,
            notifications=bool(notifications),
            extra=data,
        )


@dataclass
class Schedule:
    """
    A recurring intent to run a workflow.

    The storage backend owns schedules; the scheduler only works on copies
    fetched for the current pass.
    """

    workflow_id: str
    schedule: str  # cron expression or interval ("15m")
    name: str = ""
    schedule_id: str = field(default_factory=lambda: f"sched_{uuid.uuid4().hex[:16]}")
    description: Optional[str] = None
    status: ScheduleStatus = ScheduleStatus.ACTIVE
    config: ScheduleConfig = field(default_factory=ScheduleConfig)

    # Run bookkeeping
    error_count: int = 0
    last_error: Optional[str] = None
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None

    # In-flight lease
    lease_owner: Optional[str] = None
    lease_expires_at: Optional[datetime] = None

    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        if not self.workflow_id:
            raise ValueError("Schedule must have a workflow_id")
        if self.error_count < 0:
            raise ValueError("error_count must be >= 0")
        if isinstance(self.config, dict):
            self.config = ScheduleConfig.from_dict(self.config)

    def is_due(self, now: datetime) -> bool:
        """True when the schedule is active and its next run is not in the future."""
        return (
            self.status == ScheduleStatus.ACTIVE
            and self.next_run is not None
            and self.next_run <= now
        )

    def has_exceeded_max_retries(self) -> bool:
        return self.error_count > self.config.max_retries

    def is_leased(self, now: datetime) -> bool:
        return (
            self.lease_owner is not None
            and self.lease_expires_at is not None
            and self.lease_expires_at > now
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "schedule_id": self.schedule_id,
            "workflow_id": self.workflow_id,
            "name": self.name,
            "description": self.description,
            "schedule": self.schedule,
            "status": self.status.value,
            "config": self.config.to_dict(),
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_run": _iso(self.last_run),
            "next_run": _iso(self.next_run),
            "lease_owner": self.lease_owner,
            "lease_expires_at": _iso(self.lease_expires_at),
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Schedule":
        """Create from dictionary."""
        return cls(
            schedule_id=data["schedule_id"],
            workflow_id=data["workflow_id"],
            name=data.get("name", ""),
            description=data.get("description"),
            schedule=data["schedule"],
            status=ScheduleStatus(data.get("status", "active")),
            config=ScheduleConfig.from_dict(data.get("config")),
            error_count=data.get("error_count", 0),
            last_error=data.get("last_error"),
            last_run=_parse_dt(data.get("last_run")),
            next_run=_parse_dt(data.get("next_run")),
            lease_owner=data.get("lease_owner"),
            lease_expires_at=_parse_dt(data.get("lease_expires_at")),
            metadata=data.get("metadata", {}),
            created_at=_parse_dt(data.get("created_at")) or _now(),
            updated_at=_parse_dt(data.get("updated_at")) or _now(),
        )


@dataclass
class WorkflowStep:
    """One unit of execution within a workflow."""

    step_id: str
    name: str
    action: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.step_id,
            "name": self.name,
            "action": self.action,
            "parameters": self.parameters,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowStep":
        return cls(
            step_id=data.get("id") or data["step_id"],
            name=data.get("name", ""),
            action=data.get("action", ""),
            parameters=data.get("parameters") or {},
        )


@dataclass
class Workflow:
    """
    An ordered, user-authored automation definition.

    Step order is execution order.
    """

    name: str
    steps: List[WorkflowStep] = field(default_factory=list)
    workflow_id: str = field(default_factory=lambda: f"wf_{uuid.uuid4().hex[:16]}")
    description: str = ""
    status: WorkflowStatus = WorkflowStatus.DRAFT
    config: Dict[str, Any] = field(default_factory=dict)
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def validate(self) -> None:
        """
        Check the definition can be run.

        Raises:
            InvalidWorkflowError: If step ids are duplicated or a step has
                no action
        """
        seen = set()
        for index, step in enumerate(self.steps):
            if not step.step_id:
                raise InvalidWorkflowError(f"Step {index} of {self.workflow_id} has no id")
            if step.step_id in seen:
                raise InvalidWorkflowError(
                    f"Duplicate step id '{step.step_id}' in workflow {self.workflow_id}"
                )
            if not step.action:
                raise InvalidWorkflowError(
                    f"Step '{step.step_id}' of workflow {self.workflow_id} has no action"
                )
            seen.add(step.step_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "workflow_id": self.workflow_id,
            "name": self.name,
            "description": self.description,
            "steps": [step.to_dict() for step in self.steps],
            "status": self.status.value,
            "config": self.config,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Workflow":
        """Create from dictionary."""
        return cls(
            workflow_id=data["workflow_id"],
            name=data["name"],
            description=data.get("description") or "",
            steps=[WorkflowStep.from_dict(step) for step in data.get("steps", [])],
            status=WorkflowStatus(data.get("status") or "draft"),
            config=data.get("config") or {},
            created_by=data.get("created_by"),
            created_at=_parse_dt(data.get("created_at")) or _now(),
            updated_at=_parse_dt(data.get("updated_at")) or _now(),
        )


@dataclass
class WorkflowExecutionLog:
    """
    Append-only audit record of a run outcome.

    ``step`` is the step id for step-level entries and None for the
    run summary entry.
    """

    workflow_id: str
    status: LogStatus
    step: Optional[str] = None
    schedule_id: Optional[str] = None
    result: Any = None
    error: Optional[str] = None
    execution_time: datetime = field(default_factory=_now)
    log_id: str = field(default_factory=lambda: f"log_{uuid.uuid4().hex[:16]}")

    def __post_init__(self) -> None:
        if not self.workflow_id:
            raise ValueError("Execution log must have a workflow_id")
        if not isinstance(self.status, LogStatus):
            raise TypeError(f"Log status must be LogStatus enum, got {type(self.status)}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary; ``result`` is left to the backend to encode."""
        return {
            "log_id": self.log_id,
            "workflow_id": self.workflow_id,
            "schedule_id": self.schedule_id,
            "step": self.step,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "execution_time": self.execution_time.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowExecutionLog":
        """Create from dictionary."""
        return cls(
            log_id=data["log_id"],
            workflow_id=data["workflow_id"],
            schedule_id=data.get("schedule_id"),
            step=data.get("step"),
            status=LogStatus(data["status"]),
            result=data.get("result"),
            error=data.get("error"),
            execution_time=_parse_dt(data["execution_time"]) or _now(),
        )
