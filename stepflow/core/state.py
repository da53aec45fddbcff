"""
In-memory state threaded through one execution of a workflow.

A WorkflowRunState is created fresh for every run attempt and is never
persisted directly; the scheduler persists projections of it (execution
logs, schedule error counters) as the run progresses.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from stepflow.core.exceptions import RunStateError

DEFAULT_MAX_HISTORY = 100


class RunStatus(Enum):
    """Status of a single workflow run."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class MessageRole(Enum):
    """Author of a history message."""

    SYSTEM = "system"
    HUMAN = "human"
    AI = "ai"


@dataclass
class HistoryMessage:
    """One entry of the conversation history accumulated during a run."""

    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class StepResult:
    """Outcome of one successfully executed step."""

    step_id: str
    step_name: str
    output: Any
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> Dict[str, Any]:
        output = self.output.to_dict() if hasattr(self.output, "to_dict") else self.output
        return {
            "step_id": self.step_id,
            "step_name": self.step_name,
            "output": output,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class RunError:
    """Terminal error of a run. ``step`` is -1 when no step was reached."""

    step: int
    message: str
    error_type: str = "Exception"
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    exception: Optional[BaseException] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "message": self.message,
            "error_type": self.error_type,
            "timestamp": self.timestamp.isoformat(),
        }


class ChatHistory:
    """
    Bounded message history.

    Once ``max_size`` messages are stored, the oldest message is dropped for
    every new one.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_HISTORY) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self._messages: Deque[HistoryMessage] = deque(maxlen=max_size)

    def add(self, role: MessageRole, content: str) -> HistoryMessage:
        message = HistoryMessage(role=role, content=content)
        self._messages.append(message)
        return message

    def recent(self, count: Optional[int] = None) -> List[HistoryMessage]:
        messages = list(self._messages)
        return messages[-count:] if count else messages

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(list(self._messages))


@dataclass
class WorkflowRunState:
    """
    State of one run of a workflow.

    ``current_step`` counts completed steps and never exceeds
    ``total_steps``. Once the status is completed or error the state is
    frozen: ``record_step``, ``complete`` and ``fail`` raise RunStateError.
    """

    workflow_id: str
    total_steps: int
    history: ChatHistory = field(default_factory=ChatHistory)
    current_step: int = 0
    workflow_status: RunStatus = RunStatus.RUNNING
    step_results: List[StepResult] = field(default_factory=list)
    error: Optional[RunError] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.workflow_status != RunStatus.RUNNING

    def _ensure_running(self) -> None:
        if self.is_terminal:
            raise RunStateError(
                f"Run of {self.workflow_id} already finished with status "
                f"{self.workflow_status.value}"
            )

    def record_step(self, step_id: str, step_name: str, output: Any) -> StepResult:
        """Append a step result and advance ``current_step``."""
        self._ensure_running()
        if self.current_step >= self.total_steps:
            raise RunStateError(
                f"Run of {self.workflow_id} has no step {self.current_step}"
            )

        result = StepResult(step_id=step_id, step_name=step_name, output=output)
        self.step_results.append(result)
        self.current_step += 1
        return result

    def complete(self) -> None:
        self._ensure_running()
        self.workflow_status = RunStatus.COMPLETED
        self.finished_at = datetime.now(UTC)

    def fail(self, step: int, error: BaseException) -> RunError:
        """Mark the run as failed at ``step`` without advancing it."""
        self._ensure_running()
        self.error = RunError(
            step=step,
            message=str(error) or type(error).__name__,
            error_type=type(error).__name__,
            exception=error,
        )
        self.workflow_status = RunStatus.ERROR
        self.finished_at = datetime.now(UTC)
        return self.error

    def to_dict(self) -> Dict[str, Any]:
        """Summary used as the payload of run-level execution logs."""
        return {
            "workflow_id": self.workflow_id,
            "workflow_status": self.workflow_status.value,
            "current_step": self.current_step,
            "total_steps": self.total_steps,
            "step_results": [result.to_dict() for result in self.step_results],
            "error": self.error.to_dict() if self.error else None,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
