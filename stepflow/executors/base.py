"""
Abstract base class for step executors.

A step executor is the capability that carries out one workflow step. The
run engine only sees its final success or failure; retries, fallbacks and
the model provider behind it are the executor's own business.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List

from stepflow.core.state import HistoryMessage
from stepflow.storage.schemas import WorkflowStep


@dataclass
class AgentStep:
    """An intermediate action taken by the executor while producing a result."""

    action: str
    result: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "result": self.result,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class StepOutput:
    """Result of executing one step."""

    output: str
    intermediate_steps: List[AgentStep] = field(default_factory=list)
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"response": self.output}
        if self.intermediate_steps:
            data["intermediate_steps"] = [s.to_dict() for s in self.intermediate_steps]
        if self.is_fallback:
            data["is_fallback"] = True
        return data


@dataclass
class StepRequest:
    """
    Everything an executor gets to run one step.

    ``input`` is the instruction built by the run engine from the step's
    name, action and parameters plus the accumulated history.
    """

    step: WorkflowStep
    step_index: int
    name: str
    description: str
    instructions: str
    input: str
    tools: List[Callable[..., Any]] = field(default_factory=list)
    history: List[HistoryMessage] = field(default_factory=list)


class StepExecutor(ABC):
    """
    Abstract base class for step executors.

    Implementations raise on failure. FatalError signals that retrying
    won't help; any other exception may be retried by RetryingStepExecutor.
    """

    @abstractmethod
    async def execute(self, request: StepRequest) -> StepOutput:
        """
        Execute one step.

        Args:
            request: Step, instruction and tools for this step

        Returns:
            StepOutput with the executor's response

        Raises:
            Exception: If the step could not be executed
        """
        pass

    async def aclose(self) -> None:
        """
        Release resources held by the executor.

        Override if your executor keeps connections open.
        """
        pass
