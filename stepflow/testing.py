"""
Testing utilities for StepFlow.

Doubles for exercising the run engine and the scheduler without a model
provider:
- ScriptedStepExecutor answers steps from a script and fails chosen steps
- RecordingStorage is an in-memory backend that records how it was called

These helpers should ONLY be used in tests, not in production code.
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from stepflow.executors.base import StepExecutor, StepOutput, StepRequest
from stepflow.storage.memory import InMemoryStorageBackend
from stepflow.storage.schemas import Schedule


class ScriptedStepExecutor(StepExecutor):
    """
    Step executor driven by a script keyed by step id.

    Args:
        responses: Output per step id (defaults to "done: <step name>")
        failures: Exception (or message of a RuntimeError) raised per step id
        gate: When given, every call waits for this event before answering
        delay: Seconds every call sleeps before answering

    Examples:
        executor = ScriptedStepExecutor(failures={"b": "mailbox unavailable"})
        state = await WorkflowRunEngine(executor).execute(workflow)
        assert executor.executed_steps == ["a", "b"]
    """

    def __init__(
        self,
        responses: Optional[Dict[str, str]] = None,
        failures: Optional[Dict[str, Union[BaseException, str]]] = None,
        gate: Optional[asyncio.Event] = None,
        delay: float = 0.0,
    ) -> None:
        self.responses = dict(responses or {})
        self.failures = dict(failures or {})
        self.gate = gate
        self.delay = delay
        self.calls: List[StepRequest] = []
        self.started = asyncio.Event()
        self.active = 0
        self.max_active = 0
        self.closed = False

    @property
    def executed_steps(self) -> List[str]:
        return [request.step.step_id for request in self.calls]

    async def execute(self, request: StepRequest) -> StepOutput:
        self.calls.append(request)
        self.started.set()
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)

            failure = self.failures.get(request.step.step_id)
            if failure is not None:
                if isinstance(failure, BaseException):
                    raise failure
                raise RuntimeError(failure)

            output = self.responses.get(request.step.step_id, f"done: {request.step.name}")
            return StepOutput(output=output)
        finally:
            self.active -= 1

    async def aclose(self) -> None:
        self.closed = True


class RecordingStorage(InMemoryStorageBackend):
    """In-memory backend that records due-schedule queries and outcome writes."""

    def __init__(self) -> None:
        super().__init__()
        self.due_calls: List[datetime] = []
        self.outcome_calls: List[Tuple[str, bool]] = []

    async def list_due_schedules(self, now: datetime) -> List[Schedule]:
        self.due_calls.append(now)
        return await super().list_due_schedules(now)

    async def reset_or_increment(
        self,
        schedule_id: str,
        success: bool,
        error: Optional[str] = None,
    ) -> Schedule:
        self.outcome_calls.append((schedule_id, success))
        return await super().reset_or_increment(schedule_id, success, error)
