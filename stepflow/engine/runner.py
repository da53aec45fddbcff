"""
Workflow run engine.

The engine drives a workflow's steps, strictly in order, through a step
executor:
- Builds an instruction per step from its name, action, parameters and the
  history accumulated so far
- Enforces the per-step timeout and the run's cancellation token
- Yields a StepCompleted event per finished step and one terminal event

Failures never propagate out of a run. They end it with a RunFailed event
whose state carries the failing step index (-1 if no step was reached).
"""

import asyncio
import inspect
import json
from typing import Any, AsyncIterator, Callable, Iterable, List, Optional

from loguru import logger

from stepflow.core.context import ExecutionContext
from stepflow.core.exceptions import RunCancelledError, StepTimeoutError
from stepflow.core.state import ChatHistory, HistoryMessage, MessageRole, WorkflowRunState
from stepflow.engine.events import RunCompleted, RunEvent, RunFailed, StepCompleted
from stepflow.executors.base import StepExecutor, StepOutput, StepRequest
from stepflow.observability.logging import bind_run_context
from stepflow.storage.schemas import Workflow, WorkflowStep


def build_instruction(step: WorkflowStep, history: Iterable[HistoryMessage]) -> str:
    """
    Build the executor input for a step.

    Example:
        Step: Summarize inbox
        Action: agent
        Parameters: {"folder": "INBOX"}
        Previous conversation:
        human: ...
        ai: ...
    """
    lines = [f"Step: {step.name}", f"Action: {step.action}"]
    if step.parameters:
        lines.append(
            "Parameters: " + json.dumps(step.parameters, sort_keys=True, default=str)
        )

    previous = list(history)
    if previous:
        lines.append("Previous conversation:")
        lines.extend(f"{message.role.value}: {message.content}" for message in previous)

    return "\n".join(lines)


class WorkflowRunEngine:
    """
    Execute workflows step by step.

    Args:
        executor: Step executor that carries out each step
        step_timeout: Default timeout in seconds for one executor call, used
            when the run's context doesn't set one

    Example:
        engine = WorkflowRunEngine(RetryingStepExecutor(AgentStepExecutor("openai:gpt-4o")))

        async for event in engine.run(workflow, tools=[], context=ExecutionContext()):
            if isinstance(event, RunFailed):
                print(event.error.message)
    """

    def __init__(self, executor: StepExecutor, step_timeout: Optional[float] = None) -> None:
        self.executor = executor
        self.step_timeout = step_timeout

    async def run(
        self,
        workflow: Workflow,
        tools: Optional[List[Callable[..., Any]]] = None,
        context: Optional[ExecutionContext] = None,
    ) -> AsyncIterator[RunEvent]:
        """
        Run ``workflow`` and yield its events.

        Tools passed here are added to the tools of ``context``.
        """
        context = context or ExecutionContext()
        run_tools = list(context.tools) + list(tools or [])

        state = WorkflowRunState(
            workflow_id=workflow.workflow_id,
            total_steps=len(workflow.steps),
            history=ChatHistory(context.max_history),
        )

        try:
            workflow.validate()
        except Exception as e:
            error = state.fail(-1, e)
            logger.error(
                f"Workflow rejected before execution: {workflow.name}",
                workflow_id=workflow.workflow_id,
                error=error.message,
            )
            yield RunFailed(state=state, error=error)
            return

        if not workflow.steps:
            logger.warning(
                f"Workflow has no steps, completing immediately: {workflow.name}",
                workflow_id=workflow.workflow_id,
            )
            state.complete()
            yield RunCompleted(state=state)
            return

        logger.info(
            f"Executing workflow: {workflow.name}",
            workflow_id=workflow.workflow_id,
            steps=len(workflow.steps),
        )

        for index, step in enumerate(workflow.steps):
            log = bind_run_context(workflow.workflow_id, step.step_id, step.name)
            try:
                if context.cancelled:
                    raise RunCancelledError(workflow.workflow_id)

                request = self.build_request(workflow, step, index, state, run_tools, context)
                state.history.add(MessageRole.HUMAN, f"Process step {index}: {step.name}")

                log.info(f"Executing step {index}: {step.name}", action=step.action)
                output = await self._invoke(request, context, workflow.workflow_id)

            except Exception as e:
                error = state.fail(index, e)
                log.error(
                    f"Step failed, stopping run: {step.name}",
                    step_index=index,
                    error=error.message,
                    error_type=error.error_type,
                )
                yield RunFailed(state=state, error=error, step=step)
                return

            state.history.add(MessageRole.AI, output.output)
            state.record_step(step.step_id, step.name, output)
            log.info(f"Step completed: {step.name}", step_index=index)

            yield StepCompleted(step_index=index, step=step, output=output, state=state)

        state.complete()
        logger.info(
            f"Workflow completed: {workflow.name}",
            workflow_id=workflow.workflow_id,
        )
        yield RunCompleted(state=state)

    def build_request(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        index: int,
        state: WorkflowRunState,
        tools: List[Callable[..., Any]],
        context: ExecutionContext,
    ) -> StepRequest:
        history = state.history.recent()
        return StepRequest(
            step=step,
            step_index=index,
            name=workflow.name,
            description=workflow.description,
            instructions=context.system_prompt,
            input=build_instruction(step, history),
            tools=tools,
            history=history,
        )

    async def _invoke(
        self, request: StepRequest, context: ExecutionContext, workflow_id: str
    ) -> StepOutput:
        """Call the executor, bounded by the timeout and the cancellation token."""
        timeout = context.timeout if context.timeout is not None else self.step_timeout

        call = asyncio.ensure_future(self.executor.execute(request))
        cancelled = asyncio.ensure_future(context.cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {call, cancelled}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if call in done:
                return call.result()
        finally:
            for task in (call, cancelled):
                if not task.done():
                    task.cancel()
            await asyncio.gather(call, cancelled, return_exceptions=True)

        if cancelled in done:
            raise RunCancelledError(workflow_id)
        raise StepTimeoutError(request.step.step_id, timeout)

    async def execute(
        self,
        workflow: Workflow,
        tools: Optional[List[Callable[..., Any]]] = None,
        context: Optional[ExecutionContext] = None,
        on_step_complete: Optional[Callable[[int, StepOutput], Any]] = None,
        on_error: Optional[Callable[[Exception, int], Any]] = None,
    ) -> WorkflowRunState:
        """
        Run ``workflow`` to the end and return its final state.

        ``on_step_complete(step_index, output)`` and ``on_error(error,
        step_index)`` may be plain functions or coroutines. Exceptions raised
        by the hooks propagate to the caller.
        """
        state: Optional[WorkflowRunState] = None
        async for event in self.run(workflow, tools, context):
            state = event.state
            if isinstance(event, StepCompleted) and on_step_complete is not None:
                await _call_hook(on_step_complete, event.step_index, event.output)
            elif isinstance(event, RunFailed) and on_error is not None:
                error = event.error.exception or RuntimeError(event.error.message)
                await _call_hook(on_error, error, event.error.step)
        return state


async def _call_hook(hook: Callable[..., Any], *args: Any) -> None:
    result = hook(*args)
    if inspect.isawaitable(result):
        await result
