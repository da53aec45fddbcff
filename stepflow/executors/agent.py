"""
LLM agent backed step executor.

Each step is handed to a pydantic-ai Agent built from the executor's model,
the run's system instructions and the tools available to the run. Tool calls
the agent makes are reported back as intermediate steps.
"""

from typing import Any, Callable, Iterable, List, Optional, Set, Union

from loguru import logger
from pydantic_ai import Agent
from pydantic_ai.models import Model

from stepflow.core.exceptions import ActionNotFoundError
from stepflow.executors.base import AgentStep, StepExecutor, StepOutput, StepRequest

# Action that asks the agent to handle the step with whatever tools it has
AGENT_ACTION = "agent"


def _tool_name(tool: Callable[..., Any]) -> str:
    return getattr(tool, "name", None) or getattr(tool, "__name__", repr(tool))


class AgentStepExecutor(StepExecutor):
    """
    Execute steps with a pydantic-ai agent.

    A step's action must be AGENT_ACTION, one of ``extra_actions``, or the
    name of a tool available to the run; anything else fails the step with
    ActionNotFoundError without calling the model.

    Args:
        model: pydantic-ai model name ("openai:gpt-4o") or Model instance
        tools: Tools available to every step, in addition to the run's tools
        extra_actions: Additional action names the agent is trusted to handle
        model_settings: Passed through to ``Agent.run`` (temperature, max_tokens)

    Example:
        executor = RetryingStepExecutor(
            AgentStepExecutor("openai:gpt-4o", tools=[search_docs]),
            RetryPolicy(max_retries=2, fallback_response="I encountered an error."),
        )
    """

    def __init__(
        self,
        model: Union[str, Model],
        tools: Optional[Iterable[Callable[..., Any]]] = None,
        extra_actions: Optional[Iterable[str]] = None,
        model_settings: Optional[dict] = None,
    ) -> None:
        self.model = model
        self.tools: List[Callable[..., Any]] = list(tools or [])
        self.extra_actions: Set[str] = set(extra_actions or [])
        self.model_settings = model_settings

    def _resolve_tools(self, request: StepRequest) -> List[Callable[..., Any]]:
        tools = list(self.tools)
        seen = {_tool_name(tool) for tool in tools}
        for tool in request.tools:
            if _tool_name(tool) not in seen:
                tools.append(tool)
                seen.add(_tool_name(tool))

        allowed = {AGENT_ACTION} | self.extra_actions | seen
        if request.step.action not in allowed:
            raise ActionNotFoundError(request.step.action)
        return tools

    def build_agent(self, request: StepRequest) -> Agent:
        tools = self._resolve_tools(request)
        return Agent(
            self.model,
            name=request.name or None,
            system_prompt=request.instructions,
            tools=tools,
        )

    async def execute(self, request: StepRequest) -> StepOutput:
        agent = self.build_agent(request)

        logger.debug(
            f"Running agent for step: {request.step.name}",
            step_id=request.step.step_id,
            action=request.step.action,
        )
        result = await agent.run(request.input, model_settings=self.model_settings)

        return StepOutput(
            output=str(result.output),
            intermediate_steps=collect_tool_steps(result.new_messages()),
        )


def collect_tool_steps(messages: Iterable[Any]) -> List[AgentStep]:
    """Turn tool return parts of an agent run into AgentSteps, in call order."""
    steps: List[AgentStep] = []
    for message in messages:
        for part in getattr(message, "parts", []):
            if getattr(part, "part_kind", None) != "tool-return":
                continue
            content = part.content
            steps.append(
                AgentStep(
                    action=part.tool_name,
                    result=content if isinstance(content, str) else repr(content),
                )
            )
    return steps
