"""
Unit tests for the pydantic-ai backed step executor.

The agent runs against pydantic-ai's TestModel, so no model provider is
contacted.
"""

import pytest
from pydantic_ai.models.test import TestModel as PydanticTestModel

from stepflow.core.exceptions import ActionNotFoundError
from stepflow.core.state import RunStatus
from stepflow.engine.runner import WorkflowRunEngine
from stepflow.executors.agent import AGENT_ACTION, AgentStepExecutor, collect_tool_steps
from stepflow.executors.base import StepRequest
from stepflow.storage.schemas import WorkflowStep


def get_weather(city: str) -> str:
    """Get the weather for a city."""
    return f"sunny in {city}"


def make_request(action: str = AGENT_ACTION, tools=None) -> StepRequest:
    return StepRequest(
        step=WorkflowStep(step_id="s1", name="Check weather", action=action),
        step_index=0,
        name="Morning briefing",
        description="",
        instructions="You are a helpful AI assistant.",
        input="Step: Check weather\nAction: agent",
        tools=list(tools or []),
    )


class TestAgentStepExecutor:
    """Test executing steps with an agent."""

    @pytest.mark.asyncio
    async def test_agent_output_becomes_step_output(self):
        """Test a step without tools."""
        executor = AgentStepExecutor(PydanticTestModel(custom_output_text="All clear."))

        output = await executor.execute(make_request())

        assert output.output == "All clear."
        assert output.intermediate_steps == []

    @pytest.mark.asyncio
    async def test_tool_calls_become_intermediate_steps(self):
        """Test that tool returns are reported as intermediate steps."""
        executor = AgentStepExecutor(PydanticTestModel(custom_output_text="Done."))

        output = await executor.execute(make_request(tools=[get_weather]))

        assert output.output == "Done."
        assert [step.action for step in output.intermediate_steps] == ["get_weather"]
        assert output.intermediate_steps[0].result.startswith("sunny in")
        assert "intermediate_steps" in output.to_dict()

    @pytest.mark.asyncio
    async def test_executor_tools_are_available(self):
        """Test that tools given to the executor are used for every step."""
        executor = AgentStepExecutor(
            PydanticTestModel(custom_output_text="Done."), tools=[get_weather]
        )

        output = await executor.execute(make_request(action="get_weather"))

        assert [step.action for step in output.intermediate_steps] == ["get_weather"]

    @pytest.mark.asyncio
    async def test_unknown_action_is_rejected(self):
        """Test that an action the agent can't handle fails before calling the model."""
        executor = AgentStepExecutor(PydanticTestModel())

        with pytest.raises(ActionNotFoundError):
            await executor.execute(make_request(action="teleport"))

    @pytest.mark.asyncio
    async def test_extra_actions_are_allowed(self):
        """Test trusting the agent with additional action names."""
        executor = AgentStepExecutor(
            PydanticTestModel(custom_output_text="Summarized."), extra_actions=["summarize"]
        )

        output = await executor.execute(make_request(action="summarize"))

        assert output.output == "Summarized."

    @pytest.mark.asyncio
    async def test_runs_whole_workflow(self, make_workflow):
        """Test the agent executor driving the run engine."""
        engine = WorkflowRunEngine(AgentStepExecutor(PydanticTestModel(custom_output_text="ok")))

        state = await engine.execute(make_workflow("a", "b"))

        assert state.workflow_status == RunStatus.COMPLETED
        assert [r.output.output for r in state.step_results] == ["ok", "ok"]


class TestCollectToolSteps:
    """Test extraction of tool calls from agent messages."""

    def test_ignores_non_tool_parts(self):
        """Test that only tool-return parts are collected."""

        class Part:
            def __init__(self, part_kind, tool_name=None, content=None):
                self.part_kind = part_kind
                self.tool_name = tool_name
                self.content = content

        class Message:
            def __init__(self, *parts):
                self.parts = list(parts)

        messages = [
            Message(Part("user-prompt", content="hi")),
            Message(Part("tool-call", tool_name="lookup")),
            Message(Part("tool-return", tool_name="lookup", content={"rows": 2})),
        ]

        steps = collect_tool_steps(messages)

        assert len(steps) == 1
        assert steps[0].action == "lookup"
        assert steps[0].result == "{'rows': 2}"
