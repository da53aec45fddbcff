"""
Unit tests for the action registry and the action step executor.
"""

import pytest

from stepflow.core.exceptions import ActionNotFoundError
from stepflow.engine.runner import WorkflowRunEngine
from stepflow.executors.base import StepOutput, StepRequest
from stepflow.executors.registry import (
    ActionRegistry,
    ActionStepExecutor,
    action,
    get_registry,
)
from stepflow.storage.schemas import WorkflowStep


def make_request(action_name: str, **parameters) -> StepRequest:
    return StepRequest(
        step=WorkflowStep(step_id="s1", name="Fetch", action=action_name, parameters=parameters),
        step_index=0,
        name="Test workflow",
        description="",
        instructions="",
        input="Step: Fetch",
    )


class TestActionRegistry:
    """Test the action registry functionality."""

    def test_register_and_resolve(self):
        """Test registering and retrieving an action."""
        registry = ActionRegistry()

        async def fetch(request):
            return "ok"

        registry.register("fetch", fetch, description="Fetch a page", metadata={"kind": "http"})

        action_meta = registry.resolve("fetch")
        assert action_meta.name == "fetch"
        assert action_meta.func is fetch
        assert action_meta.description == "Fetch a page"
        assert action_meta.metadata == {"kind": "http"}

    def test_resolve_unknown_action(self):
        """Test that unknown actions raise ActionNotFoundError."""
        registry = ActionRegistry()

        assert registry.get("missing") is None
        with pytest.raises(ActionNotFoundError) as exc_info:
            registry.resolve("missing")

        assert exc_info.value.action == "missing"

    def test_register_same_function_twice(self):
        """Test that re-registering the same function is a no-op."""
        registry = ActionRegistry()

        async def fetch(request):
            return "ok"

        registry.register("fetch", fetch)
        registry.register("fetch", fetch)

        assert list(registry.list_actions()) == ["fetch"]

    def test_register_conflicting_function(self):
        """Test that a name can't be reused for another function."""
        registry = ActionRegistry()

        async def first(request):
            return "1"

        async def second(request):
            return "2"

        registry.register("fetch", first)
        with pytest.raises(ValueError, match="already registered"):
            registry.register("fetch", second)

    def test_clear(self):
        """Test clearing the registry."""
        registry = ActionRegistry()

        async def fetch(request):
            return "ok"

        registry.register("fetch", fetch)
        registry.clear()

        assert registry.list_actions() == {}


class TestActionDecorator:
    """Test the @action decorator."""

    def test_decorator_registers_globally(self):
        """Test that @action registers under the function name by default."""

        @action()
        async def summarize(request):
            """Summarize text."""
            return "summary"

        action_meta = get_registry().resolve("summarize")
        assert action_meta.description == "Summarize text."
        assert summarize.__action_name__ == "summarize"

    def test_decorator_with_name_and_registry(self):
        """Test registering into a specific registry under a custom name."""
        registry = ActionRegistry()

        @action("http_get", registry=registry)
        async def fetch(request):
            return "ok"

        assert registry.get("http_get") is not None
        assert get_registry().get("http_get") is None


class TestActionStepExecutor:
    """Test executing steps through registered actions."""

    @pytest.mark.asyncio
    async def test_string_result_becomes_output(self):
        """Test that plain return values are converted to StepOutput."""
        registry = ActionRegistry()

        @action("fetch", registry=registry)
        async def fetch(request):
            return f"fetched {request.step.parameters['url']}"

        output = await ActionStepExecutor(registry).execute(
            make_request("fetch", url="https://example.com")
        )

        assert output == StepOutput(output="fetched https://example.com")

    @pytest.mark.asyncio
    async def test_step_output_passes_through(self):
        """Test that handlers may return a StepOutput directly."""
        registry = ActionRegistry()
        expected = StepOutput(output="done")

        @action("noop", registry=registry)
        async def noop(request):
            return expected

        assert await ActionStepExecutor(registry).execute(make_request("noop")) is expected

    @pytest.mark.asyncio
    async def test_none_result_is_empty_output(self):
        """Test that a handler returning None produces empty output."""

        @action("silent")
        async def silent(request):
            return None

        output = await ActionStepExecutor().execute(make_request("silent"))

        assert output.output == ""

    @pytest.mark.asyncio
    async def test_unknown_action_fails_run(self, make_workflow):
        """Test that a step with an unknown action fails the run at that step."""
        engine = WorkflowRunEngine(ActionStepExecutor(ActionRegistry()))

        state = await engine.execute(make_workflow("a"))

        assert state.error.step == 0
        assert state.error.error_type == "ActionNotFoundError"
        assert "agent" in state.error.message
