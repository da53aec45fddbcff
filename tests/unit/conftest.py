"""
Test configuration and fixtures for unit tests.
"""

from datetime import UTC, datetime, timedelta

import pytest

from stepflow.config import SchedulerConfig
from stepflow.storage.file import FileStorageBackend
from stepflow.storage.memory import InMemoryStorageBackend
from stepflow.storage.schemas import Schedule, Workflow, WorkflowStep


@pytest.fixture(autouse=True)
def reset_action_registry():
    """Reset the global action registry before each test to ensure test isolation."""
    from stepflow.executors.registry import _registry

    original_actions = _registry._actions.copy()
    _registry._actions.clear()

    yield

    _registry._actions.clear()
    _registry._actions.update(original_actions)


@pytest.fixture(params=["memory", "file"])
def storage(request, tmp_path):
    """Every storage backend, for contract tests."""
    if request.param == "memory":
        return InMemoryStorageBackend()
    return FileStorageBackend(base_path=str(tmp_path))


@pytest.fixture
def now():
    return datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def scheduler_config():
    """Scheduler settings that never read the environment and poll quickly."""
    return SchedulerConfig(poll_interval=0.01, owner_id="test-owner", storage="memory")


def _make_workflow(*step_ids: str, workflow_id: str = "wf_test", name: str = "Test workflow"):
    return Workflow(
        workflow_id=workflow_id,
        name=name,
        description="Workflow used in tests",
        steps=[
            WorkflowStep(step_id=step_id, name=f"Step {step_id}", action="agent")
            for step_id in step_ids
        ],
    )


def _make_schedule(
    workflow_id: str = "wf_test",
    schedule_id: str = "sched_test",
    due_at: datetime = None,
    **kwargs,
):
    due_at = due_at or datetime(2025, 1, 15, 12, 0, tzinfo=UTC) - timedelta(minutes=1)
    return Schedule(
        schedule_id=schedule_id,
        workflow_id=workflow_id,
        schedule="15m",
        name=f"Schedule {schedule_id}",
        next_run=due_at,
        **kwargs,
    )


@pytest.fixture
def make_workflow():
    """Factory for workflows whose steps all use the agent action."""
    return _make_workflow


@pytest.fixture
def make_schedule():
    """Factory for interval schedules that are already due at ``now``."""
    return _make_schedule
