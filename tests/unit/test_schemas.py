"""
Unit tests for data models and run state.
"""

from datetime import UTC, datetime, timedelta

import pytest

from stepflow.core.exceptions import InvalidWorkflowError, RunStateError
from stepflow.core.state import ChatHistory, MessageRole, RunStatus, WorkflowRunState
from stepflow.storage.schemas import (
    LogStatus,
    Schedule,
    ScheduleConfig,
    ScheduleStatus,
    Workflow,
    WorkflowExecutionLog,
    WorkflowStep,
)


class TestScheduleConfig:
    """Test per-schedule settings."""

    def test_defaults(self):
        config = ScheduleConfig()

        assert config.max_retries == 3
        assert config.timeout is None
        assert config.notifications is False

    def test_from_dict_accepts_camel_case_and_keeps_unknown_keys(self):
        """Test loading records written with the older key style."""
        config = ScheduleConfig.from_dict(
            {"maxRetries": 5, "timeout": "90s", "notifications": True, "channel": "#ops"}
        )

        assert config.max_retries == 5
        assert config.timeout == 90.0
        assert config.notifications is True
        assert config.extra == {"channel": "#ops"}
        assert config.to_dict()["channel"] == "#ops"

    def test_invalid_values(self):
        with pytest.raises(ValueError):
            ScheduleConfig(max_retries=-1)
        with pytest.raises(ValueError):
            ScheduleConfig(timeout=0)


class TestSchedule:
    """Test schedule records."""

    def test_requires_workflow_id(self):
        with pytest.raises(ValueError):
            Schedule(workflow_id="", schedule="15m")

    def test_is_due(self):
        """Test due detection for active and paused schedules."""
        now = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)
        schedule = Schedule(workflow_id="wf", schedule="15m", next_run=now)

        assert schedule.is_due(now)
        assert not schedule.is_due(now - timedelta(seconds=1))

        schedule.status = ScheduleStatus.PAUSED
        assert not schedule.is_due(now)

        assert not Schedule(workflow_id="wf", schedule="15m").is_due(now)

    def test_has_exceeded_max_retries(self):
        schedule = Schedule(
            workflow_id="wf", schedule="15m", config=ScheduleConfig(max_retries=2)
        )

        schedule.error_count = 2
        assert not schedule.has_exceeded_max_retries()
        schedule.error_count = 3
        assert schedule.has_exceeded_max_retries()

    def test_dict_round_trip(self):
        """Test serialization of every field."""
        now = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)
        schedule = Schedule(
            workflow_id="wf",
            schedule="0 8 * * *",
            name="Morning digest",
            status=ScheduleStatus.ERROR,
            config={"max_retries": 1},
            error_count=4,
            last_error="boom",
            last_run=now,
            next_run=now + timedelta(days=1),
            metadata={"owner": "ops"},
        )

        restored = Schedule.from_dict(schedule.to_dict())

        assert restored == schedule
        assert isinstance(restored.config, ScheduleConfig)


class TestWorkflow:
    """Test workflow definitions."""

    def test_validate_accepts_unique_steps(self):
        Workflow(
            name="wf",
            steps=[
                WorkflowStep(step_id="a", name="A", action="agent"),
                WorkflowStep(step_id="b", name="B", action="agent"),
            ],
        ).validate()

    def test_validate_rejects_duplicates(self):
        workflow = Workflow(
            name="wf",
            steps=[
                WorkflowStep(step_id="a", name="A", action="agent"),
                WorkflowStep(step_id="a", name="A again", action="agent"),
            ],
        )

        with pytest.raises(InvalidWorkflowError, match="Duplicate step id"):
            workflow.validate()

    def test_validate_rejects_missing_action(self):
        workflow = Workflow(name="wf", steps=[WorkflowStep(step_id="a", name="A", action="")])

        with pytest.raises(InvalidWorkflowError):
            workflow.validate()

    def test_step_uses_id_key(self):
        """Test that steps are stored with an "id" key."""
        step = WorkflowStep(step_id="a", name="A", action="agent", parameters={"x": 1})

        assert step.to_dict()["id"] == "a"
        assert WorkflowStep.from_dict(step.to_dict()) == step


class TestExecutionLog:
    """Test execution log entries."""

    def test_requires_status_enum(self):
        with pytest.raises(TypeError):
            WorkflowExecutionLog(workflow_id="wf", status="completed")

    def test_dict_round_trip(self):
        log = WorkflowExecutionLog(
            workflow_id="wf", status=LogStatus.ERROR, step="b", error="boom"
        )

        assert WorkflowExecutionLog.from_dict(log.to_dict()) == log


class TestRunState:
    """Test the in-memory state of a run."""

    def test_record_steps_then_complete(self):
        state = WorkflowRunState(workflow_id="wf", total_steps=2)

        state.record_step("a", "A", "out a")
        state.record_step("b", "B", "out b")
        state.complete()

        assert state.current_step == 2
        assert state.workflow_status == RunStatus.COMPLETED
        assert state.is_terminal

    def test_cannot_advance_past_last_step(self):
        state = WorkflowRunState(workflow_id="wf", total_steps=1)
        state.record_step("a", "A", "out")

        with pytest.raises(RunStateError):
            state.record_step("b", "B", "out")

    def test_terminal_state_is_frozen(self):
        """Test that a failed run can't record more steps."""
        state = WorkflowRunState(workflow_id="wf", total_steps=3)

        error = state.fail(0, ValueError("bad input"))

        assert error.step == 0
        assert error.message == "bad input"
        assert error.error_type == "ValueError"
        assert state.current_step == 0
        with pytest.raises(RunStateError):
            state.record_step("a", "A", "out")
        with pytest.raises(RunStateError):
            state.complete()

    def test_history_drops_oldest_messages(self):
        history = ChatHistory(max_size=2)

        history.add(MessageRole.HUMAN, "one")
        history.add(MessageRole.AI, "two")
        history.add(MessageRole.HUMAN, "three")

        assert [m.content for m in history] == ["two", "three"]
        assert [m.content for m in history.recent(1)] == ["three"]
