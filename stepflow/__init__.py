"""
StepFlow - Scheduled, step-by-step workflow runs for AI agents

A polling scheduler discovers due workflow runs, feeds them through a
step-sequencing engine backed by an LLM agent (or registered actions),
persists step-level execution logs and tracks per-schedule error counters.

Quick Start:
    >>> from stepflow import (
    >>>     AgentStepExecutor, FileStorageBackend, RetryingStepExecutor,
    >>>     Schedule, Workflow, WorkflowScheduler, WorkflowStep,
    >>> )
    >>>
    >>> storage = FileStorageBackend()
    >>> workflow = await storage.create_workflow(
    >>>     Workflow(name="Digest", steps=[WorkflowStep("s1", "Summarize inbox", "agent")])
    >>> )
    >>> await storage.create_schedule(Schedule(workflow.workflow_id, "0 8 * * *"))
    >>>
    >>> executor = RetryingStepExecutor(AgentStepExecutor("openai:gpt-4o"))
    >>> async with WorkflowScheduler(storage, executor):
    >>>     await shutdown_requested.wait()
"""

__version__ = "0.1.0"

# Configuration
from stepflow.config import SchedulerConfig, discover_actions, get_storage, load_config

# Run state
from stepflow.core.context import ExecutionContext
from stepflow.core.state import RunError, RunStatus, StepResult, WorkflowRunState

# Engine and scheduler
from stepflow.engine.events import EventType, RunCompleted, RunEvent, RunFailed, StepCompleted
from stepflow.engine.runner import WorkflowRunEngine
from stepflow.engine.scheduler import OutcomeStatus, ScheduleOutcome, WorkflowScheduler

# Step executors
from stepflow.executors import (
    ActionStepExecutor,
    AgentStepExecutor,
    RetryingStepExecutor,
    RetryPolicy,
    StepExecutor,
    StepOutput,
    StepRequest,
    action,
)

# Exceptions
from stepflow.core.exceptions import (
    ActionNotFoundError,
    FatalError,
    InvalidScheduleError,
    InvalidWorkflowError,
    RetryableError,
    RunCancelledError,
    ScheduleNotFoundError,
    StepTimeoutError,
    WorkflowError,
    WorkflowNotFoundError,
)

# Storage backends
from stepflow.storage.base import StorageBackend
from stepflow.storage.file import FileStorageBackend
from stepflow.storage.memory import InMemoryStorageBackend
from stepflow.storage.schemas import (
    LogStatus,
    Schedule,
    ScheduleConfig,
    ScheduleStatus,
    Workflow,
    WorkflowExecutionLog,
    WorkflowStatus,
    WorkflowStep,
)

# Logging and observability
from stepflow.observability.logging import (
    bind_run_context,
    bind_schedule_context,
    configure_logging,
    get_logger,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "SchedulerConfig",
    "load_config",
    "get_storage",
    "discover_actions",
    # Run state
    "ExecutionContext",
    "WorkflowRunState",
    "RunStatus",
    "RunError",
    "StepResult",
    # Engine
    "WorkflowRunEngine",
    "WorkflowScheduler",
    "ScheduleOutcome",
    "OutcomeStatus",
    "EventType",
    "RunEvent",
    "StepCompleted",
    "RunCompleted",
    "RunFailed",
    # Executors
    "StepExecutor",
    "StepOutput",
    "StepRequest",
    "AgentStepExecutor",
    "ActionStepExecutor",
    "RetryingStepExecutor",
    "RetryPolicy",
    "action",
    # Exceptions
    "WorkflowError",
    "FatalError",
    "RetryableError",
    "ActionNotFoundError",
    "InvalidWorkflowError",
    "InvalidScheduleError",
    "StepTimeoutError",
    "RunCancelledError",
    "WorkflowNotFoundError",
    "ScheduleNotFoundError",
    # Storage
    "StorageBackend",
    "FileStorageBackend",
    "InMemoryStorageBackend",
    "Schedule",
    "ScheduleConfig",
    "ScheduleStatus",
    "Workflow",
    "WorkflowStep",
    "WorkflowStatus",
    "WorkflowExecutionLog",
    "LogStatus",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_schedule_context",
    "bind_run_context",
]
