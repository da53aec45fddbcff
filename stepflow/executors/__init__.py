"""
Step executors.

Executors carry out individual workflow steps for the run engine.
"""

from stepflow.executors.agent import AGENT_ACTION, AgentStepExecutor
from stepflow.executors.base import AgentStep, StepExecutor, StepOutput, StepRequest
from stepflow.executors.registry import (
    ActionRegistry,
    ActionStepExecutor,
    action,
    get_registry,
)
from stepflow.executors.retry import RetryingStepExecutor, RetryPolicy

__all__ = [
    "AGENT_ACTION",
    "AgentStep",
    "AgentStepExecutor",
    "ActionRegistry",
    "ActionStepExecutor",
    "RetryingStepExecutor",
    "RetryPolicy",
    "StepExecutor",
    "StepOutput",
    "StepRequest",
    "action",
    "get_registry",
]
