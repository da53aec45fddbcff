"""
Observability and logging for StepFlow.

Provides structured logging for schedules, runs, and steps.
"""

from stepflow.observability.logging import (
    bind_run_context,
    bind_schedule_context,
    configure_logging,
    get_logger,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "bind_schedule_context",
    "bind_run_context",
]
