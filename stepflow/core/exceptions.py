"""
Exception classes for workflow and schedule error handling.

StepFlow distinguishes between fatal errors (don't retry) and retriable errors
(automatic retry with configurable delay). Errors are recovered at the lowest
applicable boundary (step -> run -> pass) and never crash the scheduler.
"""

from datetime import UTC, datetime, timedelta
from typing import Any, Optional, Union


class WorkflowError(Exception):
    """Base exception for all workflow-related errors."""

    pass


class FatalError(WorkflowError):
    """
    Non-retriable error that permanently fails the current run.

    Use FatalError for errors where retrying the step won't help (unknown
    action, invalid parameters, rejected credentials).

    Example:
        @action("send_email")
        async def send_email(request):
            if "to" not in request.step.parameters:
                raise FatalError("send_email requires a 'to' parameter")
    """

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message
        self.metadata = kwargs


class RetryableError(WorkflowError):
    """
    Retriable error that triggers another attempt with optional delay.

    Use RetryableError for temporary failures like network errors, rate limits,
    or transient model provider unavailability.

    Args:
        message: Error description
        retry_after: Delay before retry as:
            - str: Duration string ("30s", "5m", "1h")
            - int: Seconds
            - timedelta: Python timedelta object
            - datetime: Specific time to retry
            - None: Use the executor's backoff policy

    Examples:
        # Retry with default backoff
        raise RetryableError("Model provider timeout")

        # Retry after the delay the provider asked for
        raise RetryableError("Rate limited", retry_after="20s")
    """

    def __init__(
        self,
        message: str,
        retry_after: Optional[Union[str, int, timedelta, datetime]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.retry_after = retry_after
        self.metadata = kwargs

    def get_retry_delay_seconds(self) -> Optional[float]:
        """
        Get retry delay in seconds.

        Returns:
            Number of seconds to wait before retry, or None for default
        """
        if self.retry_after is None:
            return None

        if isinstance(self.retry_after, datetime):
            now = datetime.now(UTC)
            reference = now if self.retry_after.tzinfo else now.replace(tzinfo=None)
            delta = self.retry_after - reference
            return max(0.0, delta.total_seconds())

        from stepflow.utils.duration import parse_duration

        return float(parse_duration(self.retry_after))


class ActionNotFoundError(FatalError):
    """Raised when a step's action does not resolve to a known capability."""

    def __init__(self, action: str) -> None:
        super().__init__(f"Unknown step action: {action}", action=action)
        self.action = action


class InvalidWorkflowError(FatalError):
    """Raised when a workflow definition cannot be executed as given."""

    pass


class StepTimeoutError(WorkflowError):
    """Raised when a step executor call exceeds the configured timeout."""

    def __init__(self, step_id: str, timeout: float) -> None:
        super().__init__(f"Step {step_id} timed out after {timeout:g}s")
        self.step_id = step_id
        self.timeout = timeout


class RunCancelledError(WorkflowError):
    """Raised inside a run when its cancellation token has been signalled."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Run of workflow {workflow_id} was cancelled")
        self.workflow_id = workflow_id


class RunStateError(WorkflowError):
    """Raised when a terminal run state is asked to advance."""

    pass


class WorkflowNotFoundError(WorkflowError):
    """Raised when a workflow definition cannot be found."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


class ScheduleNotFoundError(WorkflowError):
    """Raised when a schedule cannot be found."""

    def __init__(self, schedule_id: str) -> None:
        super().__init__(f"Schedule not found: {schedule_id}")
        self.schedule_id = schedule_id


class InvalidScheduleError(WorkflowError):
    """Raised when a schedule expression cannot be parsed."""

    def __init__(self, expression: str, reason: str = "") -> None:
        message = f"Invalid schedule expression: '{expression}'"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.expression = expression


class SerializationError(WorkflowError):
    """Raised when data cannot be serialized or deserialized."""

    def __init__(self, message: str, data_type: Optional[type] = None) -> None:
        super().__init__(message)
        self.data_type = data_type
