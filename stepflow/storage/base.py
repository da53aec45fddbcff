"""
Abstract base class for storage backends.

All storage implementations must implement this interface to ensure
consistency across different backends (memory, file).
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from stepflow.storage.schemas import (
    Schedule,
    ScheduleStatus,
    Workflow,
    WorkflowExecutionLog,
)
from stepflow.utils.cron import compute_next_run, ensure_aware, validate_schedule_expression


class StorageBackend(ABC):
    """
    Abstract base class for scheduler storage backends.

    Storage backends are responsible for:
    - Persisting schedules and their run bookkeeping
    - Serving workflow definitions
    - Managing the execution log (append-only)

    Every mutation is a single-record write. Error counter changes and
    schedule claims must be atomic at the backend level so concurrent
    callers never lose an update.
    """

    # Schedule Operations

    @abstractmethod
    async def create_schedule(self, schedule: Schedule) -> Schedule:
        """
        Persist a new schedule.

        ``next_run`` is computed from the schedule expression when missing.

        Raises:
            ValueError: If the schedule_id already exists
            InvalidScheduleError: If the schedule expression is invalid
        """
        pass

    @abstractmethod
    async def get_schedule(self, schedule_id: str) -> Optional[Schedule]:
        """Retrieve a schedule by ID, or None."""
        pass

    @abstractmethod
    async def list_schedules(self, status: Optional[ScheduleStatus] = None) -> List[Schedule]:
        """List schedules, newest first, optionally filtered by status."""
        pass

    @abstractmethod
    async def list_due_schedules(self, now: datetime) -> List[Schedule]:
        """
        List schedules that should run at ``now``.

        A schedule is due when it is active and ``next_run <= now``. Results
        are ordered by ``next_run``. Calling this twice without any schedule
        changing returns the same set.
        """
        pass

    @abstractmethod
    async def update_run_metadata(
        self,
        schedule_id: str,
        last_run: Optional[datetime],
        error_count: int,
        last_error: Optional[str],
        next_run: Optional[datetime] = None,
    ) -> Schedule:
        """
        Overwrite the run bookkeeping of a schedule.

        ``next_run`` is only written when given.

        Raises:
            ScheduleNotFoundError: If the schedule doesn't exist
        """
        pass

    @abstractmethod
    async def mark_run_started(
        self,
        schedule_id: str,
        last_run: datetime,
        next_run: Optional[datetime],
    ) -> Schedule:
        """
        Record that a run started: set ``last_run`` and advance ``next_run``.

        Error bookkeeping is left untouched until the run's outcome is known.

        Raises:
            ScheduleNotFoundError: If the schedule doesn't exist
        """
        pass

    @abstractmethod
    async def increment_error_count(
        self, schedule_id: str, last_error: Optional[str] = None
    ) -> int:
        """
        Atomically add one to ``error_count`` and return the new value.

        Raises:
            ScheduleNotFoundError: If the schedule doesn't exist
        """
        pass

    @abstractmethod
    async def reset_or_increment(
        self,
        schedule_id: str,
        success: bool,
        error: Optional[str] = None,
    ) -> Schedule:
        """
        Atomically record the outcome of a run.

        On success ``error_count`` becomes 0 and ``last_error`` None; on
        failure ``error_count`` grows by one and ``last_error`` is ``error``.

        Raises:
            ScheduleNotFoundError: If the schedule doesn't exist
        """
        pass

    @abstractmethod
    async def update_schedule_status(
        self, schedule_id: str, status: ScheduleStatus
    ) -> Schedule:
        """
        Change a schedule's status.

        Raises:
            ScheduleNotFoundError: If the schedule doesn't exist
        """
        pass

    @abstractmethod
    async def delete_schedule(self, schedule_id: str) -> bool:
        """Delete a schedule. Returns False if it didn't exist."""
        pass

    # Lease Operations

    @abstractmethod
    async def claim_schedule(
        self,
        schedule_id: str,
        owner: str,
        ttl_seconds: float,
        now: datetime,
    ) -> bool:
        """
        Try to take the in-flight lease of a schedule.

        Succeeds when nobody holds the lease, the lease expired, or ``owner``
        already holds it. The lease expires ``ttl_seconds`` after ``now``.

        Returns:
            True if ``owner`` now holds the lease
        """
        pass

    @abstractmethod
    async def release_schedule(self, schedule_id: str, owner: str) -> None:
        """Release the lease if ``owner`` holds it. Missing schedules are ignored."""
        pass

    # Workflow Operations

    @abstractmethod
    async def create_workflow(self, workflow: Workflow) -> Workflow:
        """
        Persist a workflow definition.

        Raises:
            ValueError: If the workflow_id already exists
        """
        pass

    @abstractmethod
    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Retrieve a workflow by ID, or None."""
        pass

    @abstractmethod
    async def list_workflows(self) -> List[Workflow]:
        """List all workflows, newest first."""
        pass

    @abstractmethod
    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow. Returns False if it didn't exist."""
        pass

    # Execution Log Operations

    @abstractmethod
    async def append_log(self, log: WorkflowExecutionLog) -> None:
        """
        Append an entry to the execution log.

        Entries are write-once; the backend never updates or deletes them.
        """
        pass

    @abstractmethod
    async def list_logs(
        self,
        workflow_id: Optional[str] = None,
        schedule_id: Optional[str] = None,
    ) -> List[WorkflowExecutionLog]:
        """List log entries in append order, optionally filtered."""
        pass

    # Helpers

    def prepare_new_schedule(self, schedule: Schedule, now: datetime) -> Schedule:
        """Validate the expression and fill in ``next_run`` for a new schedule."""
        validate_schedule_expression(schedule.schedule)
        if schedule.next_run is None:
            schedule.next_run = compute_next_run(schedule.schedule, now)
        else:
            schedule.next_run = ensure_aware(schedule.next_run)
        return schedule

    # Lifecycle

    async def connect(self) -> None:
        """
        Initialize connection to storage backend.

        Override if your backend requires explicit connection setup.
        """
        pass

    async def disconnect(self) -> None:
        """
        Close connection to storage backend.

        Override if your backend requires explicit cleanup.
        """
        pass

    async def health_check(self) -> bool:
        """
        Check if storage backend is healthy and accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            await self.list_schedules()
            return True
        except Exception:
            return False
