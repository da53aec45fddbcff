"""
In-memory storage backend.

Useful for tests or embedding the scheduler in a process that keeps its
schedules elsewhere. Data is not persisted across process restarts.
"""

import asyncio
import copy
from datetime import UTC, datetime, timedelta
from typing import Dict, List, Optional

from stepflow.core.exceptions import ScheduleNotFoundError
from stepflow.storage.base import StorageBackend
from stepflow.storage.schemas import (
    Schedule,
    ScheduleStatus,
    Workflow,
    WorkflowExecutionLog,
)
from stepflow.utils.cron import ensure_aware, ensure_optional_aware


class InMemoryStorageBackend(StorageBackend):
    """
    Store schedules, workflows and logs in local memory.

    Records are copied on the way in and out, so callers never share
    mutable state with the store. A single asyncio.Lock serializes
    mutations.
    """

    def __init__(self) -> None:
        self._schedules: Dict[str, Schedule] = {}
        self._workflows: Dict[str, Workflow] = {}
        self._logs: List[WorkflowExecutionLog] = []
        self._lock = asyncio.Lock()

    def _require(self, schedule_id: str) -> Schedule:
        schedule = self._schedules.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        return schedule

    # Schedule Operations

    async def create_schedule(self, schedule: Schedule) -> Schedule:
        async with self._lock:
            if schedule.schedule_id in self._schedules:
                raise ValueError(f"Schedule {schedule.schedule_id} already exists")
            stored = self.prepare_new_schedule(copy.deepcopy(schedule), datetime.now(UTC))
            self._schedules[stored.schedule_id] = stored
            return copy.deepcopy(stored)

    async def get_schedule(self, schedule_id: str) -> Optional[Schedule]:
        schedule = self._schedules.get(schedule_id)
        return copy.deepcopy(schedule) if schedule else None

    async def list_schedules(self, status: Optional[ScheduleStatus] = None) -> List[Schedule]:
        schedules = [
            s for s in self._schedules.values() if status is None or s.status == status
        ]
        schedules.sort(key=lambda s: s.created_at, reverse=True)
        return copy.deepcopy(schedules)

    async def list_due_schedules(self, now: datetime) -> List[Schedule]:
        now = ensure_aware(now)
        due = [s for s in self._schedules.values() if s.is_due(now)]
        due.sort(key=lambda s: s.next_run)
        return copy.deepcopy(due)

    async def update_run_metadata(
        self,
        schedule_id: str,
        last_run: Optional[datetime],
        error_count: int,
        last_error: Optional[str],
        next_run: Optional[datetime] = None,
    ) -> Schedule:
        async with self._lock:
            schedule = self._require(schedule_id)
            schedule.last_run = ensure_optional_aware(last_run)
            schedule.error_count = error_count
            schedule.last_error = last_error
            if next_run is not None:
                schedule.next_run = ensure_aware(next_run)
            schedule.updated_at = datetime.now(UTC)
            return copy.deepcopy(schedule)

    async def mark_run_started(
        self,
        schedule_id: str,
        last_run: datetime,
        next_run: Optional[datetime],
    ) -> Schedule:
        async with self._lock:
            schedule = self._require(schedule_id)
            schedule.last_run = ensure_aware(last_run)
            schedule.next_run = ensure_optional_aware(next_run)
            schedule.updated_at = datetime.now(UTC)
            return copy.deepcopy(schedule)

    async def increment_error_count(
        self, schedule_id: str, last_error: Optional[str] = None
    ) -> int:
        async with self._lock:
            schedule = self._require(schedule_id)
            schedule.error_count += 1
            if last_error is not None:
                schedule.last_error = last_error
            schedule.updated_at = datetime.now(UTC)
            return schedule.error_count

    async def reset_or_increment(
        self,
        schedule_id: str,
        success: bool,
        error: Optional[str] = None,
    ) -> Schedule:
        async with self._lock:
            schedule = self._require(schedule_id)
            if success:
                schedule.error_count = 0
                schedule.last_error = None
            else:
                schedule.error_count += 1
                schedule.last_error = error
            schedule.updated_at = datetime.now(UTC)
            return copy.deepcopy(schedule)

    async def update_schedule_status(
        self, schedule_id: str, status: ScheduleStatus
    ) -> Schedule:
        async with self._lock:
            schedule = self._require(schedule_id)
            schedule.status = status
            schedule.updated_at = datetime.now(UTC)
            return copy.deepcopy(schedule)

    async def delete_schedule(self, schedule_id: str) -> bool:
        async with self._lock:
            return self._schedules.pop(schedule_id, None) is not None

    # Lease Operations

    async def claim_schedule(
        self,
        schedule_id: str,
        owner: str,
        ttl_seconds: float,
        now: datetime,
    ) -> bool:
        now = ensure_aware(now)
        async with self._lock:
            schedule = self._require(schedule_id)
            if schedule.is_leased(now) and schedule.lease_owner != owner:
                return False
            schedule.lease_owner = owner
            schedule.lease_expires_at = now + timedelta(seconds=ttl_seconds)
            return True

    async def release_schedule(self, schedule_id: str, owner: str) -> None:
        async with self._lock:
            schedule = self._schedules.get(schedule_id)
            if schedule is not None and schedule.lease_owner == owner:
                schedule.lease_owner = None
                schedule.lease_expires_at = None

    # Workflow Operations

    async def create_workflow(self, workflow: Workflow) -> Workflow:
        async with self._lock:
            if workflow.workflow_id in self._workflows:
                raise ValueError(f"Workflow {workflow.workflow_id} already exists")
            self._workflows[workflow.workflow_id] = copy.deepcopy(workflow)
            return copy.deepcopy(workflow)

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        workflow = self._workflows.get(workflow_id)
        return copy.deepcopy(workflow) if workflow else None

    async def list_workflows(self) -> List[Workflow]:
        workflows = sorted(self._workflows.values(), key=lambda w: w.created_at, reverse=True)
        return copy.deepcopy(workflows)

    async def delete_workflow(self, workflow_id: str) -> bool:
        async with self._lock:
            return self._workflows.pop(workflow_id, None) is not None

    # Execution Log Operations

    async def append_log(self, log: WorkflowExecutionLog) -> None:
        async with self._lock:
            self._logs.append(copy.deepcopy(log))

    async def list_logs(
        self,
        workflow_id: Optional[str] = None,
        schedule_id: Optional[str] = None,
    ) -> List[WorkflowExecutionLog]:
        logs = [
            log
            for log in self._logs
            if (workflow_id is None or log.workflow_id == workflow_id)
            and (schedule_id is None or log.schedule_id == schedule_id)
        ]
        return copy.deepcopy(logs)
