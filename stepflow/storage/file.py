"""
File-based storage backend using JSON files.

This backend stores scheduler data in local JSON files, suitable for:
- Development and testing
- Single-machine deployments
- Low-volume production use

Data is stored in a directory structure:
    base_path/
        schedules/
            {schedule_id}.json
        workflows/
            {workflow_id}.json
        logs/
            {workflow_id}.jsonl  (append-only)
        .locks/
"""

import asyncio
import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional

from filelock import FileLock

from stepflow.core.exceptions import ScheduleNotFoundError
from stepflow.serialization.decoder import deserialize
from stepflow.serialization.encoder import serialize
from stepflow.storage.base import StorageBackend
from stepflow.storage.schemas import (
    Schedule,
    ScheduleStatus,
    Workflow,
    WorkflowExecutionLog,
)
from stepflow.utils.cron import ensure_aware, ensure_optional_aware


class FileStorageBackend(StorageBackend):
    """
    File-based storage backend using JSON files.

    Every read-modify-write of a schedule happens under that schedule's file
    lock, which makes error counter updates and lease claims atomic across
    threads and processes sharing ``base_path``.
    """

    def __init__(self, base_path: str = "./stepflow_data"):
        """
        Initialize file storage backend.

        Args:
            base_path: Base directory for storing scheduler data
        """
        self.base_path = Path(base_path)
        self.schedules_dir = self.base_path / "schedules"
        self.workflows_dir = self.base_path / "workflows"
        self.logs_dir = self.base_path / "logs"
        self.locks_dir = self.base_path / ".locks"

        for dir_path in [
            self.schedules_dir,
            self.workflows_dir,
            self.logs_dir,
            self.locks_dir,
        ]:
            dir_path.mkdir(parents=True, exist_ok=True)

    def _schedule_file(self, schedule_id: str) -> Path:
        return self.schedules_dir / f"{schedule_id}.json"

    def _lock(self, name: str) -> FileLock:
        return FileLock(str(self.locks_dir / f"{name}.lock"))

    async def _mutate_schedule(
        self, schedule_id: str, mutate: Callable[[Schedule], object]
    ) -> Schedule:
        """Load, change and write back one schedule under its lock."""
        schedule_file = self._schedule_file(schedule_id)
        lock = self._lock(schedule_id)

        def _update() -> Schedule:
            with lock:
                if not schedule_file.exists():
                    raise ScheduleNotFoundError(schedule_id)
                schedule = Schedule.from_dict(json.loads(schedule_file.read_text()))
                mutate(schedule)
                schedule.updated_at = datetime.now(UTC)
                schedule_file.write_text(json.dumps(schedule.to_dict(), indent=2))
                return schedule

        return await asyncio.to_thread(_update)

    # Schedule Operations

    async def create_schedule(self, schedule: Schedule) -> Schedule:
        """Create a new schedule record."""
        schedule_file = self._schedule_file(schedule.schedule_id)
        stored = self.prepare_new_schedule(
            Schedule.from_dict(schedule.to_dict()), datetime.now(UTC)
        )
        lock = self._lock(schedule.schedule_id)

        def _write() -> None:
            with lock:
                if schedule_file.exists():
                    raise ValueError(f"Schedule {schedule.schedule_id} already exists")
                schedule_file.write_text(json.dumps(stored.to_dict(), indent=2))

        await asyncio.to_thread(_write)
        return stored

    async def get_schedule(self, schedule_id: str) -> Optional[Schedule]:
        """Retrieve a schedule by ID."""
        schedule_file = self._schedule_file(schedule_id)

        if not schedule_file.exists():
            return None

        def _read() -> dict:
            return json.loads(schedule_file.read_text())

        data = await asyncio.to_thread(_read)
        return Schedule.from_dict(data)

    async def _all_schedules(self) -> List[Schedule]:
        def _list() -> List[dict]:
            return [json.loads(f.read_text()) for f in self.schedules_dir.glob("*.json")]

        return [Schedule.from_dict(data) for data in await asyncio.to_thread(_list)]

    async def list_schedules(self, status: Optional[ScheduleStatus] = None) -> List[Schedule]:
        """List schedules with optional status filter."""
        schedules = [
            s for s in await self._all_schedules() if status is None or s.status == status
        ]
        schedules.sort(key=lambda s: s.created_at, reverse=True)
        return schedules

    async def list_due_schedules(self, now: datetime) -> List[Schedule]:
        """List active schedules whose next run has arrived."""
        now = ensure_aware(now)
        due = [s for s in await self._all_schedules() if s.is_due(now)]
        due.sort(key=lambda s: s.next_run)
        return due

    async def update_run_metadata(
        self,
        schedule_id: str,
        last_run: Optional[datetime],
        error_count: int,
        last_error: Optional[str],
        next_run: Optional[datetime] = None,
    ) -> Schedule:
        """Overwrite run bookkeeping."""

        def _apply(schedule: Schedule) -> None:
            schedule.last_run = ensure_optional_aware(last_run)
            schedule.error_count = error_count
            schedule.last_error = last_error
            if next_run is not None:
                schedule.next_run = ensure_aware(next_run)

        return await self._mutate_schedule(schedule_id, _apply)

    async def mark_run_started(
        self,
        schedule_id: str,
        last_run: datetime,
        next_run: Optional[datetime],
    ) -> Schedule:
        """Record the start of a run."""

        def _apply(schedule: Schedule) -> None:
            schedule.last_run = ensure_aware(last_run)
            schedule.next_run = ensure_optional_aware(next_run)

        return await self._mutate_schedule(schedule_id, _apply)

    async def increment_error_count(
        self, schedule_id: str, last_error: Optional[str] = None
    ) -> int:
        """Atomically increment the error counter."""

        def _apply(schedule: Schedule) -> None:
            schedule.error_count += 1
            if last_error is not None:
                schedule.last_error = last_error

        schedule = await self._mutate_schedule(schedule_id, _apply)
        return schedule.error_count

    async def reset_or_increment(
        self,
        schedule_id: str,
        success: bool,
        error: Optional[str] = None,
    ) -> Schedule:
        """Atomically record a run outcome."""

        def _apply(schedule: Schedule) -> None:
            if success:
                schedule.error_count = 0
                schedule.last_error = None
            else:
                schedule.error_count += 1
                schedule.last_error = error

        return await self._mutate_schedule(schedule_id, _apply)

    async def update_schedule_status(
        self, schedule_id: str, status: ScheduleStatus
    ) -> Schedule:
        """Change schedule status."""

        def _apply(schedule: Schedule) -> None:
            schedule.status = status

        return await self._mutate_schedule(schedule_id, _apply)

    async def delete_schedule(self, schedule_id: str) -> bool:
        """Delete a schedule file."""
        schedule_file = self._schedule_file(schedule_id)
        lock = self._lock(schedule_id)

        def _delete() -> bool:
            with lock:
                if not schedule_file.exists():
                    return False
                schedule_file.unlink()
                return True

        return await asyncio.to_thread(_delete)

    # Lease Operations

    async def claim_schedule(
        self,
        schedule_id: str,
        owner: str,
        ttl_seconds: float,
        now: datetime,
    ) -> bool:
        """Take the schedule's lease under its file lock."""
        now = ensure_aware(now)
        claimed = False

        def _apply(schedule: Schedule) -> None:
            nonlocal claimed
            if schedule.is_leased(now) and schedule.lease_owner != owner:
                return
            schedule.lease_owner = owner
            schedule.lease_expires_at = now + timedelta(seconds=ttl_seconds)
            claimed = True

        await self._mutate_schedule(schedule_id, _apply)
        return claimed

    async def release_schedule(self, schedule_id: str, owner: str) -> None:
        """Release the lease held by ``owner``."""

        def _apply(schedule: Schedule) -> None:
            if schedule.lease_owner == owner:
                schedule.lease_owner = None
                schedule.lease_expires_at = None

        try:
            await self._mutate_schedule(schedule_id, _apply)
        except ScheduleNotFoundError:
            pass

    # Workflow Operations

    async def create_workflow(self, workflow: Workflow) -> Workflow:
        """Create a workflow definition file."""
        workflow_file = self.workflows_dir / f"{workflow.workflow_id}.json"
        data = workflow.to_dict()
        lock = self._lock(f"workflow_{workflow.workflow_id}")

        def _write() -> None:
            with lock:
                if workflow_file.exists():
                    raise ValueError(f"Workflow {workflow.workflow_id} already exists")
                workflow_file.write_text(json.dumps(data, indent=2))

        await asyncio.to_thread(_write)
        return Workflow.from_dict(data)

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Retrieve a workflow by ID."""
        workflow_file = self.workflows_dir / f"{workflow_id}.json"

        if not workflow_file.exists():
            return None

        def _read() -> dict:
            return json.loads(workflow_file.read_text())

        data = await asyncio.to_thread(_read)
        return Workflow.from_dict(data)

    async def list_workflows(self) -> List[Workflow]:
        """List all workflows."""

        def _list() -> List[dict]:
            workflows = [json.loads(f.read_text()) for f in self.workflows_dir.glob("*.json")]
            workflows.sort(key=lambda w: w.get("created_at", ""), reverse=True)
            return workflows

        return [Workflow.from_dict(data) for data in await asyncio.to_thread(_list)]

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow file."""
        workflow_file = self.workflows_dir / f"{workflow_id}.json"

        def _delete() -> bool:
            if not workflow_file.exists():
                return False
            workflow_file.unlink()
            return True

        return await asyncio.to_thread(_delete)

    # Execution Log Operations

    async def append_log(self, log: WorkflowExecutionLog) -> None:
        """Append an entry to the workflow's log file."""
        log_file = self.logs_dir / f"{log.workflow_id}.jsonl"
        lock = self._lock(f"logs_{log.workflow_id}")

        data = log.to_dict()
        data["result"] = serialize(log.result)

        def _append() -> None:
            with lock:
                with log_file.open("a") as f:
                    f.write(json.dumps(data) + "\n")

        await asyncio.to_thread(_append)

    async def list_logs(
        self,
        workflow_id: Optional[str] = None,
        schedule_id: Optional[str] = None,
    ) -> List[WorkflowExecutionLog]:
        """Read log entries in append order."""
        if workflow_id is not None:
            log_files = [self.logs_dir / f"{workflow_id}.jsonl"]
        else:
            log_files = sorted(self.logs_dir.glob("*.jsonl"))

        def _read() -> List[WorkflowExecutionLog]:
            logs = []
            for log_file in log_files:
                if not log_file.exists():
                    continue
                with log_file.open("r") as f:
                    for line in f:
                        if not line.strip():
                            continue
                        data = json.loads(line)
                        if schedule_id is not None and data.get("schedule_id") != schedule_id:
                            continue
                        data["result"] = deserialize(data["result"])
                        logs.append(WorkflowExecutionLog.from_dict(data))
            return logs

        logs = await asyncio.to_thread(_read)
        if workflow_id is None:
            logs.sort(key=lambda log: log.execution_time)
        return logs
