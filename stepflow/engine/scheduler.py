"""
Polling scheduler for workflow runs.

The scheduler wakes up every ``poll_interval`` seconds, asks the storage
backend for due schedules and runs each one through the run engine:
- Claims the schedule's lease so no other run of it can start meanwhile
- Records ``last_run`` and advances ``next_run`` from the schedule expression
- Resolves the workflow and drives the engine
- Writes an execution log entry per step plus one run summary entry
- Resets or increments the schedule's error counter in one atomic write

Passes are chained: the next one is planned only after the previous pass
finished, so passes never overlap. A failing schedule never aborts a pass,
and nothing raises out of a pass.
"""

import asyncio
from contextlib import aclosing
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from loguru import logger

from stepflow.config import SchedulerConfig, load_config
from stepflow.core.context import ExecutionContext
from stepflow.core.exceptions import WorkflowNotFoundError
from stepflow.engine.events import RunCompleted, RunFailed, StepCompleted
from stepflow.engine.runner import WorkflowRunEngine
from stepflow.executors.base import StepExecutor
from stepflow.observability.logging import bind_schedule_context
from stepflow.storage.base import StorageBackend
from stepflow.storage.schemas import LogStatus, Schedule, WorkflowExecutionLog
from stepflow.utils.cron import compute_next_run, ensure_aware


class OutcomeStatus(Enum):
    """What happened to a due schedule during a pass."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ScheduleOutcome:
    """Result of processing one due schedule."""

    schedule_id: str
    workflow_id: str
    status: OutcomeStatus
    error: Optional[str] = None
    steps_completed: int = 0


class WorkflowScheduler:
    """
    Run due schedules on a fixed polling interval.

    The host application owns the scheduler: it builds one, starts it when
    it boots and stops it on shutdown.

    Args:
        storage: Backend holding schedules, workflows and execution logs
        executor: Step executor used by the run engine
        config: Scheduler settings (defaults to ``load_config()``)
        tools: Tools made available to every run

    Example:
        scheduler = WorkflowScheduler(
            storage=FileStorageBackend(),
            executor=RetryingStepExecutor(AgentStepExecutor("openai:gpt-4o")),
        )

        async with scheduler:
            await shutdown_requested.wait()
    """

    def __init__(
        self,
        storage: StorageBackend,
        executor: StepExecutor,
        config: Optional[SchedulerConfig] = None,
        tools: Optional[List[Callable[..., Any]]] = None,
    ) -> None:
        self.storage = storage
        self.config = config or load_config()
        self.engine = WorkflowRunEngine(executor, step_timeout=self.config.step_timeout)
        self.tools = list(tools or [])

        self._running = False
        self._wakeup: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._in_flight: Set[str] = set()
        self._contexts: Dict[str, ExecutionContext] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> Set[str]:
        """IDs of the schedules this scheduler is running right now."""
        return set(self._in_flight)

    # Lifecycle

    async def start(self) -> None:
        """
        Start polling.

        Runs one pass right away, then keeps polling in a background task.
        Calling start() on a running scheduler does nothing. A start() after
        stop() first waits for the previous loop, including a first pass still
        in flight, so two loops never run at once.
        """
        if self._running:
            logger.debug("Scheduler already running")
            return

        await self.wait_closed()

        # Another start() may have won while we waited
        if self._running:
            return

        self._running = True
        self._wakeup = asyncio.Event()
        first_pass_done = asyncio.Event()
        logger.info(
            "Scheduler started",
            owner_id=self.config.owner_id,
            poll_interval=self.config.poll_interval,
            max_concurrency=self.config.max_concurrency,
        )

        self._task = asyncio.create_task(self._poll_loop(self._wakeup, first_pass_done))
        await first_pass_done.wait()

    def stop(self, cancel_in_flight: bool = False) -> None:
        """
        Stop polling.

        No pass starts after this call. A pass already in flight finishes
        normally unless ``cancel_in_flight`` is set, in which case every run
        in flight is cancelled through its context and fails.
        """
        if cancel_in_flight:
            for schedule_id, context in list(self._contexts.items()):
                logger.warning("Cancelling in-flight run", schedule_id=schedule_id)
                context.cancel()

        if not self._running:
            return

        self._running = False
        if self._wakeup is not None:
            self._wakeup.set()
        logger.info("Scheduler stopped", owner_id=self.config.owner_id)

    async def wait_closed(self) -> None:
        """Wait until the polling loop, including any pass in flight, has ended."""
        task = self._task
        if task is None:
            return
        await task
        if self._task is task:
            self._task = None

    async def __aenter__(self) -> "WorkflowScheduler":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.stop()
        await self.wait_closed()

    async def _poll_loop(self, wakeup: asyncio.Event, first_pass_done: asyncio.Event) -> None:
        try:
            await self.run_pass()
        finally:
            first_pass_done.set()

        while self._running:
            try:
                await asyncio.wait_for(wakeup.wait(), timeout=self.config.poll_interval)
            except asyncio.TimeoutError:
                pass

            if not self._running:
                break

            await self.run_pass()

    # Passes

    async def run_pass(self, now: Optional[datetime] = None) -> List[ScheduleOutcome]:
        """
        Run every schedule due at ``now`` (defaults to the current time).

        At most ``config.max_concurrency`` schedules run at once. Outcomes
        are returned in due order.

        Without ``now``, each schedule claims its lease and records its run
        at the moment it actually starts, so a schedule queued behind long
        runs is not stamped with the time the pass began. Passing ``now``
        pins the clock for the whole pass.
        """
        pinned = now is not None
        now = ensure_aware(now or datetime.now(UTC))

        try:
            due = await self.storage.list_due_schedules(now)
        except Exception as e:
            logger.error("Failed to list due schedules", error=str(e))
            return []

        if not due:
            logger.debug("No due schedules", now=now.isoformat())
            return []

        logger.info(f"Found {len(due)} due schedule(s)", now=now.isoformat())

        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def _bounded(schedule: Schedule) -> ScheduleOutcome:
            async with semaphore:
                return await self.process_schedule(schedule, now if pinned else None)

        outcomes = await asyncio.gather(*(_bounded(schedule) for schedule in due))

        failed = sum(1 for outcome in outcomes if outcome.status == OutcomeStatus.FAILED)
        logger.info(
            "Pass finished",
            schedules=len(outcomes),
            failed=failed,
        )
        return list(outcomes)

    async def process_schedule(
        self, schedule: Schedule, now: Optional[datetime] = None
    ) -> ScheduleOutcome:
        """
        Claim and run one due schedule, starting at ``now`` (defaults to the
        current time).

        Every error is recorded against the schedule and turned into a
        failed outcome.
        """
        log = bind_schedule_context(schedule.schedule_id, schedule.workflow_id)

        if schedule.schedule_id in self._in_flight:
            log.debug("Schedule already running in this process, skipping")
            return self._skipped(schedule, "already running")

        now = ensure_aware(now or datetime.now(UTC))

        try:
            claimed = await self.storage.claim_schedule(
                schedule.schedule_id, self.config.owner_id, self.config.lease_ttl, now
            )
        except Exception as e:
            log.error("Failed to claim schedule", error=str(e))
            return self._skipped(schedule, str(e))

        if not claimed:
            log.info("Schedule is leased by another run, skipping")
            return self._skipped(schedule, "leased")

        self._in_flight.add(schedule.schedule_id)
        context = ExecutionContext(
            tools=list(self.tools),
            timeout=schedule.config.timeout,
            max_history=self.config.max_history,
            schedule_id=schedule.schedule_id,
            metadata={"schedule_name": schedule.name, "owner_id": self.config.owner_id},
        )
        self._contexts[schedule.schedule_id] = context

        try:
            return await self._run_schedule(schedule, now, context)
        except Exception as e:
            message = str(e) or type(e).__name__
            log.error("Scheduled run failed", error=message, error_type=type(e).__name__)
            await self._record_failure(schedule, message)
            return ScheduleOutcome(
                schedule_id=schedule.schedule_id,
                workflow_id=schedule.workflow_id,
                status=OutcomeStatus.FAILED,
                error=message,
            )
        finally:
            self._in_flight.discard(schedule.schedule_id)
            self._contexts.pop(schedule.schedule_id, None)
            try:
                await self.storage.release_schedule(schedule.schedule_id, self.config.owner_id)
            except Exception as e:
                log.warning("Failed to release schedule lease", error=str(e))

    async def _run_schedule(
        self, schedule: Schedule, now: datetime, context: ExecutionContext
    ) -> ScheduleOutcome:
        log = bind_schedule_context(schedule.schedule_id, schedule.workflow_id)

        await self.storage.mark_run_started(
            schedule.schedule_id,
            last_run=now,
            next_run=compute_next_run(schedule.schedule, now),
        )

        workflow = await self.storage.get_workflow(schedule.workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(schedule.workflow_id)

        log.info(f"Running scheduled workflow: {workflow.name}")

        outcome = ScheduleOutcome(
            schedule_id=schedule.schedule_id,
            workflow_id=schedule.workflow_id,
            status=OutcomeStatus.COMPLETED,
        )

        async with aclosing(self.engine.run(workflow, context=context)) as events:
            async for event in events:
                if isinstance(event, StepCompleted):
                    await self.storage.append_log(
                        WorkflowExecutionLog(
                            workflow_id=workflow.workflow_id,
                            schedule_id=schedule.schedule_id,
                            step=event.step.step_id,
                            status=LogStatus.COMPLETED,
                            result=event.output.to_dict(),
                        )
                    )
                    outcome.steps_completed += 1

                elif isinstance(event, RunFailed):
                    await self.storage.append_log(
                        WorkflowExecutionLog(
                            workflow_id=workflow.workflow_id,
                            schedule_id=schedule.schedule_id,
                            step=event.step.step_id if event.step else None,
                            status=LogStatus.ERROR,
                            error=event.error.message,
                        )
                    )
                    outcome.status = OutcomeStatus.FAILED
                    outcome.error = event.error.message

                    # Logged already; a counter write failure must not log the run twice
                    updated = await self._record_outcome(
                        schedule, success=False, error=event.error.message
                    )
                    log.warning(
                        "Scheduled run failed",
                        step_index=event.error.step,
                        error=event.error.message,
                        error_count=updated.error_count if updated else None,
                    )
                    if updated is not None:
                        await self._apply_exhausted_policy(updated)

                elif isinstance(event, RunCompleted):
                    await self.storage.append_log(
                        WorkflowExecutionLog(
                            workflow_id=workflow.workflow_id,
                            schedule_id=schedule.schedule_id,
                            status=LogStatus.COMPLETED,
                            result=event.state.to_dict(),
                        )
                    )
                    await self._record_outcome(schedule, success=True)
                    log.info(
                        "Scheduled run completed",
                        steps=event.state.current_step,
                    )

        return outcome

    async def _record_outcome(
        self, schedule: Schedule, success: bool, error: Optional[str] = None
    ) -> Optional[Schedule]:
        """
        Reset or increment the schedule's error counter.

        Returns the updated schedule, or None when the write failed. The
        failure is logged and not raised.
        """
        try:
            return await self.storage.reset_or_increment(
                schedule.schedule_id, success=success, error=error
            )
        except Exception as e:
            bind_schedule_context(schedule.schedule_id, schedule.workflow_id).error(
                "Failed to update schedule error count",
                success=success,
                error=str(e),
            )
            return None

    async def _record_failure(self, schedule: Schedule, message: str) -> None:
        """Log a run that failed outside the engine and count it against the schedule."""
        log = bind_schedule_context(schedule.schedule_id, schedule.workflow_id)

        try:
            await self.storage.append_log(
                WorkflowExecutionLog(
                    workflow_id=schedule.workflow_id,
                    schedule_id=schedule.schedule_id,
                    status=LogStatus.ERROR,
                    error=message,
                )
            )
        except Exception as e:
            log.error("Failed to append execution log", error=str(e))

        updated = await self._record_outcome(schedule, success=False, error=message)
        if updated is not None:
            await self._apply_exhausted_policy(updated)

    async def _apply_exhausted_policy(self, schedule: Schedule) -> None:
        status = self.config.exhausted_retries_status
        if status is None or not schedule.has_exceeded_max_retries():
            return

        log = bind_schedule_context(schedule.schedule_id, schedule.workflow_id)
        try:
            await self.storage.update_schedule_status(schedule.schedule_id, status)
        except Exception as e:
            log.error("Failed to update schedule status", error=str(e))
            return

        log.warning(
            f"Schedule exceeded max retries, status set to {status.value}",
            error_count=schedule.error_count,
            max_retries=schedule.config.max_retries,
        )

    def _skipped(self, schedule: Schedule, reason: str) -> ScheduleOutcome:
        return ScheduleOutcome(
            schedule_id=schedule.schedule_id,
            workflow_id=schedule.workflow_id,
            status=OutcomeStatus.SKIPPED,
            error=reason,
        )
