"""
Scheduled StepFlow Example - Registered Actions

A minimal example of a scheduled workflow whose steps are carried out by
``@action`` handlers instead of an LLM agent, so it runs without any model
provider.

Run it with:
    python examples/scheduled_actions.py
"""

import asyncio
import random
from datetime import UTC, datetime

from stepflow import (
    ActionStepExecutor,
    InMemoryStorageBackend,
    RetryableError,
    RetryingStepExecutor,
    RetryPolicy,
    Schedule,
    SchedulerConfig,
    StepOutput,
    StepRequest,
    Workflow,
    WorkflowScheduler,
    WorkflowStatus,
    WorkflowStep,
    action,
    configure_logging,
)


@action("fetch_inbox")
async def fetch_inbox(request: StepRequest) -> str:
    """Pretend to fetch unread mail."""
    await asyncio.sleep(0.1)

    # Simulate a flaky mail server
    if random.random() < 0.3:
        raise RetryableError("Mail server busy", retry_after="1s")

    folder = request.step.parameters.get("folder", "INBOX")
    return f"3 unread messages in {folder}"


@action("summarize")
async def summarize(request: StepRequest) -> StepOutput:
    """Summarize whatever the previous step produced."""
    previous = [m.content for m in request.history if m.role.value == "ai"]
    return StepOutput(output=f"Summary: {previous[-1] if previous else 'nothing to do'}")


async def main():
    configure_logging(level="INFO")

    storage = InMemoryStorageBackend()
    workflow = await storage.create_workflow(
        Workflow(
            workflow_id="wf_inbox_digest",
            name="Inbox digest",
            status=WorkflowStatus.ACTIVE,
            steps=[
                WorkflowStep("fetch", "Fetch inbox", "fetch_inbox", {"folder": "INBOX"}),
                WorkflowStep("summarize", "Summarize inbox", "summarize"),
            ],
        )
    )
    await storage.create_schedule(
        Schedule(
            workflow_id=workflow.workflow_id,
            schedule="*/15 * * * *",
            name="Every quarter hour",
            next_run=datetime.now(UTC),
        )
    )

    executor = RetryingStepExecutor(
        ActionStepExecutor(),
        RetryPolicy(max_retries=2, fallback_response="Inbox unavailable right now."),
    )
    scheduler = WorkflowScheduler(
        storage, executor, config=SchedulerConfig(poll_interval="5s", storage="memory")
    )

    async with scheduler:
        await asyncio.sleep(1)

    for log in await storage.list_logs(workflow_id=workflow.workflow_id):
        print(f"{log.status.value:<10} step={log.step} result={log.result}")

    schedule = (await storage.list_schedules())[0]
    print(f"\nNext run: {schedule.next_run.isoformat()} (errors: {schedule.error_count})")


if __name__ == "__main__":
    asyncio.run(main())
