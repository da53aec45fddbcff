"""
Execution context for a workflow run.

The context carries everything a run needs besides the workflow itself:
- Tools available to the step executor
- System instructions for the executor
- Timeout applied to every step executor call
- Cancellation token
- Metadata identifying who started the run
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from stepflow.core.state import DEFAULT_MAX_HISTORY


@dataclass
class ExecutionContext:
    """
    Settings and collaborators for one run of a workflow.

    ``cancel_event`` is the run's cancellation token. Setting it makes the
    engine abandon the step in flight and fail the run.
    """

    tools: List[Callable[..., Any]] = field(default_factory=list)
    system_prompt: str = "You are a helpful AI assistant executing one workflow step."
    timeout: Optional[float] = None
    max_history: int = DEFAULT_MAX_HISTORY
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    schedule_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()
