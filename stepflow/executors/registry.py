"""
Registry of step actions.

The registry maps a WorkflowStep.action to the coroutine that carries it
out, enabling:
- Lookup by name
- Metadata access
- Validation of workflows before they are scheduled
"""

import functools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger

from stepflow.core.exceptions import ActionNotFoundError
from stepflow.executors.base import StepExecutor, StepOutput, StepRequest

ActionHandler = Callable[[StepRequest], Awaitable[Any]]


@dataclass
class ActionMetadata:
    """Metadata for a registered action."""

    name: str
    func: ActionHandler
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


class ActionRegistry:
    """Tracks ``@action`` decorated handlers by name."""

    def __init__(self) -> None:
        self._actions: Dict[str, ActionMetadata] = {}

    def register(
        self,
        name: str,
        func: ActionHandler,
        description: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Register an action.

        Raises:
            ValueError: If the name is already taken by a different function
        """
        existing = self._actions.get(name)
        if existing:
            if existing.func is not func:
                raise ValueError(f"Action '{name}' already registered with different function")
            return

        self._actions[name] = ActionMetadata(
            name=name,
            func=func,
            description=description,
            metadata=metadata or {},
        )

    def get(self, name: str) -> Optional[ActionMetadata]:
        return self._actions.get(name)

    def resolve(self, name: str) -> ActionMetadata:
        """
        Get a registered action.

        Raises:
            ActionNotFoundError: If no action is registered under ``name``
        """
        action_meta = self._actions.get(name)
        if action_meta is None:
            raise ActionNotFoundError(name)
        return action_meta

    def list_actions(self) -> Dict[str, ActionMetadata]:
        return self._actions.copy()

    def clear(self) -> None:
        """Clear all registrations (useful for testing)."""
        self._actions.clear()


# Global registry used by the @action decorator
_registry = ActionRegistry()


def get_registry() -> ActionRegistry:
    return _registry


def action(
    name: Optional[str] = None,
    description: str = "",
    metadata: Optional[Dict[str, Any]] = None,
    registry: Optional[ActionRegistry] = None,
) -> Callable:
    """
    Decorator to register an async function as a step action.

    The handler receives the StepRequest and may return a StepOutput, a
    string, or any other value (converted with ``str``).

    Example:
        @action("http_get")
        async def http_get(request: StepRequest) -> str:
            async with httpx.AsyncClient() as client:
                response = await client.get(request.step.parameters["url"])
                return response.text
    """

    def decorator(func: ActionHandler) -> ActionHandler:
        action_name = name or func.__name__

        @functools.wraps(func)
        async def wrapper(request: StepRequest) -> Any:
            return await func(request)

        (registry or _registry).register(
            action_name, wrapper, description=description or (func.__doc__ or ""), metadata=metadata
        )
        wrapper.__action_name__ = action_name
        return wrapper

    return decorator


class ActionStepExecutor(StepExecutor):
    """Execute steps by calling the handler registered for their action."""

    def __init__(self, registry: Optional[ActionRegistry] = None) -> None:
        self.registry = registry or _registry

    async def execute(self, request: StepRequest) -> StepOutput:
        action_meta = self.registry.resolve(request.step.action)

        logger.debug(
            f"Dispatching action: {action_meta.name}",
            step_id=request.step.step_id,
        )
        result = await action_meta.func(request)

        if isinstance(result, StepOutput):
            return result
        return StepOutput(output="" if result is None else str(result))
