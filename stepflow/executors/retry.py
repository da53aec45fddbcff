"""
Bounded retry with backoff for step executors.

RetryingStepExecutor wraps another executor and retries failed attempts:
- FatalError is never retried
- RetryableError.retry_after overrides the computed delay
- Once retries are exhausted, the configured fallback response is returned
  instead of raising
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Union

from loguru import logger

from stepflow.core.exceptions import FatalError, RetryableError
from stepflow.executors.base import StepExecutor, StepOutput, StepRequest
from stepflow.utils.duration import parse_duration


@dataclass
class RetryPolicy:
    """
    Retry settings for a step executor.

    Args:
        max_retries: Retries after the first attempt (0 disables retrying)
        retry_delay: Delay strategy:
            - "exponential": base * 2**(attempt-1) seconds (1s, 2s, 4s, ...)
            - int/float/str duration: Fixed delay
            - List: Delay per retry, the last entry repeats
        base_delay: First delay of the exponential strategy, in seconds
        max_delay: Upper bound for any computed delay
        jitter: Random extra delay in [0, jitter] seconds
        fallback_response: Returned as output once retries are exhausted
    """

    max_retries: int = 2
    retry_delay: Union[str, int, float, List[Union[int, float]]] = "exponential"
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 0.5
    fallback_response: Optional[str] = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")

    def compute_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        if self.retry_delay == "exponential":
            delay = self.base_delay * (2 ** (attempt - 1))
        elif isinstance(self.retry_delay, list):
            if not self.retry_delay:
                delay = 0.0
            else:
                delay = float(self.retry_delay[min(attempt, len(self.retry_delay)) - 1])
        else:
            delay = parse_duration(self.retry_delay)

        delay = min(delay, self.max_delay)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay


class RetryingStepExecutor(StepExecutor):
    """Retry a wrapped executor according to a RetryPolicy."""

    def __init__(
        self,
        inner: StepExecutor,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.inner = inner
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def execute(self, request: StepRequest) -> StepOutput:
        attempt = 0
        while True:
            try:
                return await self.inner.execute(request)

            except FatalError as e:
                logger.error(
                    f"Step failed (fatal): {request.step.name}",
                    step_id=request.step.step_id,
                    error=str(e),
                )
                raise

            except Exception as e:
                attempt += 1
                if attempt > self.policy.max_retries:
                    return self._exhausted(request, e)

                delay = None
                if isinstance(e, RetryableError):
                    delay = e.get_retry_delay_seconds()
                if delay is None:
                    delay = self.policy.compute_delay(attempt)

                logger.warning(
                    f"Step failed, retrying: {request.step.name}",
                    step_id=request.step.step_id,
                    attempt=attempt,
                    max_retries=self.policy.max_retries,
                    retry_in=round(delay, 2),
                    error=str(e),
                )
                await self._sleep(delay)

    def _exhausted(self, request: StepRequest, error: Exception) -> StepOutput:
        if self.policy.fallback_response is None:
            logger.error(
                f"Step failed after {self.policy.max_retries} retries: {request.step.name}",
                step_id=request.step.step_id,
                error=str(error),
            )
            raise error

        logger.warning(
            f"Step retries exhausted, returning fallback response: {request.step.name}",
            step_id=request.step.step_id,
            error=str(error),
        )
        return StepOutput(output=self.policy.fallback_response, is_fallback=True)

    async def aclose(self) -> None:
        await self.inner.aclose()
