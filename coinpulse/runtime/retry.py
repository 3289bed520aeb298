"""
Bounded exponential-backoff retry for async operations.

The policy is applied explicitly at call sites:

    snapshots = await retry_async(
        lambda: client.get_top_entities(10),
        settings.initial_load_retry,
        description="initial load",
    )
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from coinpulse.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy.

    Attempt ``k`` (0-based) that fails waits ``initial_delay_s * backoff_multiplier**k``
    before the next attempt. At most ``max_retries + 1`` attempts are made.
    """

    max_retries: int
    initial_delay_s: float = 1.0
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay_s < 0:
            raise ValueError("initial_delay_s must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds after the failed 0-based ``attempt``."""
        return self.initial_delay_s * (self.backoff_multiplier**attempt)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` with bounded exponential backoff.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt
        policy: Retry policy
        description: Label used in log messages
        sleep: Sleep coroutine (injectable for tests)

    Returns:
        The operation's result from the first successful attempt

    Raises:
        Exception: The original error of the final failed attempt
    """
    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if attempt >= policy.max_retries:
                logger.error(
                    "%s failed after %d attempts: %s",
                    description,
                    policy.max_attempts,
                    e,
                )
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed: %s, backing off %.2fs (attempt %d/%d)",
                description,
                e,
                delay,
                attempt + 1,
                policy.max_attempts,
            )
            await sleep(delay)

    # Unreachable: the loop either returns or re-raises
    raise RuntimeError(f"{description}: retry loop exited without result")
