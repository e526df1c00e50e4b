"""
Exponential backoff for extraction and load operations.

Attempts are numbered 0..max_retries-1. After a transient failure on attempt
`a` the caller waits min(initial_delay * backoff_multiplier ** a, max_delay)
milliseconds. Non-transient errors propagate on the first occurrence.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Type
import logging

import httpx

from core.exceptions import ETLException, SourceFailure, TransientError
from schemas.pipeline import RetryPolicy

logger = logging.getLogger(__name__)


def compute_backoff_delay(policy: RetryPolicy, attempt: int) -> float:
    """Delay in milliseconds to wait after a failed `attempt`."""
    delay = policy.initial_delay * (policy.backoff_multiplier ** attempt)
    return min(delay, policy.max_delay)


def backoff_schedule(policy: RetryPolicy) -> List[float]:
    return [compute_backoff_delay(policy, attempt) for attempt in range(policy.max_retries)]


def is_transient(error: BaseException) -> bool:
    """Network, timeout and 5xx-equivalent failures are worth another attempt."""
    return isinstance(error, (TransientError, httpx.TimeoutException, httpx.NetworkError))


async def retry_with_backoff(
    operation: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    description: str,
    context: Optional[dict] = None,
    exhausted_error: Type[ETLException] = SourceFailure,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
) -> Any:
    """
    Run `operation` until it succeeds or the policy is exhausted.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Retry policy (max_retries is the total number of attempts)
        description: Human readable name used in logs and errors
        context: Extra context attached to the exhaustion error
        exhausted_error: Raised once every attempt failed transiently
        sleep: Awaitable sleep in seconds, replaceable in tests

    Returns:
        The operation's result

    Raises:
        SourceFailure: Transient failures persisted through every attempt
            (or `exhausted_error` when given)
        Exception: Any non-transient error, unchanged
    """
    last_exception: Optional[BaseException] = None

    for attempt in range(policy.max_retries):
        try:
            logger.debug(f"{description}: attempt {attempt + 1}/{policy.max_retries}")
            return await operation()

        except Exception as e:
            if not is_transient(e):
                raise

            last_exception = e
            if attempt < policy.max_retries - 1:
                delay_ms = compute_backoff_delay(policy, attempt)
                retry_after = getattr(e, "retry_after", None)
                if retry_after:
                    # A rate-limited source's Retry-After (seconds) is a floor
                    delay_ms = max(delay_ms, retry_after * 1000)
                logger.warning(
                    f"{description} failed ({type(e).__name__}: {e}). "
                    f"Retrying in {delay_ms:.0f} ms (attempt {attempt + 1}/{policy.max_retries})"
                )
                await sleep(delay_ms / 1000)

    raise exhausted_error(
        f"{description} failed after {policy.max_retries} attempts",
        context={**(context or {}), "attempts": policy.max_retries},
        original_exception=last_exception
    )
