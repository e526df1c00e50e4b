"""
Unit tests for exponential backoff
"""

import httpx
import pytest
from unittest.mock import AsyncMock
from core.exceptions import AuthenticationError, LoadError, NetworkError, RateLimitError, SourceFailure
from etl.retry import backoff_schedule, compute_backoff_delay, is_transient, retry_with_backoff
from schemas.pipeline import RetryPolicy


def test_default_backoff_schedule():
    policy = RetryPolicy(max_retries=3, backoff_multiplier=2, initial_delay=1000, max_delay=30000)

    assert backoff_schedule(policy) == [1000, 2000, 4000]


def test_delay_is_capped():
    policy = RetryPolicy(max_retries=10, backoff_multiplier=3, initial_delay=1000, max_delay=5000)

    assert compute_backoff_delay(policy, 1) == 3000
    assert compute_backoff_delay(policy, 4) == 5000


def test_retry_policy_rejects_max_below_initial():
    with pytest.raises(ValueError):
        RetryPolicy(initial_delay=2000, max_delay=1000)


@pytest.mark.parametrize("error, expected", [
    (NetworkError("boom"), True),
    (httpx.ConnectTimeout("timeout"), True),
    (httpx.ConnectError("refused"), True),
    (AuthenticationError("denied"), False),
    (ValueError("bad"), False),
])
def test_is_transient(error, expected):
    assert is_transient(error) is expected


@pytest.mark.asyncio
async def test_succeeds_after_transient_failures():
    operation = AsyncMock(side_effect=[NetworkError("reset"), NetworkError("reset"), ["ok"]])
    sleep = AsyncMock()

    result = await retry_with_backoff(operation, RetryPolicy(max_retries=3), "fetch", sleep=sleep)

    assert result == ["ok"]
    assert operation.await_count == 3
    assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhaustion_raises_source_failure():
    operation = AsyncMock(side_effect=NetworkError("down"))
    sleep = AsyncMock()

    with pytest.raises(SourceFailure) as exc_info:
        await retry_with_backoff(
            operation, RetryPolicy(max_retries=3), "fetch", context={"source_id": "world-bank"}, sleep=sleep
        )

    assert operation.await_count == 3
    # No wait after the final attempt
    assert sleep.await_count == 2
    assert exc_info.value.context["attempts"] == 3
    assert exc_info.value.context["source_id"] == "world-bank"
    assert isinstance(exc_info.value.original_exception, NetworkError)


@pytest.mark.asyncio
async def test_exhaustion_error_type_is_configurable():
    operation = AsyncMock(side_effect=NetworkError("down"))

    with pytest.raises(LoadError):
        await retry_with_backoff(
            operation, RetryPolicy(max_retries=2), "load", exhausted_error=LoadError, sleep=AsyncMock()
        )


@pytest.mark.asyncio
async def test_non_transient_error_is_not_retried():
    operation = AsyncMock(side_effect=AuthenticationError("denied"))
    sleep = AsyncMock()

    with pytest.raises(AuthenticationError):
        await retry_with_backoff(operation, RetryPolicy(max_retries=3), "fetch", sleep=sleep)

    assert operation.await_count == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_rate_limit_waits_at_least_retry_after():
    operation = AsyncMock(side_effect=[
        RateLimitError("slow down", retry_after=7),
        RateLimitError("slow down"),
        ["ok"],
    ])
    sleep = AsyncMock()

    result = await retry_with_backoff(operation, RetryPolicy(max_retries=3), "fetch", sleep=sleep)

    assert result == ["ok"]
    # Retry-After wins over the 1 s backoff; without it the schedule applies
    assert [call.args[0] for call in sleep.await_args_list] == [7.0, 2.0]
