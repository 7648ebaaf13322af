"""
Tests for the backoff policy.
"""

import pytest

from chainpricer.exceptions import MalformedProviderResponse, NoData, ProviderUnavailable, RateLimited
from chainpricer.retry import RetryPolicy


def failing(errors, result="ok"):
    """Coroutine factory raising each error in turn, then returning result."""
    state = {"calls": 0}

    async def fn():
        state["calls"] += 1
        if errors:
            raise errors.pop(0)
        return result

    return fn, state


class TestDelays:

    def test_exponential(self):
        policy = RetryPolicy()
        assert [policy.delay_for(i) for i in range(3)] == [1.0, 2.0, 4.0]

    def test_rate_limited_doubles(self):
        policy = RetryPolicy()
        assert [policy.delay_for(i, RateLimited("x")) for i in range(3)] == [2.0, 4.0, 8.0]

    def test_retryable(self):
        policy = RetryPolicy()
        assert policy.is_retryable(ProviderUnavailable("x"))
        assert policy.is_retryable(RateLimited("x"))
        assert not policy.is_retryable(NoData("x"))
        assert not policy.is_retryable(MalformedProviderResponse("x"))


class TestRun:

    @pytest.mark.asyncio
    async def test_success_first_try(self, recording_sleep):
        fn, state = failing([])
        assert await RetryPolicy().run(fn, sleep=recording_sleep) == "ok"
        assert state["calls"] == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_errors(self, recording_sleep):
        fn, state = failing([ProviderUnavailable("down"), ProviderUnavailable("down")])
        assert await RetryPolicy().run(fn, sleep=recording_sleep) == "ok"
        assert state["calls"] == 3
        assert recording_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_reraises_last_error(self, recording_sleep):
        errors = [ProviderUnavailable(f"attempt {i}") for i in range(4)]
        last = errors[-1]
        fn, state = failing(list(errors))

        with pytest.raises(ProviderUnavailable) as exc:
            await RetryPolicy().run(fn, sleep=recording_sleep)

        assert exc.value is last
        assert state["calls"] == 4
        assert recording_sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_rate_limited_backoff(self, recording_sleep):
        fn, _ = failing([RateLimited("slow down") for _ in range(4)])
        with pytest.raises(RateLimited):
            await RetryPolicy().run(fn, sleep=recording_sleep)
        assert recording_sleep.delays == [2.0, 4.0, 8.0]

    @pytest.mark.asyncio
    async def test_mixed_errors(self, recording_sleep):
        fn, _ = failing([RateLimited("x"), ProviderUnavailable("y")])
        assert await RetryPolicy().run(fn, sleep=recording_sleep) == "ok"
        assert recording_sleep.delays == [2.0, 2.0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [NoData("unknown symbol"), MalformedProviderResponse("bad")])
    async def test_non_retryable_immediate(self, recording_sleep, error):
        fn, state = failing([error])
        with pytest.raises(type(error)):
            await RetryPolicy().run(fn, sleep=recording_sleep)
        assert state["calls"] == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_custom_policy(self, recording_sleep):
        policy = RetryPolicy(max_retries=1, base_delay=0.5)
        fn, state = failing([ProviderUnavailable("a"), ProviderUnavailable("b")])
        with pytest.raises(ProviderUnavailable):
            await policy.run(fn, sleep=recording_sleep)
        assert state["calls"] == 2
        assert recording_sleep.delays == [0.5]
