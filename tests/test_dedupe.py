"""Unit tests for request deduplication."""

import asyncio

import pytest

from marketlink.core.dedupe import Deduplicator


class SlowCall:
    """Counts invocations; resolves after `delay` seconds."""

    def __init__(self, value="result", error=None, delay=0.05):
        self.value = value
        self.error = error
        self.delay = delay
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


class TestDeduplicator:
    """Test suite for Deduplicator."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("n", [2, 5, 20])
    async def test_concurrent_same_key_invokes_once(self, n):
        dedupe = Deduplicator()
        fn = SlowCall()
        results = await asyncio.gather(*(dedupe.dedupe("quote:AAPL", fn) for _ in range(n)))
        assert fn.calls == 1
        assert results == ["result"] * n

    @pytest.mark.asyncio
    async def test_all_waiters_see_same_error(self):
        dedupe = Deduplicator()
        fn = SlowCall(error=RuntimeError("upstream down"))
        results = await asyncio.gather(
            *(dedupe.dedupe("quote:AAPL", fn) for _ in range(3)),
            return_exceptions=True,
        )
        assert fn.calls == 1
        assert all(isinstance(r, RuntimeError) for r in results)
        assert len({id(r) for r in results}) == 1

    @pytest.mark.asyncio
    async def test_no_key_always_invokes(self):
        dedupe = Deduplicator()
        fn = SlowCall()
        await asyncio.gather(dedupe.dedupe(None, fn), dedupe.dedupe(None, fn))
        assert fn.calls == 2

    @pytest.mark.asyncio
    async def test_different_keys_run_separately(self):
        dedupe = Deduplicator()
        fn = SlowCall()
        await asyncio.gather(dedupe.dedupe("quote:AAPL", fn), dedupe.dedupe("quote:MSFT", fn))
        assert fn.calls == 2

    @pytest.mark.asyncio
    async def test_registration_removed_after_settle(self):
        dedupe = Deduplicator()
        fn = SlowCall(delay=0.01)
        await dedupe.dedupe("quote:AAPL", fn)
        assert not dedupe.in_flight("quote:AAPL")
        await dedupe.dedupe("quote:AAPL", fn)
        assert fn.calls == 2

    @pytest.mark.asyncio
    async def test_registration_removed_after_failure(self):
        dedupe = Deduplicator()
        failing = SlowCall(error=RuntimeError("boom"), delay=0.01)
        with pytest.raises(RuntimeError):
            await dedupe.dedupe("k", failing)
        assert len(dedupe) == 0
        assert await dedupe.dedupe("k", SlowCall(value="fresh", delay=0.01)) == "fresh"

    @pytest.mark.asyncio
    async def test_subscriber_count(self):
        dedupe = Deduplicator()
        fn = SlowCall(delay=0.05)
        first = asyncio.ensure_future(dedupe.dedupe("k", fn))
        second = asyncio.ensure_future(dedupe.dedupe("k", fn))
        await asyncio.sleep(0.01)
        assert dedupe.in_flight("k")
        assert dedupe.subscriber_count("k") == 2
        await asyncio.gather(first, second)
        assert dedupe.subscriber_count("k") == 0

    @pytest.mark.asyncio
    async def test_abandoning_caller_does_not_affect_others(self):
        dedupe = Deduplicator()
        fn = SlowCall(delay=0.05)
        abandoned = asyncio.ensure_future(dedupe.dedupe("k", fn))
        kept = asyncio.ensure_future(dedupe.dedupe("k", fn))
        await asyncio.sleep(0.01)
        abandoned.cancel()
        assert await kept == "result"
        assert fn.calls == 1
        with pytest.raises(asyncio.CancelledError):
            await abandoned
