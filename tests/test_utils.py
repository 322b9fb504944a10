import asyncio

import pytest

from moviegraph_rec.errors import UpstreamUnavailable
from moviegraph_rec.utils import async_retry_with_backoff, gather_all


@pytest.mark.asyncio
async def test_gather_all_preserves_argument_order():
    async def value(v, delay):
        await asyncio.sleep(delay)
        return v

    assert await gather_all(value("a", 0.02), value("b", 0)) == ["a", "b"]
    assert await gather_all() == []


@pytest.mark.asyncio
async def test_gather_all_cancels_siblings_on_failure():
    cancelled = asyncio.Event()

    async def slow():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    async def boom():
        await asyncio.sleep(0)
        raise UpstreamUnavailable("down")

    with pytest.raises(UpstreamUnavailable):
        await gather_all(slow(), boom())

    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_async_retry_with_backoff_retries_listed_exceptions():
    calls = {"count": 0}

    @async_retry_with_backoff(max_retries=3, initial_delay=0.0, exceptions=(ConnectionError,))
    async def flaky():
        calls["count"] += 1
        if calls["count"] < 3:
            raise ConnectionError("reset")
        return "ok"

    assert await flaky() == "ok"
    assert calls["count"] == 3


@pytest.mark.asyncio
async def test_async_retry_with_backoff_does_not_retry_other_errors():
    calls = {"count": 0}

    @async_retry_with_backoff(max_retries=3, initial_delay=0.0, exceptions=(ConnectionError,))
    async def broken():
        calls["count"] += 1
        raise ValueError("bad")

    with pytest.raises(ValueError):
        await broken()
    assert calls["count"] == 1
