"""
Tests for collapsing concurrent identical requests.
"""

import asyncio
import pytest

from opsconsole.client.dedupe import RequestDeduplicator


@pytest.mark.anyio
async def test_concurrent_callers_share_one_call():
    dedupe = RequestDeduplicator()
    calls = 0
    gate = asyncio.Event()

    async def work():
        nonlocal calls
        calls += 1
        await gate.wait()
        return "done"

    first = asyncio.ensure_future(dedupe.run("sync", work))
    second = asyncio.ensure_future(dedupe.run("sync", work))
    await asyncio.sleep(0)
    assert dedupe.in_flight("sync")
    gate.set()

    assert await asyncio.gather(first, second) == ["done", "done"]
    assert calls == 1
    assert not dedupe.in_flight("sync")

    assert await dedupe.run("sync", work) == "done"
    assert calls == 2


@pytest.mark.anyio
async def test_failure_is_shared_and_released():
    dedupe = RequestDeduplicator()

    async def boom():
        await asyncio.sleep(0)
        raise RuntimeError("offline")

    results = await asyncio.gather(dedupe.run("k", boom), dedupe.run("k", boom), return_exceptions=True)
    assert all(isinstance(r, RuntimeError) for r in results)
    assert not dedupe.in_flight("k")


@pytest.mark.anyio
async def test_cancelled_caller_does_not_cancel_shared_call():
    dedupe = RequestDeduplicator()
    gate = asyncio.Event()

    async def work():
        await gate.wait()
        return 42

    impatient = asyncio.ensure_future(dedupe.run("k", work))
    patient = asyncio.ensure_future(dedupe.run("k", work))
    await asyncio.sleep(0)
    impatient.cancel()
    gate.set()

    assert await patient == 42
    with pytest.raises(asyncio.CancelledError):
        await impatient


@pytest.mark.anyio
async def test_different_keys_run_independently():
    dedupe = RequestDeduplicator()
    seen = []

    async def work(name):
        seen.append(name)
        return name

    assert await asyncio.gather(dedupe.run("a", lambda: work("a")), dedupe.run("b", lambda: work("b"))) == ["a", "b"]
    assert sorted(seen) == ["a", "b"]
