"""Tests for in-flight request deduplication."""

import asyncio

import pytest

from pnc_dashboard.coordinator import RequestCoordinator


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_producer_call():
    coordinator = RequestCoordinator()
    release = asyncio.Event()
    calls = 0

    async def producer():
        nonlocal calls
        calls += 1
        await release.wait()
        return {"ticker": "TRV"}

    first = asyncio.create_task(coordinator.run_deduplicated("financials_TRV", producer))
    second = asyncio.create_task(coordinator.run_deduplicated("financials_TRV", producer))
    await asyncio.sleep(0)
    assert coordinator.is_pending("financials_TRV")

    release.set()
    a, b = await asyncio.gather(first, second)
    assert calls == 1
    assert a is b
    assert len(coordinator) == 0


@pytest.mark.asyncio
async def test_failure_reaches_every_waiter_and_deregisters():
    coordinator = RequestCoordinator()
    calls = 0

    async def failing():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0)
        raise RuntimeError("upstream down")

    results = await asyncio.gather(
        coordinator.run_deduplicated("k", failing),
        coordinator.run_deduplicated("k", failing),
        return_exceptions=True,
    )
    assert calls == 1
    assert all(isinstance(r, RuntimeError) for r in results)
    assert results[0] is results[1]
    assert not coordinator.is_pending("k")

    # Next call runs the producer again instead of replaying the failure
    async def ok():
        return 42

    assert await coordinator.run_deduplicated("k", ok) == 42


@pytest.mark.asyncio
async def test_distinct_keys_run_independently():
    coordinator = RequestCoordinator()
    seen = []

    async def producer(name):
        seen.append(name)
        await asyncio.sleep(0)
        return name

    a, b = await asyncio.gather(
        coordinator.run_deduplicated("a", lambda: producer("a")),
        coordinator.run_deduplicated("b", lambda: producer("b")),
    )
    assert (a, b) == ("a", "b")
    assert sorted(seen) == ["a", "b"]


@pytest.mark.asyncio
async def test_completed_results_are_not_kept():
    coordinator = RequestCoordinator()
    calls = 0

    async def producer():
        nonlocal calls
        calls += 1
        return calls

    assert await coordinator.run_deduplicated("k", producer) == 1
    assert await coordinator.run_deduplicated("k", producer) == 2


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_call():
    coordinator = RequestCoordinator()
    release = asyncio.Event()

    async def producer():
        await release.wait()
        return "done"

    impatient = asyncio.create_task(coordinator.run_deduplicated("k", producer))
    patient = asyncio.create_task(coordinator.run_deduplicated("k", producer))
    await asyncio.sleep(0)
    impatient.cancel()
    await asyncio.sleep(0)

    release.set()
    assert await patient == "done"


@pytest.mark.asyncio
async def test_drain_waits_for_pending_work():
    coordinator = RequestCoordinator()
    release = asyncio.Event()

    async def producer():
        await release.wait()
        raise ValueError("ignored by drain")

    task = asyncio.create_task(coordinator.run_deduplicated("k", producer))
    await asyncio.sleep(0)
    release.set()
    await coordinator.drain()
    assert len(coordinator) == 0
    with pytest.raises(ValueError):
        await task
