"""Unit tests for the per-session lock."""

from __future__ import annotations

import asyncio

import pytest

from agent_workflow_engine.session.lock import SessionLock

SID = "3f1c2b7a-8d4e-4f6a-9b2c-1d3e5f7a9b0c"


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_waiters_resume_in_fifo_order() -> None:
    lock = SessionLock()
    order: list[int] = []
    release = await lock.acquire(SID)

    async def worker(n: int) -> None:
        async with lock.hold(SID):
            order.append(n)
            await asyncio.sleep(0)

    tasks = [asyncio.create_task(worker(n)) for n in (1, 2, 3)]
    await _settle()
    assert lock.waiting(SID) == 3
    assert order == []

    release()
    await asyncio.wait_for(asyncio.gather(*tasks), timeout=1)

    assert order == [1, 2, 3]
    assert not lock.is_locked(SID)


@pytest.mark.asyncio
async def test_distinct_ids_do_not_block_each_other() -> None:
    lock = SessionLock()
    await lock.acquire(SID)

    other = await asyncio.wait_for(lock.acquire("other"), timeout=1)
    other()

    assert lock.is_locked(SID)


@pytest.mark.asyncio
async def test_release_handle_is_idempotent() -> None:
    lock = SessionLock()
    first = await lock.acquire(SID)
    second_task = asyncio.create_task(lock.acquire(SID))
    third_task = asyncio.create_task(lock.acquire(SID))
    await _settle()

    first()
    first()
    await _settle()

    assert second_task.done()
    assert not third_task.done()

    (await second_task)()
    release_third = await asyncio.wait_for(third_task, timeout=1)
    release_third()
    assert not lock.is_locked(SID)


@pytest.mark.asyncio
async def test_hold_releases_on_error() -> None:
    lock = SessionLock()

    with pytest.raises(RuntimeError):
        async with lock.hold(SID):
            raise RuntimeError("boom")

    assert not lock.is_locked(SID)
    release = await asyncio.wait_for(lock.acquire(SID), timeout=1)
    release()


@pytest.mark.asyncio
async def test_clear_wakes_waiters_and_disarms_old_handles() -> None:
    lock = SessionLock()
    stale_release = await lock.acquire(SID)
    waiter = asyncio.create_task(lock.acquire(SID))
    await _settle()

    lock.clear()
    new_release = await asyncio.wait_for(waiter, timeout=1)

    stale_release()
    assert lock.is_locked(SID)
    new_release()
    assert not lock.is_locked(SID)


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_the_queue() -> None:
    lock = SessionLock()
    release = await lock.acquire(SID)
    waiter = asyncio.create_task(lock.acquire(SID))
    await _settle()

    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    assert lock.waiting(SID) == 0
    release()
    assert not lock.is_locked(SID)


@pytest.mark.asyncio
async def test_waiter_cancelled_after_clear_keeps_newer_holder() -> None:
    lock = SessionLock()
    await lock.acquire(SID)
    waiter = asyncio.create_task(lock.acquire(SID))
    await _settle()

    lock.clear()
    fresh_release = await lock.acquire(SID)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    assert lock.is_locked(SID)
    fresh_release()
    assert not lock.is_locked(SID)
