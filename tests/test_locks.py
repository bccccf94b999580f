"""Tests for keyed asyncio locks."""

import asyncio

import pytest

from whatsdesk.core.locks import KeyedLock


@pytest.mark.asyncio
async def test_same_key_runs_in_acquisition_order():
    locks = KeyedLock()
    order = []

    async def work(name, delay):
        async with locks.hold("chan:5511"):
            order.append(f"{name}-start")
            await asyncio.sleep(delay)
            order.append(f"{name}-end")

    await asyncio.gather(work("a", 0.03), work("b", 0), work("c", 0))

    assert order == ["a-start", "a-end", "b-start", "b-end", "c-start", "c-end"]


@pytest.mark.asyncio
async def test_different_keys_run_in_parallel():
    locks = KeyedLock()
    inside = asyncio.Event()

    async def first():
        async with locks.hold("k1"):
            await asyncio.wait_for(inside.wait(), timeout=1)

    async def second():
        async with locks.hold("k2"):
            inside.set()

    await asyncio.gather(first(), second())


@pytest.mark.asyncio
async def test_released_keys_are_dropped():
    locks = KeyedLock()

    async with locks.hold("k1"):
        assert locks.locked("k1")
        assert len(locks) == 1

    assert not locks.locked("k1")
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lock_released_on_error():
    locks = KeyedLock()

    with pytest.raises(RuntimeError):
        async with locks.hold("k1"):
            raise RuntimeError("boom")

    assert len(locks) == 0
