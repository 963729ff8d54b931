import asyncio

import pytest

from locks import KeyLockManager


def test_same_key_runs_in_arrival_order():
    async def scenario():
        locks = KeyLockManager()
        order = []

        async def job(i, delay):
            order.append(("start", i))
            await asyncio.sleep(delay)
            order.append(("end", i))

        await asyncio.gather(*(locks.run("k", lambda i=i: job(i, 0.01 * (3 - i))) for i in range(3)))
        return order, len(locks)

    order, live = asyncio.run(scenario())
    assert order == [("start", 0), ("end", 0), ("start", 1), ("end", 1), ("start", 2), ("end", 2)]
    assert live == 0


def test_no_lost_update_under_interleaving():
    async def scenario():
        locks = KeyLockManager()
        state = {"n": 0}

        async def increment():
            current = state["n"]
            await asyncio.sleep(0)
            state["n"] = current + 1

        await asyncio.gather(*(locks.run("counter", increment) for _ in range(50)))
        return state["n"]

    assert asyncio.run(scenario()) == 50


def test_different_keys_do_not_block_each_other():
    async def scenario():
        locks = KeyLockManager()
        gate = asyncio.Event()
        order = []

        async def slow():
            await gate.wait()
            order.append("a")

        t = asyncio.create_task(locks.run("a", slow))
        await asyncio.sleep(0)
        await locks.run("b", lambda: order.append("b"))
        gate.set()
        await t
        return order

    assert asyncio.run(scenario()) == ["b", "a"]


def test_error_propagates_and_releases_next():
    async def scenario():
        locks = KeyLockManager()

        def boom():
            raise RuntimeError("disk full")

        first = asyncio.create_task(locks.run("k", boom))
        second = asyncio.create_task(locks.run("k", lambda: "after"))
        results = await asyncio.gather(first, second, return_exceptions=True)
        return results, len(locks)

    (err, value), live = asyncio.run(scenario())
    assert isinstance(err, RuntimeError)
    assert value == "after"
    assert live == 0


def test_keys_released_after_sequential_use():
    async def scenario():
        locks = KeyLockManager()
        sizes = []
        for i in range(100):
            await locks.run("same", lambda: i)
            sizes.append(len(locks))
        return sizes

    assert set(asyncio.run(scenario())) == {0}


def test_cancelled_waiter_keeps_queue_order():
    async def scenario():
        locks = KeyLockManager()
        gate = asyncio.Event()
        order = []

        async def first():
            await gate.wait()
            order.append(1)

        t1 = asyncio.create_task(locks.run("k", first))
        await asyncio.sleep(0)
        t2 = asyncio.create_task(locks.run("k", lambda: order.append(2)))
        await asyncio.sleep(0)
        t3 = asyncio.create_task(locks.run("k", lambda: order.append(3)))
        await asyncio.sleep(0)

        t2.cancel()
        await asyncio.sleep(0)
        assert order == []

        gate.set()
        await t1
        await t3
        with pytest.raises(asyncio.CancelledError):
            await t2
        return order, len(locks)

    order, live = asyncio.run(scenario())
    assert order == [1, 3]
    assert live == 0
