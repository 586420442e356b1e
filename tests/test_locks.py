"""
Per-zone write serialization
"""
import asyncio

from zonekeeper.services.lock_service import ZoneLockManager


async def test_same_zone_writers_queue():
    locks = ZoneLockManager()
    order = []

    async def writer(name, delay):
        async with locks.hold("zone:1"):
            order.append(f"{name}-start")
            await asyncio.sleep(delay)
            order.append(f"{name}-end")

    await asyncio.gather(writer("a", 0.01), writer("b", 0))

    assert order == ["a-start", "a-end", "b-start", "b-end"]


async def test_different_zones_do_not_contend():
    locks = ZoneLockManager()

    async with locks.hold("zone:1"):
        assert locks.is_locked("zone:1")
        async with locks.hold("zone:2"):
            assert locks.is_locked("zone:2")

    assert not locks.is_locked("zone:1")
