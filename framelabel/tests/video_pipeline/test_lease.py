"""
Test suite for lease bookkeeping and the in-memory compare-and-swap store.
"""

import asyncio

from framelabel.providers.custom_providers import InMemoryLeaseStore
from framelabel.video_pipeline.core.lease import (
    initial_lease_seconds,
    refresh_lease,
    throughput,
    time_to_live,
)

T = 1_700_000_000


def test_conditional_put_never_shortens_lease():
    store = InMemoryLeaseStore()

    async def scenario():
        assert await store.conditional_put("model", T + 10)
        assert not await store.conditional_put("model", T + 5)
        assert await store.get("model") == T + 10
        assert await store.conditional_put("model", T + 200)
        assert await store.conditional_put("model", T + 200)
        return await store.get("model")

    assert asyncio.run(scenario()) == T + 200


def test_concurrent_writers_keep_the_maximum():
    store = InMemoryLeaseStore()

    async def scenario():
        await asyncio.gather(*[store.conditional_put("model", T + n) for n in (50, 300, 10, 120)])
        return await store.get("model")

    assert asyncio.run(scenario()) == T + 300


def test_time_to_live_clamps():
    assert time_to_live(10, now=T) == T + 60
    assert time_to_live(3600, now=T) == T + 3600
    assert time_to_live(10 ** 7, now=T) == T + 2 * 24 * 60 * 60
    assert time_to_live(now=T) == T + 24 * 60 * 60


def test_throughput_defaults_to_one_unit():
    assert throughput(None) == 5
    assert throughput(0) == 5
    assert throughput(3) == 15


def test_initial_lease_seconds():
    # short videos still reserve one minute of frames, never below 2 minutes
    assert initial_lease_seconds(10, 1) == 120
    assert initial_lease_seconds(3000, 1) == 600
    assert initial_lease_seconds(3000, 4) == 150
    assert initial_lease_seconds(0, None) == 120


def test_refresh_lease_only_near_expiry():
    store = InMemoryLeaseStore()

    async def scenario():
        kept = await refresh_lease(store, "model", T + 31, T)
        refreshed = await refresh_lease(store, "model", T + 29, T)
        return kept, refreshed, await store.get("model")

    kept, refreshed, stored = asyncio.run(scenario())
    assert kept == T + 31
    assert refreshed == T + 120
    assert stored == T + 120
