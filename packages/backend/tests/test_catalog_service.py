"""CatalogService tests — the cache-aside read and invalidating write protocol.

Learn: The service is built directly around doubles so each test can
count store scans, cache calls and publishes. The record store is the
real SQLite-backed ProductStore wrapped by RecordingStore.
"""

import asyncio
import gc
import json

import pytest

from fakes import (
    FailingBus,
    FailingCache,
    FailingStore,
    FakeClock,
    HangingCache,
    RecordingBus,
    RecordingCache,
    RecordingStore,
)
from relaycache.errors import BusError, StorageError, ValidationError
from relaycache.services.catalog_service import CatalogService

KEY = "all_products"
TOPIC = "product_updates"


def make_service(store, cache=None, bus=None, io_timeout=1.0, **kwargs) -> CatalogService:
    return CatalogService(
        store,
        cache if cache is not None else RecordingCache(),
        bus if bus is not None else RecordingBus(),
        cache_key=KEY,
        cache_ttl=3600,
        updates_topic=TOPIC,
        io_timeout=io_timeout,
        **kwargs,
    )


# ═══════════════════════════════════════════════════════════
# Read path
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_miss_scans_store_and_populates_cache(store):
    recording = RecordingStore(store)
    cache = RecordingCache()
    svc = make_service(recording, cache)
    await store.insert("Laptop Pro", "14-inch")

    products = await svc.list_products()

    assert products == [{"id": 1, "name": "Laptop Pro", "description": "14-inch"}]
    assert recording.scans == 1
    assert len(cache.sets) == 1
    key, value, ttl = cache.sets[0]
    assert key == KEY and ttl == 3600
    assert json.loads(value) == products


@pytest.mark.asyncio
async def test_reads_without_writes_are_identical(store):
    """After one miss, every read returns the same snapshot without a scan."""
    recording = RecordingStore(store)
    svc = make_service(recording)
    await store.insert("Keyboard")
    await store.insert("Monitor")

    first = await svc.list_products()
    rest = [await svc.list_products() for _ in range(5)]

    assert all(r == first for r in rest)
    assert recording.scans == 1


@pytest.mark.asyncio
async def test_read_after_write_includes_new_product(store):
    svc = make_service(RecordingStore(store))
    await svc.create_product("Keyboard")
    assert [p["name"] for p in await svc.list_products()] == ["Keyboard"]

    new_id = await svc.create_product("Monitor", "27-inch")

    products = await svc.list_products()
    assert {"id": new_id, "name": "Monitor", "description": "27-inch"} in products


@pytest.mark.asyncio
async def test_snapshot_expires_after_ttl(store):
    """With no writes at all, the store is scanned again once the ttl lapses."""
    clock = FakeClock()
    recording = RecordingStore(store)
    svc = make_service(recording, RecordingCache(clock=clock))

    await svc.list_products()
    clock.advance(3599)
    await svc.list_products()
    assert recording.scans == 1

    clock.advance(2)
    await svc.list_products()
    assert recording.scans == 2


@pytest.mark.asyncio
async def test_store_failure_propagates_and_leaves_cache_untouched():
    cache = RecordingCache()
    svc = make_service(FailingStore(), cache)

    with pytest.raises(StorageError):
        await svc.list_products()
    assert cache.sets == []


@pytest.mark.asyncio
async def test_cache_failure_still_serves_fresh_result(store):
    """Cache down on both get and set: reads fall through to the store."""
    recording = RecordingStore(store)
    cache = FailingCache()
    svc = make_service(recording, cache)
    await store.insert("Cable")

    assert [p["name"] for p in await svc.list_products()] == ["Cable"]
    assert [p["name"] for p in await svc.list_products()] == ["Cable"]
    assert recording.scans == 2
    assert len(cache.sets) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "snapshot",
    ["{not json", "{}", "1", "\"x\"", "[1, 2]", "[{\"id\": \"a\"}]", "null"],
)
async def test_corrupt_snapshot_treated_as_miss(store, snapshot):
    """Undecodable or wrong-shape snapshots fall through to the store."""
    cache = RecordingCache()
    await cache.set(KEY, snapshot, ttl=3600)
    recording = RecordingStore(store)
    svc = make_service(recording, cache)

    assert await svc.list_products() == []
    assert recording.scans == 1


@pytest.mark.asyncio
async def test_hung_cache_bounded_by_timeout(store):
    """A cache that never answers is treated as unavailable after io_timeout."""
    recording = RecordingStore(store)
    svc = make_service(recording, HangingCache(), io_timeout=0.05)
    await store.insert("Dock")

    products = await asyncio.wait_for(svc.list_products(), timeout=2.0)
    assert [p["name"] for p in products] == ["Dock"]


@pytest.mark.asyncio
async def test_concurrent_misses_each_scan_by_default(store):
    recording = RecordingStore(store, scan_delay=0.05)
    svc = make_service(recording)

    results = await asyncio.gather(*(svc.list_products() for _ in range(3)))

    assert recording.scans == 3
    assert results[0] == results[1] == results[2]


@pytest.mark.asyncio
async def test_single_flight_collapses_concurrent_misses(store):
    recording = RecordingStore(store, scan_delay=0.05)
    cache = RecordingCache()
    svc = make_service(recording, cache, single_flight=True)
    await store.insert("Headset")

    results = await asyncio.gather(*(svc.list_products() for _ in range(5)))

    assert recording.scans == 1
    assert len(cache.sets) == 1
    assert all(r == results[0] for r in results)


@pytest.mark.asyncio
async def test_single_flight_shares_failures_then_retries(store):
    svc = make_service(FailingStore(), single_flight=True)
    outcomes = await asyncio.gather(
        svc.list_products(), svc.list_products(), return_exceptions=True
    )
    assert all(isinstance(o, StorageError) for o in outcomes)

    # The failed load is not remembered
    svc.store = RecordingStore(store)
    assert await svc.list_products() == []


# ═══════════════════════════════════════════════════════════
# Write path
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_write_persists_invalidates_and_publishes(store):
    cache = RecordingCache()
    bus = RecordingBus()
    svc = make_service(RecordingStore(store), cache, bus)

    product_id = await svc.create_product("Laptop Pro", "14-inch")

    assert product_id == 1
    assert cache.deletes == [KEY]
    assert len(bus.published) == 1
    topic, payload = bus.published[0]
    assert topic == TOPIC
    assert json.loads(payload) == {
        "kind": "NEW_ENTITY",
        "entity": {"id": 1, "name": "Laptop Pro", "description": "14-inch"},
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("name", [None, "", "   "])
async def test_missing_name_has_no_side_effects(store, name):
    recording = RecordingStore(store)
    cache = RecordingCache()
    bus = RecordingBus()
    svc = make_service(recording, cache, bus)

    with pytest.raises(ValidationError):
        await svc.create_product(name, "orphan description")

    assert recording.inserts == []
    assert cache.deletes == []
    assert bus.published == []
    assert await store.scan_all() == []


@pytest.mark.asyncio
async def test_store_failure_skips_invalidate_and_publish():
    cache = RecordingCache()
    bus = RecordingBus()
    svc = make_service(FailingStore(), cache, bus)

    with pytest.raises(StorageError):
        await svc.create_product("Laptop Pro")

    assert cache.deletes == []
    assert bus.published == []


@pytest.mark.asyncio
async def test_invalidate_failure_still_commits_and_publishes(store):
    bus = RecordingBus()
    svc = make_service(RecordingStore(store), FailingCache(), bus)

    product_id = await svc.create_product("Tablet")

    assert product_id == 1
    assert len(bus.published) == 1
    assert [p["id"] for p in await store.scan_all()] == [1]


@pytest.mark.asyncio
async def test_publish_failure_still_commits(store):
    cache = RecordingCache()
    svc = make_service(RecordingStore(store), cache, FailingBus())

    product_id = await svc.create_product("Phone")

    assert product_id == 1
    assert cache.deletes == [KEY]
    assert [p["name"] for p in await store.scan_all()] == ["Phone"]


# ═══════════════════════════════════════════════════════════
# Custom publish
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_publish_message_without_listeners(store):
    bus = RecordingBus()
    svc = make_service(RecordingStore(store), bus=bus)
    assert await svc.publish_message("alerts", "hello") == 0
    assert bus.published == [("alerts", "hello")]


@pytest.mark.asyncio
@pytest.mark.parametrize("channel,message", [(None, "m"), ("c", None), ("", "m"), ("c", "")])
async def test_publish_message_requires_channel_and_message(store, channel, message):
    bus = RecordingBus()
    svc = make_service(RecordingStore(store), bus=bus)
    with pytest.raises(ValidationError):
        await svc.publish_message(channel, message)
    assert bus.published == []


@pytest.mark.asyncio
async def test_publish_message_bus_failure_propagates(store):
    svc = make_service(RecordingStore(store), bus=FailingBus())
    with pytest.raises(BusError):
        await svc.publish_message("alerts", "hello")


@pytest.mark.asyncio
async def test_publish_message_accepts_whitespace_message(store):
    """Only an absent or empty message is missing; spaces are content."""
    bus = RecordingBus()
    svc = make_service(RecordingStore(store), bus=bus)
    await svc.publish_message("alerts", " ")
    assert bus.published == [("alerts", " ")]


@pytest.mark.asyncio
async def test_cached_snapshot_round_trips(store):
    cache = RecordingCache()
    await cache.set(KEY, '[{"id": 3, "name": "Dock"}]', ttl=3600)
    recording = RecordingStore(store)
    svc = make_service(recording, cache)

    assert await svc.list_products() == [{"id": 3, "name": "Dock", "description": None}]
    assert recording.scans == 0


@pytest.mark.asyncio
async def test_single_flight_abandoned_failure_is_retrieved():
    """A shared load that fails after all its callers left is not reported as unhandled."""
    loop = asyncio.get_running_loop()
    reported: list[dict] = []
    previous = loop.get_exception_handler()
    loop.set_exception_handler(lambda _loop, context: reported.append(context))
    try:
        svc = make_service(FailingStore(scan_delay=0.05), single_flight=True)
        callers = [asyncio.create_task(svc.list_products()) for _ in range(2)]
        await asyncio.sleep(0.01)
        for caller in callers:
            caller.cancel()
        await asyncio.gather(*callers, return_exceptions=True)

        for _ in range(100):
            if not svc._inflight:
                break
            await asyncio.sleep(0.01)
        assert svc._inflight == {}

        del callers
        gc.collect()
        await asyncio.sleep(0)
    finally:
        loop.set_exception_handler(previous)

    assert not [c for c in reported if "never retrieved" in c.get("message", "")]
