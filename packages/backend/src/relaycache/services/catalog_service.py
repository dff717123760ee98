"""Catalog service — cache-aside reads, invalidating writes, change fan-out.

Learn: This is the CORE of the service. It coordinates three
collaborators and decides which of their failures matter.

Read path:
  cache GET → hit: return snapshot
            → miss: store SCAN → cache SET (ttl) → return rows

Write path:
  validate → store INSERT → cache DEL → bus PUBLISH(ChangeEvent) → return id

Only the store is authoritative. A failed scan or insert aborts the
request; a failed cache or bus call is logged and the request carries on.
A committed insert is never rolled back because of a downstream failure.

No locks: two concurrent misses may both scan and both populate (last
SET wins), and a read racing a write may briefly repopulate a stale
snapshot. Setting single_flight collapses concurrent misses into one scan.
"""

import asyncio
import json
from typing import Any, Awaitable, Optional

import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaError

from relaycache.cache import Cache
from relaycache.db.store import ProductStore
from relaycache.errors import BusError, CacheError, StorageError, ValidationError
from relaycache.realtime.bus import NotificationBus
from relaycache.schemas.catalog import ChangeEvent, ProductRead

logger = structlog.get_logger()

_SNAPSHOT = TypeAdapter(list[ProductRead])


def _missing(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class CatalogService:
    """Coordinates the product store, the snapshot cache and the bus."""

    def __init__(
        self,
        store: ProductStore,
        cache: Cache,
        bus: NotificationBus,
        *,
        cache_key: str = "all_products",
        cache_ttl: int = 3600,
        updates_topic: str = "product_updates",
        io_timeout: float = 5.0,
        single_flight: bool = False,
    ):
        self.store = store
        self.cache = cache
        self.bus = bus
        self.cache_key = cache_key
        self.cache_ttl = cache_ttl
        self.updates_topic = updates_topic
        self.io_timeout = io_timeout
        self.single_flight = single_flight
        self._inflight: dict[str, asyncio.Future] = {}

    # ─── Read ────────────────────────────────────────────

    async def list_products(self) -> list[dict]:
        """Serve the product list, from cache when possible."""
        cached = await self._read_cache()
        if cached is not None:
            logger.info("catalog.cache_hit", key=self.cache_key, count=len(cached))
            return cached

        logger.info("catalog.cache_miss", key=self.cache_key)
        if self.single_flight:
            return await self._load_shared()
        return await self._load_and_populate()

    async def _read_cache(self) -> Optional[list[dict]]:
        try:
            raw = await self._bounded(self.cache.get(self.cache_key), CacheError, "cache get")
        except CacheError as e:
            logger.warning("catalog.cache_unavailable", op="get", error=str(e))
            return None
        if raw is None:
            return None
        # Undecodable or wrong-shape snapshots are treated as a miss
        try:
            products = _SNAPSHOT.validate_json(raw)
        except SchemaError:
            logger.warning("catalog.cache_corrupt", key=self.cache_key)
            return None
        return [p.model_dump() for p in products]

    async def _load_and_populate(self) -> list[dict]:
        # StorageError propagates before the cache is touched
        products = await self._bounded(self.store.scan_all(), StorageError, "store scan")

        try:
            await self._bounded(
                self.cache.set(self.cache_key, json.dumps(products), self.cache_ttl),
                CacheError,
                "cache set",
            )
        except CacheError as e:
            logger.warning("catalog.cache_populate_failed", key=self.cache_key, error=str(e))
        else:
            logger.info(
                "catalog.cache_populated",
                key=self.cache_key,
                count=len(products),
                ttl=self.cache_ttl,
            )
        return products

    async def _load_shared(self) -> list[dict]:
        """Join the in-flight load for this key, or start one."""
        pending = self._inflight.get(self.cache_key)
        if pending is None:
            pending = asyncio.ensure_future(self._load_and_populate())
            self._inflight[self.cache_key] = pending
            key = self.cache_key
            pending.add_done_callback(lambda fut: self._forget(key, fut))
        # One cancelled caller must not cancel the load for the others
        return await asyncio.shield(pending)

    # ─── Write ───────────────────────────────────────────

    async def create_product(self, name: Optional[str], description: Optional[str] = None) -> int:
        """Persist a product, invalidate the snapshot and announce it.

        Returns the assigned id. Raises ValidationError before any side
        effect, StorageError if the insert fails.
        """
        if _missing(name):
            raise ValidationError("Product name is required")

        product_id = await self._bounded(
            self.store.insert(name, description), StorageError, "store insert"
        )

        try:
            await self._bounded(self.cache.delete(self.cache_key), CacheError, "cache delete")
        except CacheError as e:
            logger.warning("catalog.invalidate_failed", key=self.cache_key, error=str(e))
        else:
            logger.info("catalog.cache_invalidated", key=self.cache_key)

        event = ChangeEvent(
            entity=ProductRead(id=product_id, name=name, description=description)
        )
        try:
            receivers = await self._bounded(
                self.bus.publish(self.updates_topic, event.model_dump_json()),
                BusError,
                "publish",
            )
        except BusError as e:
            logger.warning(
                "catalog.publish_failed",
                topic=self.updates_topic,
                product_id=product_id,
                error=str(e),
            )
        else:
            logger.info(
                "catalog.change_published",
                topic=self.updates_topic,
                product_id=product_id,
                receivers=receivers,
            )

        return product_id

    # ─── Custom publish ──────────────────────────────────

    async def publish_message(self, channel: Optional[str], message: Optional[str]) -> int:
        """Publish a raw message on a custom topic. BusError propagates."""
        if not channel or not message:
            raise ValidationError("Channel and message are required")

        receivers = await self._bounded(self.bus.publish(channel, message), BusError, "publish")
        logger.info("catalog.message_published", topic=channel, receivers=receivers)
        return receivers

    # ─── Helpers ─────────────────────────────────────────

    def _forget(self, key: str, fut: asyncio.Future) -> None:
        self._inflight.pop(key, None)
        # Every waiter may have been cancelled; mark the outcome as seen
        if not fut.cancelled():
            fut.exception()

    async def _bounded(self, call: Awaitable[Any], error: type[Exception], what: str) -> Any:
        """Await call with the per-call timeout, reporting a timeout as error."""
        try:
            return await asyncio.wait_for(call, timeout=self.io_timeout)
        except asyncio.TimeoutError as e:
            raise error(f"{what} timed out after {self.io_timeout}s") from e
