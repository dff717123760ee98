"""Service container — explicit construction and lifecycle of collaborators.

Learn: The store, cache, bus and gateway are long-lived and shared by every
request, so they are built once here and handed to the app instead of
living as module globals. start() runs before the server accepts traffic,
stop() runs on shutdown (both from the FastAPI lifespan).
"""

from dataclasses import dataclass

import structlog

from relaycache.cache import Cache, MemoryCache, RedisCache
from relaycache.config import Settings
from relaycache.db.engine import build_engine
from relaycache.db.store import ProductStore
from relaycache.errors import BusError, CacheError
from relaycache.realtime.bus import MemoryBus, NotificationBus
from relaycache.realtime.gateway import FanoutGateway
from relaycache.realtime.pubsub import RedisBus
from relaycache.services.catalog_service import CatalogService

logger = structlog.get_logger()


@dataclass
class Services:
    settings: Settings
    store: ProductStore
    cache: Cache
    bus: NotificationBus
    gateway: FanoutGateway
    catalog: CatalogService

    async def start(self) -> None:
        """Connect collaborators. Only the record store is mandatory.

        Redis is optional. Without it, reads fall through to the store
        and writes skip invalidation and fan-out, all logged.
        """
        await self.store.connect()

        try:
            await self.cache.ping()
        except CacheError as e:
            logger.warning("relaycache.cache_unavailable", error=str(e))

        try:
            await self.bus.connect()
            await self.gateway.start()
        except BusError as e:
            logger.warning("relaycache.bus_unavailable", error=str(e))

    async def stop(self) -> None:
        await self.gateway.stop()
        await self.bus.close()
        await self.cache.close()
        await self.store.close()


def build_services(settings: Settings) -> Services:
    """Wire the collaborators selected by settings."""
    store = ProductStore(build_engine(settings.database_url, echo=settings.debug))

    if settings.cache_backend == "memory":
        cache: Cache = MemoryCache()
    else:
        cache = RedisCache.from_url(settings.redis_url)

    if settings.bus_backend == "memory":
        bus: NotificationBus = MemoryBus()
    else:
        bus = RedisBus.from_url(settings.redis_url)

    gateway = FanoutGateway(
        bus,
        updates_topic=settings.updates_topic,
        relay_topics=settings.relay_topics,
    )
    catalog = CatalogService(
        store,
        cache,
        bus,
        cache_key=settings.cache_key,
        cache_ttl=settings.cache_ttl_seconds,
        updates_topic=settings.updates_topic,
        io_timeout=settings.io_timeout_seconds,
        single_flight=settings.single_flight_reads,
    )
    return Services(
        settings=settings,
        store=store,
        cache=cache,
        bus=bus,
        gateway=gateway,
        catalog=catalog,
    )
