"""Redis pub/sub — the production notification bus.

Learn: Redis pub/sub is fire-and-forget. If no one is listening, the message
is lost. That's fine for real-time UI updates (the frontend can always query
the API to catch up).

A single client can't both SUBSCRIBE and run normal commands, so this bus
keeps two long-lived connections, shared by the whole process:
- the client's pool, used for PUBLISH
- one PubSub connection, read by a single background task that hands
  every message to the local Subscriptions for its channel

A Redis channel is subscribed when its first local Subscription appears
and unsubscribed when its last one goes away.
"""

import asyncio
from typing import Optional

import redis.asyncio as aioredis
import structlog
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from relaycache.errors import BusError
from relaycache.realtime.bus import Handler, Subscription

logger = structlog.get_logger()


class RedisBus:
    """Notification bus over Redis PUBLISH/SUBSCRIBE."""

    def __init__(
        self,
        client: aioredis.Redis,
        reconnect_delay: float = 0.5,
        max_reconnect_delay: float = 30.0,
    ):
        self._redis = client
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay
        self._reader_error: Optional[str] = None
        self._pubsub: Optional[PubSub] = None
        self._reader: Optional[asyncio.Task] = None
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_url(cls, url: str) -> "RedisBus":
        return cls(
            aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        )

    async def connect(self) -> None:
        """Verify the server is reachable and open the pub/sub connection."""
        await self.ping()
        self._pubsub = self._redis.pubsub()

    async def close(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None

        for subs in list(self._subscriptions.values()):
            for sub in subs:
                await sub.cancel()
        self._subscriptions.clear()

        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        await self._redis.aclose()

    async def ping(self) -> None:
        """Check the pool and, while anything is subscribed, the reader."""
        try:
            await self._redis.ping()
        except (RedisError, OSError) as e:
            raise BusError(f"Bus PING failed: {e}") from e
        if self._subscriptions:
            if self._reader is None or self._reader.done():
                raise BusError("Bus reader is not running")
            if self._reader_error is not None:
                raise BusError(f"Bus reader reconnecting: {self._reader_error}")

    async def publish(self, topic: str, payload: str) -> int:
        try:
            return await self._redis.publish(topic, payload)
        except (RedisError, OSError) as e:
            raise BusError(f"Publish to {topic!r} failed: {e}") from e

    async def subscribe(self, topic: str, handler: Handler) -> Subscription:
        if self._pubsub is None:
            raise BusError("Bus not connected. Call connect() first.")

        sub = Subscription(topic, handler)
        async with self._lock:
            subs = self._subscriptions.get(topic)
            if not subs:
                try:
                    await self._pubsub.subscribe(topic)
                except (RedisError, OSError) as e:
                    raise BusError(f"Subscribe to {topic!r} failed: {e}") from e
                subs = self._subscriptions[topic] = []
            sub.start()
            subs.append(sub)
            self._ensure_reader()

        logger.info("bus.subscribed", topic=topic, subscription_id=sub.id)
        return sub

    async def unsubscribe(self, subscription: Subscription) -> None:
        topic = subscription.topic
        async with self._lock:
            subs = self._subscriptions.get(topic, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs and topic in self._subscriptions:
                del self._subscriptions[topic]
                if self._pubsub is not None:
                    try:
                        await self._pubsub.unsubscribe(topic)
                    except (RedisError, OSError) as e:
                        logger.warning("bus.unsubscribe_failed", topic=topic, error=str(e))

        await subscription.cancel()

    def _ensure_reader(self) -> None:
        # listen() returns once nothing is subscribed, so restart on demand
        if self._reader is None or self._reader.done():
            self._reader = asyncio.create_task(self._read_loop())

    async def _read_loop(self) -> None:
        """Forward Redis messages to the local subscriptions for their channel.

        Learn: A dropped connection surfaces as an error from listen().
        The loop waits (exponential backoff) and listens again; redis-py
        reconnects and re-subscribes every recorded channel on connect.
        """
        delay = self.reconnect_delay
        while True:
            try:
                async for message in self._pubsub.listen():
                    self._reader_error = None
                    delay = self.reconnect_delay
                    if message["type"] != "message":
                        continue
                    for sub in list(self._subscriptions.get(message["channel"], ())):
                        sub.deliver(message["data"])
                # Nothing left subscribed
                return
            except (RedisError, OSError) as e:
                self._reader_error = str(e)
                logger.error("bus.reader_failed", error=str(e), retry_in=delay)
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_reconnect_delay)
