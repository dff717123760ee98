"""Notification bus — topic-based publish/subscribe.

Learn: Delivery is fire-and-forget. If no one is subscribed when a message
is published, the message is lost. There is no queueing or replay.

Each Subscription owns its own asyncio.Queue and worker task:
- publish() only enqueues, so it never waits for handlers to run
- one subscriber's slow handler can't delay another subscriber
- messages reach a given handler in publish order (FIFO per topic)
"""

import asyncio
import uuid
from typing import Awaitable, Callable, Optional, Protocol

import structlog

logger = structlog.get_logger()

Handler = Callable[[str, str], Awaitable[None]]


class Subscription:
    """Handle returned by subscribe(); pass it back to unsubscribe()."""

    def __init__(self, topic: str, handler: Handler):
        self.id = uuid.uuid4().hex
        self.topic = topic
        self.handler = handler
        self.active = False
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self.active = True
        self._task = asyncio.create_task(self._run())

    def deliver(self, payload: str) -> None:
        if self.active:
            self._queue.put_nowait(payload)

    async def join(self) -> None:
        """Wait until every delivered message has been handled."""
        await self._queue.join()

    async def cancel(self) -> None:
        self.active = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        # A handler may unsubscribe its own subscription
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                await self.handler(self.topic, payload)
            except Exception:
                logger.exception(
                    "bus.handler_failed",
                    topic=self.topic,
                    subscription_id=self.id,
                )
            finally:
                self._queue.task_done()


class NotificationBus(Protocol):
    """Publish/subscribe over named topics. Failures raise BusError."""

    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def ping(self) -> None:
        ...

    async def publish(self, topic: str, payload: str) -> int:
        """Hand payload to the transport; returns the receiver count."""
        ...

    async def subscribe(self, topic: str, handler: Handler) -> Subscription:
        ...

    async def unsubscribe(self, subscription: Subscription) -> None:
        ...


class MemoryBus:
    """In-process bus. Same semantics as RedisBus within one event loop."""

    def __init__(self):
        self._subscriptions: dict[str, list[Subscription]] = {}

    async def connect(self) -> None:
        pass

    async def ping(self) -> None:
        pass

    async def publish(self, topic: str, payload: str) -> int:
        receivers = list(self._subscriptions.get(topic, ()))
        for sub in receivers:
            sub.deliver(payload)
        return len(receivers)

    async def subscribe(self, topic: str, handler: Handler) -> Subscription:
        sub = Subscription(topic, handler)
        sub.start()
        self._subscriptions.setdefault(topic, []).append(sub)
        return sub

    async def unsubscribe(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.topic, [])
        if subscription in subs:
            subs.remove(subscription)
        if not subs:
            self._subscriptions.pop(subscription.topic, None)
        await subscription.cancel()

    async def close(self) -> None:
        for subs in list(self._subscriptions.values()):
            for sub in list(subs):
                await self.unsubscribe(sub)
