"""Fan-out gateway — relays bus messages to every connected session.

Learn: The gateway holds exactly one bus subscription per relay topic no
matter how many sessions are attached. When a message arrives it is
broadcast to ALL sessions connected at that moment. Sessions can ask for
extra custom topics, but that only makes the gateway start relaying the
topic; it does not filter who receives it.

Sessions that connect later never see earlier messages (no backlog).
"""

import asyncio
import json
import uuid
from typing import Awaitable, Callable, Iterable

import structlog

from relaycache.realtime.bus import NotificationBus, Subscription

logger = structlog.get_logger()

ENTITY_CHANGED_EVENT = "entity_changed"
CONNECTED_EVENT = "connected"


class Session:
    """One live client connection. Exists only between connect and disconnect."""

    def __init__(self, send: Callable[[str], Awaitable[None]]):
        self.id = uuid.uuid4().hex
        self.topics: set[str] = set()
        self._send = send

    async def send_frame(self, frame: str) -> None:
        await self._send(frame)


def encode_frame(event: str, data) -> str:
    return json.dumps({"event": event, "data": data})


class FanoutGateway:
    """Bridges notification bus topics to the set of attached sessions."""

    def __init__(
        self,
        bus: NotificationBus,
        updates_topic: str,
        relay_topics: Iterable[str] = (),
    ):
        self.bus = bus
        self.updates_topic = updates_topic
        self.default_topics = list(relay_topics)
        self.sessions: dict[str, Session] = {}
        self._relays: dict[str, Subscription] = {}
        self._lock = asyncio.Lock()

    @property
    def relay_topics(self) -> list[str]:
        return list(self._relays)

    async def start(self) -> None:
        await self.add_relay(self.updates_topic)
        for topic in self.default_topics:
            await self.add_relay(topic)
        logger.info("gateway.started", topics=self.relay_topics)

    async def stop(self) -> None:
        async with self._lock:
            relays = list(self._relays.values())
            self._relays.clear()
        for sub in relays:
            await self.bus.unsubscribe(sub)
        self.sessions.clear()
        logger.info("gateway.stopped")

    async def add_relay(self, topic: str) -> None:
        """Start relaying topic. No-op if it is already relayed."""
        async with self._lock:
            if topic in self._relays:
                return
            self._relays[topic] = await self.bus.subscribe(topic, self._relay)
        logger.info("gateway.relay_added", topic=topic)

    # ─── Sessions ───────────────────────────────────────

    async def attach(self, send: Callable[[str], Awaitable[None]]) -> Session:
        """Register a new session after greeting it with its id."""
        session = Session(send)
        await session.send_frame(encode_frame(CONNECTED_EVENT, {"session_id": session.id}))
        self.sessions[session.id] = session
        logger.info(
            "gateway.session_attached",
            session_id=session.id,
            sessions=len(self.sessions),
        )
        return session

    def detach(self, session_id: str) -> None:
        if self.sessions.pop(session_id, None) is not None:
            logger.info(
                "gateway.session_detached",
                session_id=session_id,
                sessions=len(self.sessions),
            )

    async def join(self, session: Session, topic: str) -> None:
        """Record that session asked for topic and make sure it is relayed."""
        session.topics.add(topic)
        await self.add_relay(topic)

    # ─── Relay ──────────────────────────────────────────

    async def broadcast(self, event: str, data) -> int:
        """Send one frame to every attached session. Returns the delivered count."""
        frame = encode_frame(event, data)
        sessions = list(self.sessions.values())
        results = await asyncio.gather(
            *(s.send_frame(frame) for s in sessions),
            return_exceptions=True,
        )

        delivered = 0
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.warning(
                    "gateway.send_failed",
                    session_id=session.id,
                    error=str(result),
                )
                self.detach(session.id)
            else:
                delivered += 1
        return delivered

    async def drain(self) -> None:
        """Wait until every message received so far has been relayed."""
        for sub in list(self._relays.values()):
            await sub.join()

    async def _relay(self, topic: str, payload: str) -> None:
        if topic == self.updates_topic:
            try:
                data = json.loads(payload)
            except json.JSONDecodeError:
                data = payload
            event = ENTITY_CHANGED_EVENT
        else:
            data = payload
            event = topic

        delivered = await self.broadcast(event, data)
        logger.debug("gateway.relayed", topic=topic, event=event, sessions=delivered)
