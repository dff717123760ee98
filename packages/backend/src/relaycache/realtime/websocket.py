"""WebSocket endpoint — real-time event delivery to frontend clients.

Learn: Each client connects to /ws. The handler:
1. Accepts the connection and attaches a session to the fan-out gateway
2. Reads client commands (ping, subscribe to a custom topic)
3. Detaches the session on disconnect

Outbound events are pushed by the gateway, not by this handler, so a
thousand sessions still share one bus subscription per topic.
"""

import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from relaycache.errors import BusError
from relaycache.realtime.gateway import FanoutGateway

logger = structlog.get_logger()
router = APIRouter()


@router.websocket("/ws")
async def realtime_websocket(websocket: WebSocket):
    """Long-lived connection that receives entity_changed and custom-topic events.

    Client commands (JSON text frames):
    - {"type": "ping"}                      → {"type": "pong"}
    - {"type": "subscribe", "topic": "..."} → start relaying a custom topic
    """
    gateway: FanoutGateway = websocket.app.state.services.gateway

    await websocket.accept()
    session = await gateway.attach(websocket.send_text)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if not isinstance(msg, dict):
                continue

            if msg.get("type") == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
            elif msg.get("type") == "subscribe":
                topic = msg.get("topic")
                if not isinstance(topic, str) or not topic:
                    await websocket.send_text(
                        json.dumps({"type": "error", "detail": "topic is required"})
                    )
                    continue
                try:
                    await gateway.join(session, topic)
                except BusError as e:
                    logger.warning("ws.subscribe_failed", topic=topic, error=str(e))
                    await websocket.send_text(
                        json.dumps({"type": "error", "detail": "Failed to subscribe"})
                    )
                    continue
                await websocket.send_text(
                    json.dumps({"type": "subscribed", "topic": topic})
                )
    except WebSocketDisconnect:
        pass
    finally:
        gateway.detach(session.id)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
