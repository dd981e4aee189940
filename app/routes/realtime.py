"""
Real-time WebSocket endpoint over the EventBus.

    /ws?topic=<name>     subscribe on connect (default: global)

Client messages:
    "ping"                                      -> {"event": "pong"}
    {"action": "subscribe", "topic": "..."}     -> {"event": "subscribed", "topic": ...}
    {"action": "unsubscribe", "topic": "..."}   -> {"event": "unsubscribed", "topic": ...}

Server pushes every bus message as-is: {"event", "topic", "data", "published_at"}.
Delivery is at-most-once; events published before a subscription are never
replayed. Disconnecting releases every subscription of the socket.
"""

import asyncio
import json
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from app.services.event_bus import GLOBAL_TOPIC, EventBus, Subscription

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


class SocketSession:
    """Subscriptions held by one WebSocket connection."""

    def __init__(self, websocket: WebSocket, bus: EventBus):
        self.websocket = websocket
        self.bus = bus
        self._subscriptions: Dict[str, Subscription] = {}
        self._pumps: Dict[str, asyncio.Task] = {}
        self._send_lock = asyncio.Lock()

    async def send(self, message: dict) -> None:
        async with self._send_lock:
            await self.websocket.send_json(message)

    async def _pump(self, subscription: Subscription) -> None:
        try:
            async for message in subscription:
                await self.send(message)
        except Exception as e:
            logger.info(f"Stopped forwarding '{subscription.topic}': {e}")
            subscription.close()

    def subscribe(self, topic: str) -> bool:
        if topic in self._subscriptions:
            return False
        subscription = self.bus.subscribe(topic)
        self._subscriptions[topic] = subscription
        self._pumps[topic] = asyncio.create_task(self._pump(subscription))
        return True

    def unsubscribe(self, topic: str) -> None:
        subscription = self._subscriptions.pop(topic, None)
        if subscription is not None:
            subscription.close()
        pump = self._pumps.pop(topic, None)
        if pump is not None:
            pump.cancel()

    def close(self) -> None:
        for topic in list(self._subscriptions):
            self.unsubscribe(topic)

    async def handle(self, raw: str) -> None:
        if raw.strip().lower() == "ping":
            await self.send({"event": "pong"})
            return
        try:
            command = json.loads(raw)
            action = command.get("action")
            topic: Optional[str] = command.get("topic")
        except (ValueError, AttributeError):
            await self.send({"event": "error", "detail": "Expected 'ping' or a JSON command"})
            return

        if action not in ("subscribe", "unsubscribe") or not isinstance(topic, str) or not topic:
            await self.send({"event": "error", "detail": "Command needs action subscribe|unsubscribe and a string topic"})
            return

        if action == "subscribe":
            self.subscribe(topic)
            await self.send({"event": "subscribed", "topic": topic})
        else:
            self.unsubscribe(topic)
            await self.send({"event": "unsubscribed", "topic": topic})


@router.websocket("/ws")
async def realtime(websocket: WebSocket, topic: str = Query(GLOBAL_TOPIC)):
    bus: EventBus = websocket.app.state.coordinator.event_bus
    await websocket.accept()
    session = SocketSession(websocket, bus)
    session.subscribe(topic)
    await session.send({"event": "subscribed", "topic": topic})
    logger.info(f"WebSocket connected, topic '{topic}'")
    try:
        while True:
            await session.handle(await websocket.receive_text())
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    finally:
        session.close()
