"""
Topic-scoped publish/subscribe for real-time notifications.

Semantics:
- At-most-once, fire-and-forget: no acknowledgment, retry or persistence
- Subscribers only see events published after they subscribed (no replay)
- Per topic, events from one producer arrive in publish order
- publish() never blocks and never fails the caller: a full subscriber queue
  drops the event for that subscriber, a dead subscriber is released

publish() is thread-safe, so services running in request worker threads can
publish directly; delivery hops onto each subscriber's event loop.

The bus is an explicit instance created at startup (held by the Coordinator) and
handed to every service that publishes. Registrations live in memory only;
after a restart clients must subscribe again.
"""

import asyncio
import logging
import threading
import uuid
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from app.models.base import utcnow

logger = logging.getLogger(__name__)

GLOBAL_TOPIC = "global"


def incident_topic(disaster_id: str) -> str:
    """Topic carrying events scoped to one disaster."""
    return f"incident_{disaster_id}"


class EventType(str, Enum):
    INCIDENT_CREATED = "incident_created"
    INCIDENT_UPDATED = "incident_updated"
    INCIDENT_DELETED = "incident_deleted"
    RESOURCES_UPDATED = "resources_updated"
    SOCIAL_REPORT_RECEIVED = "social_report_received"
    IMAGE_VERIFIED = "image_verified"
    OFFICIAL_UPDATE_RECEIVED = "official_update_received"


_CLOSED = object()


class Subscription:
    """
    One subscriber's registration on one topic.

    Consume with `async for message in subscription` or `await subscription.get()`.
    Iteration ends once the subscription is closed.
    """

    def __init__(self, bus: "EventBus", topic: str, loop: asyncio.AbstractEventLoop, maxsize: int):
        self.id = str(uuid.uuid4())
        self.topic = topic
        self.dropped = 0
        self._bus = bus
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _enqueue(self, message: Any) -> None:
        # Always runs on the subscriber's loop
        if self._closed and message is not _CLOSED:
            return
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            if message is _CLOSED:
                # Make room for the wake-up marker; the subscription is ending anyway
                self._queue.get_nowait()
                self._queue.put_nowait(message)
                return
            self.dropped += 1
            logger.warning(f"Subscriber {self.id} on '{self.topic}' is full; event dropped")

    def _dispatch(self, message: Any) -> None:
        """Hand a message to the subscriber's loop from any thread."""
        if self._loop.is_closed():
            raise RuntimeError("subscriber event loop is closed")
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._enqueue(message)
        else:
            self._loop.call_soon_threadsafe(self._enqueue, message)

    def _release(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._dispatch(_CLOSED)
        except RuntimeError:
            pass

    def close(self) -> None:
        """Unsubscribe. Idempotent."""
        self._bus.unsubscribe(self)

    async def get(self) -> Dict[str, Any]:
        """Next message; raises StopAsyncIteration once closed."""
        if self._closed:
            raise StopAsyncIteration
        message = await self._queue.get()
        if message is _CLOSED or self._closed:
            raise StopAsyncIteration
        return message

    def __aiter__(self):
        return self

    async def __anext__(self) -> Dict[str, Any]:
        return await self.get()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class EventBus:
    """In-memory topic registry with non-blocking fan-out."""

    def __init__(self, queue_size: int = 100):
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self.queue_size = queue_size
        self._topics: Dict[str, Dict[str, Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        topic: str,
        maxsize: Optional[int] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> Subscription:
        """
        Register a subscriber on topic.

        Must be called from the subscriber's event loop unless `loop` is given.
        """
        if not topic:
            raise ValueError("topic must be a non-empty string")
        loop = loop or asyncio.get_running_loop()
        subscription = Subscription(self, topic, loop, maxsize or self.queue_size)
        with self._lock:
            self._topics.setdefault(topic, {})[subscription.id] = subscription
        logger.info(f"Subscriber {subscription.id} joined '{topic}'")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Release a subscription immediately. Unknown or already-released is fine."""
        with self._lock:
            subscribers = self._topics.get(subscription.topic)
            if subscribers is not None:
                subscribers.pop(subscription.id, None)
                if not subscribers:
                    del self._topics[subscription.topic]
        if not subscription.closed:
            subscription._release()
            logger.info(f"Subscriber {subscription.id} left '{subscription.topic}'")

    def publish(self, topic: str, event: str, payload: Dict[str, Any]) -> int:
        """
        Deliver payload to the current subscribers of topic.

        Returns how many subscribers it was dispatched to. Never raises for
        subscriber-side problems.
        """
        with self._lock:
            subscribers = list(self._topics.get(topic, {}).values())
        if not subscribers:
            return 0

        message = {
            "event": event.value if isinstance(event, Enum) else event,
            "topic": topic,
            "data": payload,
            "published_at": utcnow().isoformat(),
        }
        dispatched = 0
        for subscription in subscribers:
            try:
                subscription._dispatch(message)
                dispatched += 1
            except Exception as e:
                logger.warning(f"Dropping subscriber {subscription.id} on '{topic}': {e}")
                self.unsubscribe(subscription)
        return dispatched

    def publish_to(self, topics: Iterable[str], event: str, payload: Dict[str, Any]) -> int:
        return sum(self.publish(topic, event, payload) for topic in topics)

    def subscriber_count(self, topic: Optional[str] = None) -> int:
        with self._lock:
            if topic is not None:
                return len(self._topics.get(topic, {}))
            return sum(len(subs) for subs in self._topics.values())

    def topics(self) -> List[str]:
        with self._lock:
            return sorted(self._topics)

    def close(self) -> None:
        """Release every subscription (shutdown)."""
        with self._lock:
            subscriptions = [s for subs in self._topics.values() for s in subs.values()]
        for subscription in subscriptions:
            self.unsubscribe(subscription)
