"""In-process publish/subscribe broker for live snapshots.

Writers publish the post-write state of a document to a topic; each active
subscriber owns a bounded asyncio.Queue. Slow subscribers lose their oldest
pending snapshot rather than blocking the writer, which is fine because every
message is a full snapshot and only the latest one matters.

Topics:
- entitlement:<tenant_id>   EntitlementRecord after every committed write
- reports:<owner_id>        report list change for one tenant
- reports:*                 report list change for any tenant (admin view)
"""
import asyncio
import logging
from typing import Any, Dict, Set

logger = logging.getLogger(__name__)

ALL_REPORTS_TOPIC = "reports:*"


def entitlement_topic(tenant_id: str) -> str:
    return f"entitlement:{tenant_id}"


def reports_topic(owner_id: str) -> str:
    return f"reports:{owner_id}"


class EventBroker:
    """Topic -> set of subscriber queues."""

    def __init__(self, max_queue_size: int = 50):
        self.max_queue_size = max_queue_size
        self._subscribers: Dict[str, Set[asyncio.Queue]] = {}

    def subscribe(self, topic: str) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers.setdefault(topic, set()).add(q)
        logger.debug(f"[BROKER] Subscribed to {topic}. Total: {len(self._subscribers[topic])}")
        return q

    def unsubscribe(self, topic: str, q: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(topic)
        if not subscribers:
            return
        subscribers.discard(q)
        if not subscribers:
            del self._subscribers[topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    def publish(self, topic: str, message: Any) -> int:
        """Deliver message to every subscriber of topic. Returns the number reached."""
        subscribers = list(self._subscribers.get(topic, ()))
        for q in subscribers:
            try:
                q.put_nowait(message)
            except asyncio.QueueFull:
                try:
                    q.get_nowait()
                    q.put_nowait(message)
                except (asyncio.QueueEmpty, asyncio.QueueFull):
                    pass
        return len(subscribers)
