# Overview: Post-commit stock-change broadcast to live checkout terminals.

"""
After a sale commits, every product it decremented is announced on the
store's topic as {"type": "stock:update", "productId": ..., "stock": ...}
so other terminals of the same store see the new quantity without polling.

Publishing is best-effort: a failure is logged and never reaches the sale.
Events of one commit go out in the order the decrements were applied; there
is no ordering across concurrent commits.

The transport sits behind MessagePublisher.publish(topic, event):
InProcessPublisher for single-process deployments and tests, RedisPublisher
when REDIS_URL is configured.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Iterable, Protocol

logger = logging.getLogger(__name__)

STOCK_UPDATE_EVENT = "stock:update"


def stock_topic(store_id: int) -> str:
    return f"store:{store_id}:stock"


@dataclass(frozen=True)
class StockChange:
    product_id: int
    stock: int

    def to_event(self) -> dict:
        return {"type": STOCK_UPDATE_EVENT, "productId": self.product_id, "stock": self.stock}


class MessagePublisher(Protocol):
    def publish(self, topic: str, event: dict) -> None: ...

    def subscribe(self, topic: str): ...


class Subscription:
    """Bounded queue of events for one in-process subscriber."""

    def __init__(self, publisher: "InProcessPublisher", topic: str, maxsize: int):
        self.topic = topic
        self._publisher = publisher
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def deliver(self, event: dict) -> None:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            # Full queue: drop the event for this subscriber only
            self.dropped += 1

    def get(self, timeout: float | None = None) -> dict | None:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self._publisher.unsubscribe(self)


class InProcessPublisher:
    def __init__(self, max_queue: int = 256):
        self.max_queue = max_queue
        self._subscribers: dict[str, list[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str) -> Subscription:
        subscription = Subscription(self, topic, self.max_queue)
        with self._lock:
            self._subscribers.setdefault(topic, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(subscription.topic, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscribers.pop(subscription.topic, None)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))

    def publish(self, topic: str, event: dict) -> None:
        with self._lock:
            targets = list(self._subscribers.get(topic, []))
        for subscription in targets:
            subscription.deliver(event)


class RedisSubscription:
    def __init__(self, client, topic: str):
        self.topic = topic
        self._pubsub = client.pubsub(ignore_subscribe_messages=True)
        self._pubsub.subscribe(topic)

    def get(self, timeout: float | None = None) -> dict | None:
        message = self._pubsub.get_message(timeout=timeout or 0.0)
        if not message or message.get("type") != "message":
            return None
        data = message["data"]
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return json.loads(data)

    def close(self) -> None:
        self._pubsub.close()


class RedisPublisher:
    """Redis pub/sub transport; events are JSON-encoded."""

    def __init__(self, client):
        self.client = client

    def publish(self, topic: str, event: dict) -> None:
        self.client.publish(topic, json.dumps(event))

    def subscribe(self, topic: str) -> RedisSubscription:
        return RedisSubscription(self.client, topic)


class StockChangeNotifier:
    def __init__(self, publisher: MessagePublisher):
        self.publisher = publisher

    def publish_stock_changes(self, store_id: int, changes: Iterable[StockChange]) -> int:
        """
        Publish one stock:update per change, in the given order.

        Returns the number of events handed to the transport. Never raises.
        """
        topic = stock_topic(store_id)
        published = 0
        try:
            for change in changes:
                self.publisher.publish(topic, change.to_event())
                published += 1
        except Exception:
            logger.warning(
                "Stock change publish failed for store %s after %d event(s)",
                store_id, published, exc_info=True,
            )
        return published
