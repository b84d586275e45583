"""
Simple Async Pub/Sub Event Bus

Outbound change-event channel of the engine. The WhaleTrackerService
publishes on three topics and any number of WebSocket handlers subscribe
and consume those events independently:

    whale_trades       one TrackerUpdate per processing tick
    connection_status  every connection state change
    engine_errors      non-fatal degradations (fallback cutoffs, dropped feeds)
"""

import asyncio
from typing import Any, Dict, DefaultDict, Set
from collections import defaultdict

from core.logging import get_logger

TOPIC_WHALE_TRADES = "whale_trades"
TOPIC_CONNECTION_STATUS = "connection_status"
TOPIC_ENGINE_ERRORS = "engine_errors"

TOPICS = (TOPIC_WHALE_TRADES, TOPIC_CONNECTION_STATUS, TOPIC_ENGINE_ERRORS)


class EventBus:
    """
    Async event bus with topic-based pub/sub.

    - Each subscriber gets its own asyncio.Queue and will not block publishers.
    - Unsubscribing is important to avoid queue leaks when clients disconnect.
    - publish_nowait lets synchronous engine callbacks publish without awaiting.
    """

    def __init__(self, max_queue_size: int = 1000) -> None:
        self._topics: DefaultDict[str, Set[asyncio.Queue]] = defaultdict(set)
        self._max_queue_size = max_queue_size
        self._logger = get_logger(__name__)

    async def subscribe(self, topic: str) -> asyncio.Queue:
        """
        Subscribe to a topic. Returns an asyncio.Queue for receiving events.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._topics[topic].add(queue)
        self._logger.debug(f"Subscriber added to topic '{topic}'. total={len(self._topics[topic])}")
        return queue

    async def unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        """
        Unsubscribe a queue from a topic and drop anything still queued.
        """
        subscribers = self._topics.get(topic, set())
        if queue in subscribers:
            subscribers.remove(queue)
            while not queue.empty():
                queue.get_nowait()
        self._logger.debug(f"Subscriber removed from topic '{topic}'. total={len(subscribers)}")

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    def publish_nowait(self, topic: str, event: Dict[str, Any]) -> int:
        """
        Publish an event to a topic. Drops events if a subscriber queue is full.

        Returns:
            Number of subscribers the event was delivered to
        """
        delivered = 0
        for q in list(self._topics.get(topic, ())):
            try:
                q.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                # Drop event to avoid backpressure blocking
                self._logger.warning(f"Dropping event for topic '{topic}' due to full queue")
        return delivered

    async def publish(self, topic: str, event: Dict[str, Any]) -> int:
        return self.publish_nowait(topic, event)


# Singleton event bus for the application
bus = EventBus()
