"""Message broadcast for live activity viewers.

The resolver publishes one message per appended event; viewers subscribe
without the ingestion path knowing which transport carries the messages.

Usage:
    broadcaster = InMemoryBroadcaster()
    broadcaster.subscribe("webhooks", lambda message: print(message["type"]))
    broadcaster.publish("webhooks", {"type": "processed_webhook", ...})
"""

import json
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from outreach_core.config import Settings
from outreach_core.observability.logging import get_logger

logger = get_logger(__name__)

Message = dict[str, Any]
Subscriber = Callable[[Message], None]

# Message types
RAW_WEBHOOK = "raw_webhook"
PROCESSED_WEBHOOK = "processed_webhook"


class Broadcaster(ABC):
    """Publish side of the activity fan-out."""

    @abstractmethod
    def publish(self, channel: str, message: Message) -> int:
        """Publish a message.

        Returns:
            Number of receivers the message reached, where the backend knows.
        """
        ...


class NullBroadcaster(Broadcaster):
    """Discards every message."""

    def publish(self, channel: str, message: Message) -> int:
        return 0


class InMemoryBroadcaster(Broadcaster):
    """Process-local fan-out to registered callbacks.

    A subscriber that raises is logged and skipped; the remaining
    subscribers still receive the message.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscriber]] = {}

    def subscribe(self, channel: str, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.setdefault(channel, []).append(callback)

    def unsubscribe(self, channel: str, callback: Subscriber) -> None:
        with self._lock:
            callbacks = self._subscribers.get(channel, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, []))

    def publish(self, channel: str, message: Message) -> int:
        with self._lock:
            callbacks = list(self._subscribers.get(channel, []))

        delivered = 0
        for callback in callbacks:
            try:
                callback(message)
                delivered += 1
            except Exception:
                logger.error(
                    "broadcast subscriber failed",
                    exc_info=True,
                    channel=channel,
                    message_type=message.get("type"),
                )
        return delivered


class RedisBroadcaster(Broadcaster):
    """Fan-out over Redis pub/sub so every API process's viewers see each event."""

    def __init__(self, redis_url: str, client: Optional[Any] = None):
        self._redis_url = redis_url
        self._client = client

    def _get_redis(self):
        """Get Redis client (lazy initialization)."""
        if self._client is None:
            import redis

            self._client = redis.from_url(self._redis_url)
        return self._client

    def publish(self, channel: str, message: Message) -> int:
        payload = json.dumps(message, default=str)
        return int(self._get_redis().publish(channel, payload))


_broadcaster: Optional[Broadcaster] = None


def build_broadcaster(settings: Settings) -> Broadcaster:
    """Create the broadcaster selected by ``broadcast_backend``."""
    if settings.broadcast_backend == "redis":
        return RedisBroadcaster(settings.redis_url)
    if settings.broadcast_backend == "none":
        return NullBroadcaster()
    return InMemoryBroadcaster()


def get_broadcaster(settings: Settings) -> Broadcaster:
    """Get the process-wide broadcaster (singleton)."""
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = build_broadcaster(settings)
    return _broadcaster


def reset_broadcaster() -> None:
    """Forget the process-wide broadcaster."""
    global _broadcaster
    _broadcaster = None
