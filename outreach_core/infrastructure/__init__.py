"""External transports used by the core."""

from outreach_core.infrastructure.broadcast import (
    Broadcaster,
    InMemoryBroadcaster,
    NullBroadcaster,
    RedisBroadcaster,
    get_broadcaster,
)

__all__ = [
    "Broadcaster",
    "InMemoryBroadcaster",
    "NullBroadcaster",
    "RedisBroadcaster",
    "get_broadcaster",
]
