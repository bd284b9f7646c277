"""Room-based pub/sub for live bus events.

Events fan out in-process to WebSocket subscriber queues. When a Redis URL is
configured each event is also published on ``bustrack:<room>``; this process
never subscribes to those channels. They are an outbound feed for consumers
outside this process, so local subscribers never receive an event twice.

Delivery is at-most-once: a subscriber whose queue is full misses the event,
and nothing is replayed. The vehicle registry holds the durable last-known
state.
"""

import asyncio
import logging

import orjson
import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "bustrack:"
QUEUE_MAXSIZE = 50


def bus_room(bus_id) -> str:
    return f"bus:{bus_id}"


def route_room(route_number: str) -> str:
    return f"route:{route_number.strip().upper()}"


def encode_event(event: str, data) -> bytes:
    return orjson.dumps({"event": event, "data": data}, default=str)


class Broadcaster:
    """Publishes events to rooms and manages WebSocket subscriber queues."""

    def __init__(self, redis_url: str = "") -> None:
        self._redis_url = redis_url
        self._redis: aioredis.Redis | None = None
        self._rooms: dict[str, set[asyncio.Queue]] = {}

    async def connect(self) -> None:
        if self._redis_url:
            self._redis = aioredis.from_url(self._redis_url, decode_responses=False)

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()

    async def publish(self, room: str, event: str, data) -> int:
        """Publish to a room; returns how many local subscribers got it."""
        payload = encode_event(event, data)

        if self._redis:
            try:
                await self._redis.publish(CHANNEL_PREFIX + room, payload)
            except Exception:
                logger.exception("Failed to publish to Redis")

        delivered = 0
        for q in list(self._rooms.get(room, ())):
            try:
                q.put_nowait(payload)
                delivered += 1
            except asyncio.QueueFull:
                logger.debug("Subscriber queue full in %s, dropping %s", room, event)
        return delivered

    def subscribe(self) -> asyncio.Queue:
        """Create a subscriber queue; attach it to rooms with ``join``."""
        return asyncio.Queue(maxsize=QUEUE_MAXSIZE)

    def join(self, room: str, q: asyncio.Queue) -> None:
        self._rooms.setdefault(room, set()).add(q)

    def leave(self, room: str, q: asyncio.Queue) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(q)
        if not members:
            del self._rooms[room]

    def unsubscribe(self, q: asyncio.Queue) -> None:
        for room in list(self._rooms):
            self.leave(room, q)

    def rooms_with_prefix(self, prefix: str) -> list[str]:
        return [r for r, members in self._rooms.items() if r.startswith(prefix) and members]
