"""
Persistence ports for browser-local state: a keyed snapshot store and a
broadcast invalidation channel. Controllers receive these injected and never
touch process-global state.
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import redis.asyncio as aioredis

from app.config import settings

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], Awaitable[None]]


class SnapshotStore:
    async def load(self, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def save(self, key: str, value: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError


class InvalidationChannel:
    async def publish(self, event: str) -> None:
        raise NotImplementedError

    async def subscribe(self, event: str, on_invalidate: Callable[[], None]) -> Unsubscribe:
        raise NotImplementedError


class MemorySnapshotStore(SnapshotStore):
    """In-process store; values are round-tripped through JSON like the Redis store."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def load(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def save(self, key: str, value: Dict[str, Any]) -> None:
        self._data[key] = json.dumps(value, default=str)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class LocalInvalidationChannel(InvalidationChannel):
    """Fan-out to subscribers inside this process."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Callable[[], None]]] = {}

    async def publish(self, event: str) -> None:
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback()
            except Exception:
                logger.exception("Invalidation subscriber failed for %s", event)

    async def subscribe(self, event: str, on_invalidate: Callable[[], None]) -> Unsubscribe:
        self._subscribers.setdefault(event, []).append(on_invalidate)

        async def unsubscribe() -> None:
            callbacks = self._subscribers.get(event, [])
            if on_invalidate in callbacks:
                callbacks.remove(on_invalidate)

        return unsubscribe

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))


class RedisSnapshotStore(SnapshotStore):
    """Redis key/value store with TTL; values are JSON documents."""

    def __init__(self, client: aioredis.Redis, ttl: int = settings.SNAPSHOT_TTL_SECONDS):
        self.client = client
        self.ttl = ttl

    async def load(self, key: str) -> Optional[Dict[str, Any]]:
        value = await self.client.get(key)
        if value:
            return json.loads(value)
        return None

    async def save(self, key: str, value: Dict[str, Any]) -> None:
        serialized = json.dumps(value, default=str)
        await self.client.setex(key, self.ttl, serialized)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)


class RedisInvalidationChannel(InvalidationChannel):
    """Cross-process broadcast over Redis pub/sub."""

    def __init__(self, client: aioredis.Redis):
        self.client = client

    async def publish(self, event: str) -> None:
        await self.client.publish(event, "1")

    async def subscribe(self, event: str, on_invalidate: Callable[[], None]) -> Unsubscribe:
        pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(event)

        async def listen() -> None:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    on_invalidate()
                except Exception:
                    logger.exception("Invalidation subscriber failed for %s", event)

        task = asyncio.get_running_loop().create_task(listen())

        async def unsubscribe() -> None:
            task.cancel()
            await pubsub.unsubscribe(event)
            await pubsub.aclose()

        return unsubscribe


def build_backends(backend: Optional[str] = None):
    """Return (SnapshotStore, InvalidationChannel) for the configured backend."""
    backend = (backend or settings.SNAPSHOT_BACKEND or "memory").lower()
    if backend == "redis":
        client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
        )
        logger.info("Using Redis snapshot store and invalidation channel")
        return RedisSnapshotStore(client), RedisInvalidationChannel(client)
    if backend != "memory":
        raise ValueError(f"Unknown SNAPSHOT_BACKEND: {backend}")
    return MemorySnapshotStore(), LocalInvalidationChannel()
