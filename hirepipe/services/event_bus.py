"""
Activity fan-out for live listeners.

Every process keeps its own listener queues. With a Redis URL configured,
published activity goes through one pub/sub channel and each process relays
what it receives to its local queues; without one, publishing delivers
straight to the local queues.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator, Dict

import redis.asyncio as redis
from redis.exceptions import RedisError

from hirepipe.core.config import settings

logger = logging.getLogger(__name__)


def encode_activity(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


class ActivityFanout:
    def __init__(self, redis_url: str = "", channel: str = "hirepipe:activity", backlog: int = 200) -> None:
        self.channel = channel
        self.backlog = backlog
        self._redis_url = (redis_url or "").strip()
        self._client: redis.Redis | None = None
        self._relay_task: asyncio.Task | None = None
        self._listeners: list[asyncio.Queue[str]] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def deliver(self, data: str) -> None:
        for listener in self._listeners:
            if listener.full():
                # Lagging listener loses its oldest entry.
                with suppress(asyncio.QueueEmpty):
                    listener.get_nowait()
            listener.put_nowait(data)

    def _redis(self) -> redis.Redis | None:
        if not self._redis_url:
            return None
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def _start_relay(self, client: redis.Redis) -> None:
        if self._relay_task is None or self._relay_task.done():
            self._relay_task = asyncio.create_task(self._relay(client))

    async def _relay(self, client: redis.Redis) -> None:
        try:
            async with client.pubsub(ignore_subscribe_messages=True) as pubsub:
                await pubsub.subscribe(self.channel)
                async for message in pubsub.listen():
                    if message.get("type") == "message":
                        self.deliver(message["data"])
        except RedisError:
            logger.exception("activity_relay_stopped", extra={"channel": self.channel})

    @asynccontextmanager
    async def listen(self) -> AsyncIterator[asyncio.Queue[str]]:
        listener: asyncio.Queue[str] = asyncio.Queue(maxsize=self.backlog)
        self._listeners.append(listener)
        client = self._redis()
        if client is not None:
            self._start_relay(client)
        try:
            yield listener
        finally:
            self._listeners.remove(listener)

    async def publish(self, payload: Dict[str, Any]) -> None:
        data = encode_activity(payload)
        client = self._redis()
        if client is not None:
            self._start_relay(client)
            try:
                await client.publish(self.channel, data)
                return
            except RedisError:
                logger.warning("activity_publish_fell_back_to_local", extra={"channel": self.channel})
        self.deliver(data)


activity_fanout = ActivityFanout(redis_url=settings.redis_url, channel=settings.event_channel)
