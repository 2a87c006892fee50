"""Redis transport for cross-process job queues."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError

from ..constants import DEFAULT_JOB_TIMEOUT, LOCK_TTL_MARGIN
from ..contracts import ExecutionJob
from .base import BaseTransport

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport[Tuple[str, str]]):
    """Redis-based job queue.

    Ready jobs live in a list per topic. Delayed jobs wait in a sorted set
    scored by due time and are moved onto the list once due. A delivered
    job sits in a per-topic processing list, with its delivery time in a
    companion hash, until it is acked. Deliveries older than
    ``visibility_timeout`` belong to a worker that died and are put back
    on the queue by the next subscriber that looks.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        prefix: str = "nodeflow",
        visibility_timeout: float = DEFAULT_JOB_TIMEOUT + LOCK_TTL_MARGIN,
        reclaim_interval: float = 5.0,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.prefix = prefix
        self.visibility_timeout = visibility_timeout
        self.reclaim_interval = reclaim_interval
        self._redis: Optional[Any] = None

    def _key(self, topic: str, suffix: str = "") -> str:
        key = f"{self.prefix}:{topic}"
        return f"{key}:{suffix}" if suffix else key

    async def connect(self) -> None:
        """Open the client and check the server answers."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, job: ExecutionJob, delay: float = 0) -> None:
        """Publish job to the topic list, or to the delayed set when ``delay`` > 0."""
        if self._redis is None:
            await self.connect()

        payload = job.to_json()
        if delay > 0:
            await self._redis.zadd(
                self._key(topic, "delayed"), {payload: time.time() + delay}
            )
        else:
            await self._redis.lpush(self._key(topic), payload)

    async def _promote_due(self, topic: str) -> None:
        delayed_key = self._key(topic, "delayed")
        due = await self._redis.zrangebyscore(delayed_key, "-inf", time.time())
        for payload in due:
            # only the worker whose ZREM succeeds moves the job
            if await self._redis.zrem(delayed_key, payload):
                await self._redis.lpush(self._key(topic), payload)

    async def reclaim_stale(self, topic: str) -> int:
        """Requeue deliveries that were never acked within the visibility timeout.

        Returns how many jobs went back on the queue.
        """
        if self._redis is None:
            await self.connect()

        processing = self._key(topic, "processing")
        delivered = self._key(topic, "delivered")
        now = time.time()
        reclaimed = 0
        for payload in set(await self._redis.lrange(processing, 0, -1)):
            stamp = await self._redis.hget(delivered, payload)
            if stamp is None:
                # the worker died between the move and the stamp; start the clock now
                await self._redis.hsetnx(delivered, payload, now)
                continue
            if now - float(stamp) < self.visibility_timeout:
                continue
            # only the worker whose LREM succeeds requeues the job
            if await self._redis.lrem(processing, 1, payload):
                await self._redis.hdel(delivered, payload)
                await self._redis.lpush(self._key(topic), payload)
                reclaimed += 1
        if reclaimed:
            logger.warning(f"Requeued {reclaimed} unacknowledged job(s) on {topic}")
        return reclaimed

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[Tuple[str, str], ExecutionJob]]:
        """Subscribe to jobs from the Redis queue."""
        if self._redis is None:
            await self.connect()

        queue_name = self._key(topic)
        processing = self._key(topic, "processing")
        delivered = self._key(topic, "delivered")
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None
        next_reclaim = loop.time()

        while True:
            if lifespan and start_time is not None:
                if loop.time() - start_time >= lifespan:
                    break

            if loop.time() >= next_reclaim:
                await self.reclaim_stale(topic)
                next_reclaim = loop.time() + self.reclaim_interval

            await self._promote_due(topic)
            payload = await self._redis.blmove(
                queue_name, processing, timeout=1, src="RIGHT", dest="LEFT"
            )
            if payload is None:
                continue
            await self._redis.hset(delivered, payload, time.time())

            try:
                job = ExecutionJob.from_json(payload)
            except ValidationError as e:
                logger.error(f"Dropping unparseable job on {topic}: {e}")
                await self._forget(topic, payload)
                continue
            yield (topic, payload), job

    async def _forget(self, topic: str, payload: str) -> None:
        await self._redis.lrem(self._key(topic, "processing"), 1, payload)
        await self._redis.hdel(self._key(topic, "delivered"), payload)

    async def ack(self, raw_message: Tuple[str, str]) -> None:
        """Remove the job from the processing list."""
        topic, payload = raw_message
        await self._forget(topic, payload)

    async def nack(self, raw_message: Tuple[str, str], requeue: bool = True) -> None:
        topic, payload = raw_message
        await self._forget(topic, payload)
        if requeue:
            await self._redis.lpush(self._key(topic), payload)
