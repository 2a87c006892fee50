"""In-memory transport for testing and single-process use."""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, List, Optional, Tuple

from ..contracts import ExecutionJob
from .base import BaseTransport

_Raw = Tuple[str, str]


class InMemoryTransport(BaseTransport[_Raw]):
    """Simple in-process queue with support for delayed jobs."""

    def __init__(self, poll_interval: float = 0.05) -> None:
        self._queues: Dict[str, Deque[_Raw]] = defaultdict(deque)
        self._delayed: Dict[str, List[Tuple[float, int, _Raw]]] = defaultdict(list)
        self._counter = itertools.count()
        self._lock = asyncio.Lock()
        self._poll_interval = poll_interval

    @staticmethod
    def _now() -> float:
        return asyncio.get_running_loop().time()

    async def publish(self, topic: str, job: ExecutionJob, delay: float = 0) -> None:
        """Publish job to in-memory queue."""
        raw = (topic, job.to_json())
        async with self._lock:
            if delay > 0:
                heapq.heappush(
                    self._delayed[topic], (self._now() + delay, next(self._counter), raw)
                )
            else:
                self._queues[topic].append(raw)

    def pending(self, topic: str) -> int:
        """Number of jobs waiting on ``topic``, delayed ones included."""
        return len(self._queues[topic]) + len(self._delayed[topic])

    def _promote_due(self, topic: str) -> None:
        delayed = self._delayed[topic]
        now = self._now()
        while delayed and delayed[0][0] <= now:
            _, _, raw = heapq.heappop(delayed)
            self._queues[topic].append(raw)

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[_Raw, ExecutionJob]]:
        """Subscribe to jobs from topic.

        Args:
            topic: The topic to subscribe to
            lifespan: Maximum time in seconds to keep connection open. If None, runs indefinitely.
        """
        start_time = self._now() if lifespan else None

        while True:
            if lifespan and start_time is not None:
                if self._now() - start_time >= lifespan:
                    break

            async with self._lock:
                self._promote_due(topic)
                raw = self._queues[topic].popleft() if self._queues[topic] else None

            if raw is not None:
                yield raw, ExecutionJob.from_json(raw[1])
                continue

            await asyncio.sleep(self._poll_interval)

    async def ack(self, raw_message: _Raw) -> None:
        """No-op acknowledgment for in-memory transport."""
        pass

    async def nack(self, raw_message: _Raw, requeue: bool = True) -> None:
        if requeue:
            topic, payload = raw_message
            async with self._lock:
                self._queues[topic].append((topic, payload))
