"""Redis-backed workflow lock shared by every worker process."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

import redis.asyncio as redis

from .base import WorkflowLock

logger = logging.getLogger(__name__)

# delete only when the stored token matches the caller's
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class RedisWorkflowLock(WorkflowLock):
    """``SET NX PX`` lock keyed by workflow id.

    The lock lives in Redis, not in worker memory, so it holds across
    worker restarts and between machines consuming the same queue.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        prefix: str = "nodeflow:lock",
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.prefix = prefix
        self._redis: Optional[Any] = None

    async def _client(self) -> Any:
        if self._redis is None:
            self._redis = redis.Redis(
                host=self.host,
                port=self.port,
                db=self.db,
                password=self.password,
                decode_responses=True,
            )
        return self._redis

    def _key(self, workflow_id: str) -> str:
        return f"{self.prefix}:{workflow_id}"

    async def acquire(self, workflow_id: str, ttl: float) -> Optional[str]:
        client = await self._client()
        token = str(uuid.uuid4())
        acquired = await client.set(
            self._key(workflow_id), token, nx=True, px=max(1, int(ttl * 1000))
        )
        if acquired:
            logger.debug(f"Acquired lock for workflow {workflow_id}")
            return token
        return None

    async def release(self, workflow_id: str, token: str) -> bool:
        client = await self._client()
        released = await client.eval(_RELEASE_SCRIPT, 1, self._key(workflow_id), token)
        if not released:
            logger.warning(f"Lock for workflow {workflow_id} expired before release")
        return bool(released)

    async def is_locked(self, workflow_id: str) -> bool:
        client = await self._client()
        return bool(await client.exists(self._key(workflow_id)))

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
