"""Process-local workflow lock for tests and single-worker deployments."""

from __future__ import annotations

import asyncio
import uuid
from typing import Dict, Optional, Tuple

from .base import WorkflowLock


class InMemoryWorkflowLock(WorkflowLock):
    def __init__(self) -> None:
        self._held: Dict[str, Tuple[str, float]] = {}
        self._guard = asyncio.Lock()

    @staticmethod
    def _now() -> float:
        return asyncio.get_running_loop().time()

    async def acquire(self, workflow_id: str, ttl: float) -> Optional[str]:
        async with self._guard:
            held = self._held.get(workflow_id)
            if held is not None and held[1] > self._now():
                return None
            token = str(uuid.uuid4())
            self._held[workflow_id] = (token, self._now() + ttl)
            return token

    async def release(self, workflow_id: str, token: str) -> bool:
        async with self._guard:
            held = self._held.get(workflow_id)
            if held is None or held[0] != token:
                return False
            del self._held[workflow_id]
            return True

    async def is_locked(self, workflow_id: str) -> bool:
        held = self._held.get(workflow_id)
        return held is not None and held[1] > self._now()
