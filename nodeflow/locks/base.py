"""Named exclusive locks keyed by workflow id."""

from __future__ import annotations

import abc
from typing import Optional


class WorkflowLock(metaclass=abc.ABCMeta):
    """At most one holder per workflow id at any time.

    ``acquire`` never blocks: it returns a token when the lock was taken and
    ``None`` when another holder has it. Locks expire after ``ttl`` seconds
    so a holder that dies does not block the workflow forever.
    """

    @abc.abstractmethod
    async def acquire(self, workflow_id: str, ttl: float) -> Optional[str]:
        raise NotImplementedError

    @abc.abstractmethod
    async def release(self, workflow_id: str, token: str) -> bool:
        """Release the lock if ``token`` still owns it."""
        raise NotImplementedError

    @abc.abstractmethod
    async def is_locked(self, workflow_id: str) -> bool:
        raise NotImplementedError

    async def close(self) -> None:
        pass
