"""Per-workflow exclusive locks."""

from __future__ import annotations

import os
from typing import Optional

from ..config import NodeflowConfig, load_config
from .base import WorkflowLock
from .inmemory import InMemoryWorkflowLock


def get_lock(
    backend: Optional[str] = None, config: Optional[NodeflowConfig] = None
) -> WorkflowLock:
    """Build the workflow lock named by ``backend``.

    Falls back to ``NODEFLOW_LOCKS`` and then ``locks.backend``. The Redis
    lock shares the transport's connection settings and key prefix, so a
    worker needs only one Redis section in its config file.
    """
    config = config or load_config()
    name = (backend or os.getenv("NODEFLOW_LOCKS") or config.locks.backend).lower()

    if name == "inmemory":
        return InMemoryWorkflowLock()
    if name == "redis":
        from .redis import RedisWorkflowLock

        redis_conf = config.transport.redis
        return RedisWorkflowLock(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            prefix=f"{config.transport.key_prefix}:lock",
        )
    raise ValueError(f"Unsupported lock backend: {name}")


__all__ = ["WorkflowLock", "InMemoryWorkflowLock", "get_lock"]
