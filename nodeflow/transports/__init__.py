"""Job queue backends and the factory that picks one from configuration."""

from __future__ import annotations

import logging
import os
from typing import Callable, Dict, Optional

from ..config import NodeflowConfig, load_config
from ..constants import LOCK_TTL_MARGIN
from .base import BaseTransport
from .inmemory import InMemoryTransport

logger = logging.getLogger(__name__)


def _redis_transport(config: NodeflowConfig) -> BaseTransport:
    from .redis import RedisTransport

    redis_conf = config.transport.redis
    return RedisTransport(
        host=redis_conf.host,
        port=redis_conf.port,
        db=redis_conf.db,
        password=redis_conf.password,
        prefix=config.transport.key_prefix,
        # a delivery outlives any attempt only if its worker is gone
        visibility_timeout=config.jobs.timeout + LOCK_TTL_MARGIN,
    )


_BACKENDS: Dict[str, Callable[[NodeflowConfig], BaseTransport]] = {
    "inmemory": lambda config: InMemoryTransport(),
    "redis": _redis_transport,
}


def get_transport(
    backend: Optional[str] = None, config: Optional[NodeflowConfig] = None
) -> BaseTransport:
    """Build the job queue named by ``backend``.

    Without an explicit backend the ``NODEFLOW_TRANSPORT`` environment
    variable is consulted, then ``transport.backend`` from the config file.
    """
    config = config or load_config()
    name = (backend or os.getenv("NODEFLOW_TRANSPORT") or config.transport.backend).lower()
    factory = _BACKENDS.get(name)
    if factory is None:
        raise ValueError(f"Unsupported transport backend: {name}")
    logger.debug(f"Using '{name}' transport")
    return factory(config)


__all__ = ["BaseTransport", "InMemoryTransport", "get_transport"]
