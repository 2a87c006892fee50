from __future__ import annotations

import os
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_BACKOFF,
    DEFAULT_JOB_TIMEOUT,
    DEFAULT_LOCK_WAIT_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_QUEUE_TOPIC,
    DEFAULT_RETRY_UNTIL,
    DEFAULT_SCHEDULER_INTERVAL,
)


class RedisConfig(BaseModel):
    """Connection settings shared by the Redis transport and lock."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Job queue settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()
    key_prefix: str = "nodeflow"


class LockConfig(BaseModel):
    """Workflow lock settings. Redis settings come from the transport section."""

    backend: Literal["inmemory", "redis"] = "inmemory"


class JobPolicy(BaseModel):
    """Timeout and retry policy applied to every execution job."""

    timeout: float = DEFAULT_JOB_TIMEOUT
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    backoff: List[float] = Field(default_factory=lambda: list(DEFAULT_BACKOFF))
    retry_until: float = DEFAULT_RETRY_UNTIL
    lock_wait_delay: float = DEFAULT_LOCK_WAIT_DELAY


class SchedulerConfig(BaseModel):
    interval: float = DEFAULT_SCHEDULER_INTERVAL


class NodeflowConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = TransportConfig()
    locks: LockConfig = LockConfig()
    jobs: JobPolicy = JobPolicy()
    scheduler: SchedulerConfig = SchedulerConfig()
    queue_topic: str = DEFAULT_QUEUE_TOPIC
    database_url: Optional[str] = None


# Environment variables that win over the config file
_ENV_OVERRIDES = {
    "database_url": ("NODEFLOW_DATABASE_URL", "DATABASE_URL"),
    "queue_topic": ("NODEFLOW_QUEUE_TOPIC",),
}


def load_config(path: Optional[str] = None) -> NodeflowConfig:
    """Read the YAML config file and apply environment overrides.

    The file is ``path``, else ``$NODEFLOW_CONFIG``, else ``config.yaml`` in
    the working directory. A missing file yields the defaults. The database
    URL may also come from ``NODEFLOW_DATABASE_URL`` or ``DATABASE_URL`` and
    the queue topic from ``NODEFLOW_QUEUE_TOPIC``.
    """
    config_path = path or os.getenv("NODEFLOW_CONFIG", "config.yaml")
    data: dict = {}
    if os.path.isfile(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

    for field, env_names in _ENV_OVERRIDES.items():
        value = next((os.environ[n] for n in env_names if os.getenv(n)), None)
        if value:
            data[field] = value
    return NodeflowConfig.model_validate(data)
