"""Tests for configuration loading."""

from nodeflow.config import load_config
from nodeflow.locks import InMemoryWorkflowLock, get_lock
from nodeflow.locks.redis import RedisWorkflowLock
from nodeflow.persistence import (
    InMemoryExecutionRepository,
    SQLiteExecutionRepository,
    get_repository,
)
from nodeflow.transports import InMemoryTransport, get_transport
from nodeflow.transports.redis import RedisTransport


def test_defaults_without_config_file():
    config = load_config()
    assert config.transport.backend == "inmemory"
    assert config.jobs.timeout == 600
    assert config.jobs.max_attempts == 3
    assert config.jobs.backoff == [30, 60, 120]
    assert config.jobs.retry_until == 1800
    assert config.queue_topic == "executions"
    assert config.database_url is None


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  redis:
    host: testhost
    port: 1234
jobs:
  timeout: 30
  backoff: [1, 2]
scheduler:
  interval: 15
"""
    )
    monkeypatch.setenv("NODEFLOW_CONFIG", str(config_path))

    config = load_config()
    assert config.transport.backend == "redis"
    assert config.transport.redis.host == "testhost"
    assert config.transport.redis.port == 1234
    assert config.jobs.timeout == 30
    assert config.jobs.backoff == [1, 2]
    assert config.jobs.max_attempts == 3
    assert config.scheduler.interval == 15


def test_database_url_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite:///from-file.db\n")
    monkeypatch.setenv("NODEFLOW_CONFIG", str(config_path))
    monkeypatch.setenv("NODEFLOW_DATABASE_URL", "sqlite:///from-env.db")

    assert load_config().database_url == "sqlite:///from-env.db"


def test_get_transport_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  redis:
    host: confighost
    port: 6380
"""
    )
    monkeypatch.setenv("NODEFLOW_CONFIG", str(config_path))

    transport = get_transport()
    assert isinstance(transport, RedisTransport)
    assert transport.host == "confighost"
    assert transport.port == 6380
    # deliveries are reclaimed only after the longest possible attempt
    assert transport.visibility_timeout == 600 + 60

    lock = get_lock(backend="redis")
    assert isinstance(lock, RedisWorkflowLock)
    assert lock.host == "confighost"


def test_inmemory_backends_by_default():
    assert isinstance(get_transport(), InMemoryTransport)
    assert isinstance(get_lock(), InMemoryWorkflowLock)


def test_get_repository_selects_backend(tmp_path):
    assert isinstance(get_repository(), InMemoryExecutionRepository)

    db_path = tmp_path / "runs.db"
    repo = get_repository(f"sqlite://{db_path}")
    assert isinstance(repo, SQLiteExecutionRepository)
    assert repo.db_path == str(db_path)
    # cached for later callers without arguments
    assert get_repository() is repo


def test_queue_topic_env_override(monkeypatch):
    monkeypatch.setenv("NODEFLOW_QUEUE_TOPIC", "runs-eu")
    assert load_config().queue_topic == "runs-eu"
