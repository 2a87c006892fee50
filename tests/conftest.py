"""Shared fixtures for nodeflow tests."""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

import nodeflow.persistence as persistence
from nodeflow.contracts import Connection, Node, Workflow
from nodeflow.integrations import IntegrationRegistry
from nodeflow.persistence import InMemoryExecutionRepository


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from any local config file, env settings or cached repository."""
    monkeypatch.setenv("NODEFLOW_CONFIG", str(tmp_path / "missing-config.yaml"))
    for name in (
        "NODEFLOW_DATABASE_URL",
        "DATABASE_URL",
        "NODEFLOW_TRANSPORT",
        "NODEFLOW_LOCKS",
        "NODEFLOW_QUEUE_TOPIC",
    ):
        monkeypatch.delenv(name, raising=False)
    persistence.reset_repository()
    yield
    persistence.reset_repository()


@pytest.fixture
def repo() -> InMemoryExecutionRepository:
    return InMemoryExecutionRepository()


def trigger(node_id: str = "trigger") -> Node:
    return Node(node_id=node_id, kind="trigger", label="Start")


def http_action(node_id: str, url: str = "https://example.com", **config: Any) -> Node:
    return Node(
        node_id=node_id,
        kind="action",
        config={"actionType": "http", "url": url, **config},
    )


def chain(*nodes: Node, workflow_id: Optional[str] = None) -> Workflow:
    """Workflow whose nodes are connected in the order given."""
    connections = [
        Connection(source_node_id=a.node_id, target_node_id=b.node_id)
        for a, b in zip(nodes, nodes[1:])
    ]
    kwargs: Dict[str, Any] = {"nodes": list(nodes), "connections": connections}
    if workflow_id:
        kwargs["id"] = workflow_id
    return Workflow(**kwargs)


def graph(nodes: List[Node], edges: List[Tuple[str, str]]) -> Workflow:
    return Workflow(
        nodes=nodes,
        connections=[Connection(source_node_id=s, target_node_id=t) for s, t in edges],
    )


class RecordingHttp:
    """Fake ``http`` executor that remembers every call it receives."""

    def __init__(self, fail_times: int = 0, delay: float = 0.0) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.fail_times = fail_times
        self.delay = delay

    async def execute(self, config, data):
        self.calls.append(dict(config))
        if self.delay:
            await asyncio.sleep(self.delay)
        if len(self.calls) <= self.fail_times:
            raise ConnectionError("connection refused")
        return {"status": 200, "url": config["url"]}


@pytest.fixture
def http() -> RecordingHttp:
    return RecordingHttp()


@pytest.fixture
def integrations(http) -> IntegrationRegistry:
    return IntegrationRegistry({"http": http})
