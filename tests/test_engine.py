"""Graph traversal tests."""

import pytest
from conftest import chain, graph, http_action, trigger

from nodeflow.contracts import Connection, Node
from nodeflow.engine import WorkflowEngine
from nodeflow.exceptions import (
    CycleDetectedError,
    ExecutionCancelled,
    IntegrationError,
    NoTriggerNodesError,
)
from nodeflow.integrations import IntegrationRegistry
from nodeflow.nodes import NodeDispatcher
from nodeflow.persistence import LogStatus


async def _run(repo, integrations, workflow, trigger_data=None, **kwargs):
    engine = WorkflowEngine(repo, NodeDispatcher(integrations))
    execution = await repo.create_execution(workflow.id, trigger_data or {})
    try:
        await engine.run(workflow, execution, trigger_data or {}, **kwargs)
    finally:
        logs = await repo.list_logs(execution.id)
    return logs


@pytest.mark.asyncio
async def test_linear_chain_logs_every_node_in_order(repo, integrations, http):
    workflow = chain(trigger("t"), http_action("a"), http_action("b"))
    logs = await _run(repo, integrations, workflow, {"id": 1})

    assert [log.node_id for log in logs] == ["t", "a", "b"]
    assert all(log.status == LogStatus.SUCCESS for log in logs)
    assert all(log.duration_ms is not None for log in logs)
    assert logs[0].input_data == {"id": 1}
    assert len(http.calls) == 2


@pytest.mark.asyncio
async def test_trigger_data_reaches_action_config(repo, integrations, http):
    workflow = chain(trigger(), http_action("call", url="https://x/{{id}}"))
    logs = await _run(repo, integrations, workflow, {"id": 42})

    assert http.calls == [{"actionType": "http", "url": "https://x/42"}]
    assert logs[1].output_data == {"status": 200, "url": "https://x/42"}


@pytest.mark.asyncio
async def test_output_flows_to_next_node(repo):
    seen = []

    async def echo(config, data):
        seen.append(dict(data))
        return {"step": config["url"]}

    workflow = chain(trigger(), http_action("a", url="one"), http_action("b", url="two"))
    await _run(repo, IntegrationRegistry({"http": echo}), workflow, {"id": 7})
    assert seen == [{"id": 7}, {"step": "one"}]


@pytest.mark.asyncio
async def test_no_trigger_nodes_writes_no_logs(repo, integrations):
    workflow = chain(http_action("a"))
    with pytest.raises(NoTriggerNodesError, match="Workflow has no trigger nodes"):
        await _run(repo, integrations, workflow)
    assert await repo.list_executions() != []
    execution = (await repo.list_executions())[0]
    assert await repo.list_logs(execution.id) == []


@pytest.mark.asyncio
async def test_failing_node_stops_the_run(repo):
    async def broken(config, data):
        raise ConnectionError("connection refused")

    workflow = chain(trigger(), http_action("a"), http_action("b"))
    with pytest.raises(IntegrationError, match="http action failed: connection refused"):
        await _run(repo, IntegrationRegistry({"http": broken}), workflow)

    execution = (await repo.list_executions())[0]
    logs = await repo.list_logs(execution.id)
    assert [log.node_id for log in logs] == ["trigger", "a"]
    assert logs[1].status == LogStatus.FAILED
    assert "connection refused" in logs[1].error_message


@pytest.mark.asyncio
async def test_dangling_connection_is_skipped(repo, integrations):
    workflow = chain(trigger(), http_action("a"))
    workflow.connections.append(Connection(source_node_id="a", target_node_id="ghost"))
    logs = await _run(repo, integrations, workflow)
    assert [log.node_id for log in logs] == ["trigger", "a"]


@pytest.mark.asyncio
async def test_cycle_is_rejected(repo, integrations):
    workflow = graph(
        [trigger("t"), http_action("a"), http_action("b")],
        [("t", "a"), ("a", "b"), ("b", "a")],
    )
    with pytest.raises(CycleDetectedError) as exc:
        await _run(repo, integrations, workflow)
    assert exc.value.node_id == "a"
    assert exc.value.path == ["t", "a", "b"]


@pytest.mark.asyncio
async def test_diamond_runs_join_once_per_path(repo, integrations):
    workflow = graph(
        [trigger("t"), http_action("left"), http_action("right"), http_action("join")],
        [("t", "left"), ("t", "right"), ("left", "join"), ("right", "join")],
    )
    logs = await _run(repo, integrations, workflow)
    assert [log.node_id for log in logs] == ["t", "left", "join", "right", "join"]


@pytest.mark.asyncio
async def test_every_edge_is_followed_regardless_of_type(repo, integrations):
    workflow = graph([trigger("t"), http_action("a"), http_action("b")], [])
    workflow.connections = [
        Connection(source_node_id="t", target_node_id="a", connection_type="failure"),
        Connection(sourceNodeId="t", targetNodeId="b", connectionType="always"),
    ]
    logs = await _run(repo, integrations, workflow)
    assert [log.node_id for log in logs] == ["t", "a", "b"]


@pytest.mark.asyncio
async def test_condition_result_flows_downstream(repo):
    seen = []

    async def record(config, data):
        seen.append(dict(data))
        return {}

    check = Node(
        node_id="check",
        kind="condition",
        config={"leftValue": "{{total}}", "operator": "less_than", "rightValue": "10"},
    )
    workflow = chain(trigger(), check, http_action("a"))
    await _run(repo, IntegrationRegistry({"http": record}), workflow, {"total": 25})
    assert seen == [{"total": 25, "condition_result": False}]


@pytest.mark.asyncio
async def test_cancellation_is_checked_between_nodes(repo, integrations):
    checks = []

    async def is_cancelled():
        checks.append(True)
        return len(checks) > 2

    workflow = chain(trigger(), http_action("a"), http_action("b"))
    with pytest.raises(ExecutionCancelled):
        await _run(repo, integrations, workflow, is_cancelled=is_cancelled)

    execution = (await repo.list_executions())[0]
    logs = await repo.list_logs(execution.id)
    assert [log.node_id for log in logs] == ["trigger", "a"]
