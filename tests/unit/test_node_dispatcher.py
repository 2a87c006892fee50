"""Node dispatch tests."""

import pytest

from nodeflow.contracts import Node
from nodeflow.exceptions import IntegrationError, NodeConfigurationError
from nodeflow.integrations import IntegrationRegistry
from nodeflow.nodes import NodeDispatcher


@pytest.mark.asyncio
async def test_trigger_passes_input_through():
    dispatcher = NodeDispatcher()
    node = Node(node_id="t", kind="trigger")
    data = {"a": 1}
    output = await dispatcher.execute(node, data)
    assert output == {"a": 1}
    assert output is not data


@pytest.mark.asyncio
async def test_action_resolves_config_before_invoking(integrations, http):
    dispatcher = NodeDispatcher(integrations)
    node = Node(
        node_id="call", kind="action", config={"actionType": "http", "url": "https://x/{{id}}"}
    )
    output = await dispatcher.execute(node, {"id": 42})
    assert http.calls[0]["url"] == "https://x/42"
    assert output == {"status": 200, "url": "https://x/42"}


@pytest.mark.asyncio
async def test_action_type_defaults_to_http(integrations, http):
    dispatcher = NodeDispatcher(integrations)
    node = Node(node_id="call", kind="action", config={"url": "https://x"})
    await dispatcher.execute(node, {})
    assert len(http.calls) == 1


@pytest.mark.asyncio
async def test_action_alias_maps_to_registered_executor():
    calls = []

    def send(config, data):
        calls.append(config["channel"])
        return "sent"

    dispatcher = NodeDispatcher(IntegrationRegistry({"chat_message": send}))
    node = Node(
        node_id="notify",
        kind="action",
        config={"actionType": "slack", "token": "t", "channel": "#ops"},
    )
    output = await dispatcher.execute(node, {})
    assert calls == ["#ops"]
    assert output == {"result": "sent"}


@pytest.mark.asyncio
async def test_action_missing_required_field():
    dispatcher = NodeDispatcher()
    node = Node(node_id="mail", kind="action", config={"actionType": "email", "to": "a@b"})
    with pytest.raises(NodeConfigurationError) as exc:
        await dispatcher.execute(node, {})
    assert "'subject'" in str(exc.value)
    assert "'body'" in str(exc.value)
    assert exc.value.node_id == "mail"


@pytest.mark.asyncio
async def test_action_unknown_type_and_unregistered_executor():
    dispatcher = NodeDispatcher()
    with pytest.raises(NodeConfigurationError, match="Unknown action type"):
        await dispatcher.execute(
            Node(node_id="a", kind="action", config={"actionType": "fax"}), {}
        )
    with pytest.raises(
        NodeConfigurationError, match=r"No integration executor .*\(registered: none\)"
    ):
        await dispatcher.execute(
            Node(node_id="b", kind="action", config={"url": "https://x"}), {}
        )

    def noop(config, data):
        return {}

    registry = IntegrationRegistry({"email": noop, "database": noop})
    assert list(registry.names()) == ["database", "email"]
    with pytest.raises(NodeConfigurationError, match=r"\(registered: database, email\)"):
        await NodeDispatcher(registry).execute(
            Node(node_id="c", kind="action", config={"url": "https://x"}), {}
        )


@pytest.mark.asyncio
async def test_executor_failure_becomes_integration_error():
    async def broken(config, data):
        raise RuntimeError("boom")

    dispatcher = NodeDispatcher(IntegrationRegistry({"http": broken}))
    node = Node(node_id="a", kind="action", config={"url": "https://x"})
    with pytest.raises(IntegrationError, match="http action failed: boom"):
        await dispatcher.execute(node, {})


@pytest.mark.asyncio
async def test_if_condition_adds_result_to_input():
    dispatcher = NodeDispatcher()
    node = Node(
        node_id="check",
        kind="condition",
        config={
            "conditionType": "if",
            "leftValue": "{{amount}}",
            "operator": "greater_than",
            "rightValue": "100",
        },
    )
    output = await dispatcher.execute(node, {"amount": 250})
    assert output == {"amount": 250, "condition_result": True}


@pytest.mark.asyncio
async def test_if_condition_renders_literal_operands_like_placeholders():
    dispatcher = NodeDispatcher()
    node = Node(
        node_id="flag",
        kind="condition",
        config={"leftValue": True, "operator": "equals", "rightValue": "{{paid}}"},
    )
    output = await dispatcher.execute(node, {"paid": True})
    assert output["condition_result"] is True

    node.config["leftValue"] = None
    output = await dispatcher.execute(node, {"paid": ""})
    assert output["condition_result"] is True

@pytest.mark.asyncio
async def test_unknown_node_kind():
    dispatcher = NodeDispatcher()
    with pytest.raises(NodeConfigurationError, match="Unknown node type: loop"):
        await dispatcher.execute(Node(node_id="x", kind="loop"), {})


def test_validate_reports_problems():
    dispatcher = NodeDispatcher()
    assert dispatcher.validate(Node(node_id="t", kind="trigger")) == []
    assert dispatcher.validate(
        Node(node_id="c", kind="condition", config={"conditionType": "switch"})
    ) == ["Unknown condition type: switch"]
    assert dispatcher.validate(Node(node_id="a", kind="action", config={})) == [
        "Action 'http' requires field(s) 'url'"
    ]


def test_node_accepts_editor_keys():
    node = Node.model_validate({"nodeId": "n1", "type": "action", "config": {}})
    assert node.node_id == "n1"
    assert node.kind == "action"


def test_registry_rejects_non_callables():
    with pytest.raises(TypeError):
        IntegrationRegistry({"http": 42})
