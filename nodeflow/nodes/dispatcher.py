"""Dispatch a node to the operation its kind and subtype declare."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from ..contracts import Node, NodeKind
from ..exceptions import IntegrationError, NodeConfigurationError, NodeflowError
from ..integrations import IntegrationRegistry
from ..variables import render, resolve, resolve_value
from . import conditions
from .schemas import (
    CONDITION_TYPES,
    DEFAULT_ACTION_TYPE,
    DEFAULT_CONDITION_TYPE,
    canonical_action_type,
    missing_fields,
)

logger = logging.getLogger(__name__)


class NodeDispatcher:
    """Executes a single node against its input data bag."""

    def __init__(self, integrations: IntegrationRegistry | None = None) -> None:
        self._integrations = integrations or IntegrationRegistry()

    @property
    def integrations(self) -> IntegrationRegistry:
        return self._integrations

    async def execute(self, node: Node, input_data: Mapping[str, Any]) -> Dict[str, Any]:
        """Run ``node`` and return its output data bag.

        Raises:
            NodeConfigurationError: unknown kind or subtype, or a required
                config field is missing.
            IntegrationError: the action's executor failed.
        """
        if node.kind == NodeKind.TRIGGER.value:
            return self._execute_trigger(node, input_data)
        if node.kind == NodeKind.ACTION.value:
            return await self._execute_action(node, input_data)
        if node.kind == NodeKind.CONDITION.value:
            return self._execute_condition(node, input_data)
        raise NodeConfigurationError(node.node_id, f"Unknown node type: {node.kind}")

    def validate(self, node: Node) -> list[str]:
        """Return configuration problems for ``node`` without running it."""
        try:
            if node.kind == NodeKind.ACTION.value:
                self._action_type(node)
            elif node.kind == NodeKind.CONDITION.value:
                self._condition_type(node)
            elif node.kind != NodeKind.TRIGGER.value:
                return [f"Unknown node type: {node.kind}"]
        except NodeConfigurationError as e:
            return [str(e)]
        return []

    # ------------------------------------------------------------------
    def _execute_trigger(self, node: Node, input_data: Mapping[str, Any]) -> Dict[str, Any]:
        return dict(input_data)

    def _action_type(self, node: Node) -> str:
        declared = node.config.get("actionType") or DEFAULT_ACTION_TYPE
        action_type = canonical_action_type(declared)
        if action_type is None:
            raise NodeConfigurationError(node.node_id, f"Unknown action type: {declared}")
        missing = missing_fields(action_type, node.config)
        if missing:
            fields = ", ".join(f"'{f}'" for f in missing)
            raise NodeConfigurationError(
                node.node_id, f"Action '{action_type}' requires field(s) {fields}"
            )
        return action_type

    async def _execute_action(
        self, node: Node, input_data: Mapping[str, Any]
    ) -> Dict[str, Any]:
        action_type = self._action_type(node)
        if action_type not in self._integrations:
            available = ", ".join(self._integrations.names()) or "none"
            raise NodeConfigurationError(
                node.node_id,
                f"No integration executor registered for '{action_type}' "
                f"(registered: {available})",
            )

        config = resolve_value(node.config, input_data)
        try:
            result = await self._integrations.invoke(action_type, config, input_data)
        except NodeflowError:
            raise
        except Exception as e:
            raise IntegrationError(action_type, f"{action_type} action failed: {e}") from e

        if isinstance(result, Mapping):
            return dict(result)
        return {"result": result}

    def _condition_type(self, node: Node) -> str:
        condition_type = node.config.get("conditionType") or DEFAULT_CONDITION_TYPE
        if condition_type not in CONDITION_TYPES:
            raise NodeConfigurationError(
                node.node_id, f"Unknown condition type: {condition_type}"
            )
        return condition_type

    def _execute_condition(
        self, node: Node, input_data: Mapping[str, Any]
    ) -> Dict[str, Any]:
        if self._condition_type(node) == "filter":
            return self._execute_filter(node, input_data)

        config = node.config
        left = _operand(config.get("leftValue"), input_data)
        right = _operand(config.get("rightValue"), input_data)
        operator = config.get("operator") or "equals"
        result = conditions.evaluate(operator, left, right)
        logger.debug(f"Condition {node.node_id}: {left!r} {operator} {right!r} -> {result}")
        return {**input_data, "condition_result": result}

    def _execute_filter(self, node: Node, input_data: Mapping[str, Any]) -> Dict[str, Any]:
        # TODO: apply field/operator/value rules once filter semantics are settled
        return dict(input_data)


def _operand(value: Any, input_data: Mapping[str, Any]) -> str:
    # literals render the same way a placeholder resolving to them would
    if isinstance(value, str):
        return resolve(value, input_data)
    return render(value)
