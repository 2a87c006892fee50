"""Error taxonomy for nodeflow workflow runs."""

from __future__ import annotations


class NodeflowError(Exception):
    """Base class for all nodeflow errors."""


class WorkflowConfigurationError(NodeflowError):
    """The workflow graph or a node's configuration cannot be executed."""


class NoTriggerNodesError(WorkflowConfigurationError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__("Workflow has no trigger nodes")
        self.workflow_id = workflow_id


class NodeConfigurationError(WorkflowConfigurationError):
    """A node declares an unknown type or misses required configuration."""

    def __init__(self, node_id: str, message: str) -> None:
        super().__init__(message)
        self.node_id = node_id


class CycleDetectedError(WorkflowConfigurationError):
    def __init__(self, node_id: str, path: list[str]) -> None:
        trail = " -> ".join([*path, node_id])
        super().__init__(f"Cycle detected at node '{node_id}': {trail}")
        self.node_id = node_id
        self.path = path


class IntegrationError(NodeflowError):
    """An integration executor failed while performing its operation."""

    def __init__(self, action_type: str, message: str) -> None:
        super().__init__(message)
        self.action_type = action_type


class ExecutionTimeoutError(NodeflowError):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"Execution timed out after {timeout:g} seconds")
        self.timeout = timeout


class ExecutionCancelled(NodeflowError):
    """Raised between nodes once a stop request has been recorded."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution {execution_id} was cancelled")
        self.execution_id = execution_id


class WorkflowNotFoundError(NodeflowError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow {workflow_id} not found")
        self.workflow_id = workflow_id


class WorkflowInactiveError(NodeflowError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow {workflow_id} is not active")
        self.workflow_id = workflow_id


class ExecutionNotFoundError(NodeflowError):
    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution {execution_id} not found")
        self.execution_id = execution_id


class InvalidExecutionStateError(NodeflowError):
    """The requested transition is not allowed from the current status."""


class InvalidScheduleError(NodeflowError, ValueError):
    """A recurrence expression or timezone could not be evaluated."""


class ScheduledTaskNotFoundError(NodeflowError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Scheduled task {task_id} not found")
        self.task_id = task_id


class WebhookNotFoundError(NodeflowError):
    """No active webhook answers to the given id."""

    def __init__(self, webhook_id: str) -> None:
        super().__init__(f"Webhook {webhook_id} not found")
        self.webhook_id = webhook_id
