"""Nodeflow: queued, retryable execution of visual node-graph workflows."""

from .contracts import Connection, ExecutionJob, Node, NodeKind, Workflow
from .dispatch import RunDispatcher
from .engine import WorkflowEngine
from .execute import ExecutionWorker
from .integrations import IntegrationRegistry
from .jobs import ExecutionJobRunner, JobOutcome
from .locks import get_lock
from .nodes import NodeDispatcher
from .persistence import get_repository
from .scheduler import Scheduler, next_occurrence
from .transports import get_transport

__version__ = "0.1.0"
__all__ = [
    "Connection",
    "ExecutionJob",
    "Node",
    "NodeKind",
    "Workflow",
    "RunDispatcher",
    "WorkflowEngine",
    "ExecutionWorker",
    "IntegrationRegistry",
    "ExecutionJobRunner",
    "JobOutcome",
    "NodeDispatcher",
    "Scheduler",
    "next_occurrence",
    "get_lock",
    "get_repository",
    "get_transport",
]
