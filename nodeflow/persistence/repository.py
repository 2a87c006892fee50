"""Repository abstraction for execution state persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol

from ..contracts import Workflow
from .models import (
    Execution,
    ExecutionLog,
    ExecutionStatus,
    LogStatus,
    ScheduledTask,
    Webhook,
)


class ExecutionRepository(Protocol):
    """Protocol for workflow, execution, log, schedule and webhook persistence backends."""

    # Workflows ---------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        """Insert or replace a workflow definition."""

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        """Retrieve a workflow definition by id."""

    async def list_workflows(self) -> list[Workflow]:
        """Return all stored workflow definitions."""

    # Executions --------------------------------------------------------
    async def create_execution(
        self,
        workflow_id: str,
        trigger_data: dict[str, Any] | None = None,
        status: ExecutionStatus = ExecutionStatus.PENDING,
    ) -> Execution:
        """Persist a new execution record."""

    async def get_execution(self, execution_id: str) -> Execution | None:
        """Retrieve an execution with its logs in insertion order."""

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> list[Execution]:
        """Return executions, newest first, without logs."""

    async def mark_execution_running(self, execution_id: str) -> None:
        """Set status running and stamp ``started_at``."""

    async def mark_execution_finished(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error_message: Optional[str] = None,
    ) -> None:
        """Set a terminal status and stamp ``finished_at``."""

    async def reset_execution(self, execution_id: str) -> None:
        """Return an execution to pending, drop its logs and bump its generation."""

    # Logs --------------------------------------------------------------
    async def create_log(
        self, execution_id: str, node_id: str, input_data: dict[str, Any]
    ) -> ExecutionLog:
        """Record the start of a node attempt."""

    async def finalize_log(
        self,
        log_id: int,
        status: LogStatus,
        output_data: dict[str, Any] | None = None,
        error_message: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ) -> None:
        """Record the outcome of a node attempt. Finalized logs are not changed."""

    async def list_logs(self, execution_id: str) -> list[ExecutionLog]:
        """Return logs for an execution in insertion order."""

    async def clear_logs(self, execution_id: str) -> None:
        """Delete every log of an execution."""

    # Scheduled tasks ---------------------------------------------------
    async def save_scheduled_task(self, task: ScheduledTask) -> None:
        """Insert or replace a scheduled task."""

    async def get_scheduled_task(self, task_id: str) -> ScheduledTask | None:
        """Retrieve a scheduled task by id."""

    async def list_scheduled_tasks(self) -> list[ScheduledTask]:
        """Return all scheduled tasks."""

    async def list_due_tasks(self, now: datetime) -> list[ScheduledTask]:
        """Return active tasks whose ``next_run_at`` is at or before ``now``."""

    async def mark_task_run(
        self, task_id: str, last_run_at: datetime, next_run_at: datetime | None
    ) -> None:
        """Record a fire of the task and its next due time."""

    # Webhooks ----------------------------------------------------------
    async def save_webhook(self, webhook: Webhook) -> None:
        """Insert or replace a webhook endpoint."""

    async def get_webhook(self, webhook_id: str) -> Webhook | None:
        """Retrieve a webhook by its public id, active or not."""

    async def list_webhooks(self, workflow_id: Optional[str] = None) -> list[Webhook]:
        """Return webhooks, optionally only those of one workflow."""

    async def delete_webhook(self, webhook_id: str) -> bool:
        """Remove a webhook. Returns whether one was removed."""
