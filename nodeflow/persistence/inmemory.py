"""In-memory implementation of the execution repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..contracts import Workflow, utcnow
from .models import (
    Execution,
    ExecutionLog,
    ExecutionStatus,
    LogStatus,
    ScheduledTask,
    Webhook,
)
from .repository import ExecutionRepository


class InMemoryExecutionRepository(ExecutionRepository):
    """Store execution state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in
    and out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}
        self._executions: Dict[str, Execution] = {}
        self._logs: Dict[str, List[ExecutionLog]] = {}
        self._tasks: Dict[str, ScheduledTask] = {}
        self._webhooks: Dict[str, Webhook] = {}
        self._log_id = 0

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def list_workflows(self) -> list[Workflow]:
        return [wf.model_copy(deep=True) for wf in self._workflows.values()]

    # ------------------------------------------------------------------
    async def create_execution(
        self,
        workflow_id: str,
        trigger_data: dict[str, Any] | None = None,
        status: ExecutionStatus = ExecutionStatus.PENDING,
    ) -> Execution:
        execution = Execution(
            workflow_id=workflow_id,
            status=status,
            trigger_data=trigger_data or {},
            created_at=utcnow(),
        )
        self._executions[execution.id] = execution.model_copy(deep=True)
        self._logs[execution.id] = []
        return execution

    async def get_execution(self, execution_id: str) -> Execution | None:
        execution = self._executions.get(execution_id)
        if execution is None:
            return None
        result = execution.model_copy(deep=True)
        result.logs = await self.list_logs(execution_id)
        return result

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> list[Execution]:
        executions = [
            e.model_copy(deep=True)
            for e in self._executions.values()
            if (workflow_id is None or e.workflow_id == workflow_id)
            and (status is None or e.status == status)
        ]
        # dict order is creation order; newest first
        return list(reversed(executions))

    async def mark_execution_running(self, execution_id: str) -> None:
        execution = self._executions.get(execution_id)
        if execution:
            execution.status = ExecutionStatus.RUNNING
            execution.started_at = utcnow()

    async def mark_execution_finished(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error_message: Optional[str] = None,
    ) -> None:
        execution = self._executions.get(execution_id)
        if execution:
            execution.status = status
            execution.error_message = error_message
            execution.finished_at = utcnow()

    async def reset_execution(self, execution_id: str) -> None:
        execution = self._executions.get(execution_id)
        if execution:
            execution.status = ExecutionStatus.PENDING
            execution.error_message = None
            execution.started_at = None
            execution.finished_at = None
            execution.generation += 1
            self._logs[execution_id] = []

    # ------------------------------------------------------------------
    async def create_log(
        self, execution_id: str, node_id: str, input_data: dict[str, Any]
    ) -> ExecutionLog:
        self._log_id += 1
        log = ExecutionLog(
            id=self._log_id,
            execution_id=execution_id,
            node_id=node_id,
            status=LogStatus.RUNNING,
            input_data=input_data,
        )
        self._logs.setdefault(execution_id, []).append(log.model_copy(deep=True))
        return log

    async def finalize_log(
        self,
        log_id: int,
        status: LogStatus,
        output_data: dict[str, Any] | None = None,
        error_message: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ) -> None:
        for logs in self._logs.values():
            for log in logs:
                if log.id == log_id and log.status == LogStatus.RUNNING:
                    log.status = status
                    log.output_data = output_data
                    log.error_message = error_message
                    log.executed_at = utcnow()
                    log.duration_ms = duration_ms
                    return

    async def list_logs(self, execution_id: str) -> list[ExecutionLog]:
        return [log.model_copy(deep=True) for log in self._logs.get(execution_id, [])]

    async def clear_logs(self, execution_id: str) -> None:
        self._logs[execution_id] = []

    # ------------------------------------------------------------------
    async def save_scheduled_task(self, task: ScheduledTask) -> None:
        self._tasks[task.id] = task.model_copy(deep=True)

    async def get_scheduled_task(self, task_id: str) -> ScheduledTask | None:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def list_scheduled_tasks(self) -> list[ScheduledTask]:
        return [t.model_copy(deep=True) for t in self._tasks.values()]

    async def list_due_tasks(self, now: datetime) -> list[ScheduledTask]:
        return [
            t.model_copy(deep=True)
            for t in self._tasks.values()
            if t.is_active and t.next_run_at is not None and t.next_run_at <= now
        ]

    async def mark_task_run(
        self, task_id: str, last_run_at: datetime, next_run_at: datetime | None
    ) -> None:
        task = self._tasks.get(task_id)
        if task:
            task.last_run_at = last_run_at
            task.next_run_at = next_run_at

    # ------------------------------------------------------------------
    async def save_webhook(self, webhook: Webhook) -> None:
        self._webhooks[webhook.webhook_id] = webhook.model_copy(deep=True)

    async def get_webhook(self, webhook_id: str) -> Webhook | None:
        webhook = self._webhooks.get(webhook_id)
        return webhook.model_copy(deep=True) if webhook else None

    async def list_webhooks(self, workflow_id: Optional[str] = None) -> list[Webhook]:
        return [
            w.model_copy(deep=True)
            for w in self._webhooks.values()
            if workflow_id is None or w.workflow_id == workflow_id
        ]

    async def delete_webhook(self, webhook_id: str) -> bool:
        return self._webhooks.pop(webhook_id, None) is not None
