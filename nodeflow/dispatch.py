"""Run submission and control: manual and webhook runs, retry and stop requests."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from .constants import DEFAULT_QUEUE_TOPIC
from .contracts import ExecutionJob, utcnow
from .exceptions import (
    ExecutionNotFoundError,
    InvalidExecutionStateError,
    WebhookNotFoundError,
    WorkflowInactiveError,
    WorkflowNotFoundError,
)
from .persistence import Execution, ExecutionRepository, ExecutionStatus, Webhook
from .transports import BaseTransport

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (ExecutionStatus.FAILED, ExecutionStatus.CANCELLED)
STOPPABLE_STATUSES = (ExecutionStatus.PENDING, ExecutionStatus.RUNNING)


class RunDispatcher:
    """Creates execution records and puts their jobs on the queue."""

    def __init__(
        self,
        repository: ExecutionRepository,
        transport: BaseTransport,
        topic: str = DEFAULT_QUEUE_TOPIC,
    ) -> None:
        self._repository = repository
        self._transport = transport
        self._topic = topic

    async def create_execution(
        self, workflow_id: str, trigger_data: Optional[Mapping[str, Any]] = None
    ) -> Execution:
        """Persist a pending execution for an active workflow without enqueuing it."""
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        if not workflow.is_active:
            raise WorkflowInactiveError(workflow_id)
        return await self._repository.create_execution(
            workflow_id, dict(trigger_data or {}), status=ExecutionStatus.PENDING
        )

    async def enqueue(self, execution: Execution) -> ExecutionJob:
        job = ExecutionJob(
            execution_id=execution.id,
            workflow_id=execution.workflow_id,
            generation=execution.generation,
        )
        await self._transport.publish(self._topic, job)
        logger.info(
            f"Enqueued execution_id={execution.id} for workflow_id={execution.workflow_id}"
        )
        return job

    async def submit_run(
        self, workflow_id: str, trigger_data: Optional[Mapping[str, Any]] = None
    ) -> str:
        """Create and enqueue a run of ``workflow_id``.

        Args:
            workflow_id: Workflow to run.
            trigger_data: Initial data bag for every trigger node.

        Returns:
            Identifier of the new execution.
        """
        execution = await self.create_execution(workflow_id, trigger_data)
        await self.enqueue(execution)
        return execution.id

    async def create_webhook(
        self, workflow_id: str, name: str, is_active: bool = True
    ) -> Webhook:
        """Open a webhook endpoint for ``workflow_id`` under a fresh public id."""
        if await self._repository.get_workflow(workflow_id) is None:
            raise WorkflowNotFoundError(workflow_id)
        webhook = Webhook(
            workflow_id=workflow_id, name=name, is_active=is_active, created_at=utcnow()
        )
        await self._repository.save_webhook(webhook)
        logger.info(f"Created webhook {webhook.webhook_id} for workflow_id={workflow_id}")
        return webhook

    async def update_webhook(
        self,
        webhook_id: str,
        name: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Webhook:
        webhook = await self._repository.get_webhook(webhook_id)
        if webhook is None:
            raise WebhookNotFoundError(webhook_id)
        if name is not None:
            webhook.name = name
        if is_active is not None:
            webhook.is_active = is_active
        await self._repository.save_webhook(webhook)
        return webhook

    async def delete_webhook(self, webhook_id: str) -> None:
        if not await self._repository.delete_webhook(webhook_id):
            raise WebhookNotFoundError(webhook_id)
        logger.info(f"Deleted webhook {webhook_id}")

    async def list_webhooks(self, workflow_id: Optional[str] = None) -> list[Webhook]:
        return await self._repository.list_webhooks(workflow_id)

    async def submit_webhook(
        self,
        webhook_id: str,
        body: Any = None,
        headers: Optional[Mapping[str, Any]] = None,
        method: str = "POST",
        ip: Optional[str] = None,
    ) -> str:
        """Submit a run for a call received on webhook ``webhook_id``.

        Unknown and deactivated webhooks are both reported as not found.
        The request lands in the trigger data as ``body``, ``headers``,
        ``method``, ``ip`` and ``timestamp``, so nodes read the payload
        through ``{{body.<field>}}``.
        """
        webhook = await self._repository.get_webhook(webhook_id)
        if webhook is None or not webhook.is_active:
            raise WebhookNotFoundError(webhook_id)

        trigger_data: Dict[str, Any] = {
            "trigger_type": "webhook",
            "webhook_id": webhook.webhook_id,
            "headers": dict(headers or {}),
            "body": body if body is not None else {},
            "method": method.upper(),
            "ip": ip,
            "timestamp": utcnow().isoformat(),
        }
        return await self.submit_run(webhook.workflow_id, trigger_data)

    async def retry_execution(self, execution_id: str) -> Execution:
        """Reset a failed or cancelled execution and run it again.

        The execution keeps its identity and trigger data; its logs are
        cleared and a fresh job starts from attempt one.
        """
        execution = await self._require(execution_id)
        if execution.status not in RETRYABLE_STATUSES:
            raise InvalidExecutionStateError(
                "Can only retry failed or cancelled executions "
                f"(execution {execution_id} is {execution.status.value})"
            )
        # the reset bumps the generation, which retires any job still queued
        # from the previous run
        await self._repository.reset_execution(execution_id)
        execution = await self._require(execution_id)
        await self.enqueue(execution)
        logger.info(f"Retry requested for execution_id={execution_id}")
        return execution

    async def stop_execution(self, execution_id: str) -> Execution:
        """Mark a pending or running execution as cancelled.

        In-flight integration calls are not interrupted; the worker stops
        before starting the next node.
        """
        execution = await self._require(execution_id)
        if execution.status not in STOPPABLE_STATUSES:
            raise InvalidExecutionStateError(
                "Can only stop pending or running executions "
                f"(execution {execution_id} is {execution.status.value})"
            )
        await self._repository.mark_execution_finished(
            execution_id, ExecutionStatus.CANCELLED, "Execution stopped by request"
        )
        logger.info(f"Stop requested for execution_id={execution_id}")
        return await self._require(execution_id)

    async def get_execution(self, execution_id: str) -> Execution:
        """Return an execution with its logs in the order nodes ran."""
        return await self._require(execution_id)

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> list[Execution]:
        return await self._repository.list_executions(workflow_id, status)

    async def _require(self, execution_id: str) -> Execution:
        execution = await self._repository.get_execution(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        return execution
