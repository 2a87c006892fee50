"""Execution job wrapper: one attempt at one execution, end to end.

The runner owns the lifecycle of an execution record while a job for it
is being processed:

- at most one attempt per workflow runs at a time (``WorkflowLock``);
  a job that finds the lock taken goes back on the queue and waits
- every attempt is bounded by ``JobPolicy.timeout``
- failed attempts are re-enqueued with the policy's backoff until
  ``max_attempts`` or the retry horizon is reached
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

from .config import JobPolicy
from .constants import DEFAULT_QUEUE_TOPIC, LOCK_TTL_MARGIN
from .contracts import ExecutionJob, utcnow
from .engine import WorkflowEngine
from .exceptions import ExecutionCancelled, ExecutionTimeoutError, WorkflowNotFoundError
from .locks import WorkflowLock
from .persistence import Execution, ExecutionRepository, ExecutionStatus
from .transports import BaseTransport
from .utils.retry import next_attempt_due

logger = logging.getLogger(__name__)


class JobOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    RETRYING = "retrying"
    FAILED = "failed"
    CANCELLED = "cancelled"
    WAITING = "waiting"
    SKIPPED = "skipped"


class ExecutionJobRunner:
    """Runs execution jobs taken off the queue."""

    def __init__(
        self,
        repository: ExecutionRepository,
        transport: BaseTransport,
        lock: WorkflowLock,
        engine: WorkflowEngine | None = None,
        policy: JobPolicy | None = None,
        topic: str = DEFAULT_QUEUE_TOPIC,
    ) -> None:
        self._repository = repository
        self._transport = transport
        self._lock = lock
        self._engine = engine or WorkflowEngine(repository)
        self._policy = policy or JobPolicy()
        self._topic = topic

    async def handle(self, job: ExecutionJob) -> JobOutcome:
        """Process ``job`` and report what happened to it."""
        token = await self._lock.acquire(
            job.workflow_id, ttl=self._policy.timeout + LOCK_TTL_MARGIN
        )
        if token is None:
            logger.debug(
                f"Workflow {job.workflow_id} busy, delaying execution_id={job.execution_id}"
            )
            await self._transport.publish(
                self._topic, job.redelivery(), delay=self._policy.lock_wait_delay
            )
            return JobOutcome.WAITING

        try:
            execution = await self._repository.get_execution(job.execution_id)
            if execution is None:
                logger.error(f"Execution not found: execution_id={job.execution_id}")
                return JobOutcome.SKIPPED
            if execution.status in (ExecutionStatus.CANCELLED, ExecutionStatus.SUCCESS):
                logger.info(
                    f"Skipping job for execution_id={execution.id} in status {execution.status.value}"
                )
                return JobOutcome.SKIPPED
            if job.generation != execution.generation:
                logger.info(
                    f"Dropping stale job for execution_id={execution.id} "
                    f"(generation {job.generation}, current {execution.generation})"
                )
                return JobOutcome.SKIPPED
            return await self._run_attempt(job, execution)
        finally:
            await self._lock.release(job.workflow_id, token)

    async def _run_attempt(self, job: ExecutionJob, execution: Execution) -> JobOutcome:
        if execution.logs:
            # every attempt replays the whole graph
            await self._repository.clear_logs(execution.id)
        await self._repository.mark_execution_running(execution.id)
        logger.info(
            f"Starting workflow execution: workflow_id={job.workflow_id} "
            f"execution_id={execution.id} attempt={job.attempt}"
        )

        try:
            workflow = await self._repository.get_workflow(execution.workflow_id)
            if workflow is None:
                raise WorkflowNotFoundError(execution.workflow_id)
            await asyncio.wait_for(
                self._engine.run(
                    workflow,
                    execution,
                    execution.trigger_data,
                    is_cancelled=lambda: self._is_cancelled(execution.id),
                ),
                timeout=self._policy.timeout,
            )
        except ExecutionCancelled:
            logger.info(f"Workflow execution cancelled: execution_id={execution.id}")
            return JobOutcome.CANCELLED
        except asyncio.TimeoutError:
            return await self._handle_failure(
                job, execution, ExecutionTimeoutError(self._policy.timeout)
            )
        except Exception as e:
            return await self._handle_failure(job, execution, e)

        if await self._finish(execution.id, ExecutionStatus.SUCCESS):
            logger.info(
                f"Workflow execution completed successfully: execution_id={execution.id}"
            )
            return JobOutcome.SUCCEEDED
        return JobOutcome.CANCELLED

    async def _handle_failure(
        self, job: ExecutionJob, execution: Execution, error: Exception
    ) -> JobOutcome:
        message = str(error) or type(error).__name__
        logger.error(
            f"Workflow execution failed: execution_id={execution.id} "
            f"attempt={job.attempt} error={message}"
        )
        if not await self._finish(execution.id, ExecutionStatus.FAILED, message):
            return JobOutcome.CANCELLED

        delay = next_attempt_due(
            job.attempt,
            self._policy.max_attempts,
            self._policy.backoff,
            job.first_enqueued_at,
            self._policy.retry_until,
            utcnow(),
        )
        if delay is None:
            await self.failed(job, message)
            return JobOutcome.FAILED

        logger.info(
            f"Retrying execution_id={execution.id} in {delay:g}s "
            f"(attempt {job.attempt + 1} of {self._policy.max_attempts})"
        )
        await self._transport.publish(self._topic, job.bump_attempt(), delay=delay)
        return JobOutcome.RETRYING

    async def failed(self, job: ExecutionJob, message: str) -> None:
        """Record a permanent failure. Safe to call more than once."""
        logger.error(
            f"Workflow job failed permanently: workflow_id={job.workflow_id} "
            f"execution_id={job.execution_id} attempts={job.attempt} error={message}"
        )
        await self._finish(job.execution_id, ExecutionStatus.FAILED, message)

    async def abandon(self, job: ExecutionJob, error: Exception) -> None:
        """Fail the execution of a job whose handling crashed part way.

        Leaves the record alone when it already reached a terminal status
        or was reset for a newer run since the job was queued.
        """
        execution = await self._repository.get_execution(job.execution_id)
        if execution is None or execution.status.is_terminal:
            return
        if execution.generation != job.generation:
            return
        await self.failed(job, str(error) or type(error).__name__)

    async def _finish(
        self, execution_id: str, status: ExecutionStatus, error_message: Optional[str] = None
    ) -> bool:
        # a stop request that landed mid-run wins over the run's own outcome
        if await self._is_cancelled(execution_id):
            return False
        await self._repository.mark_execution_finished(execution_id, status, error_message)
        return True

    async def _is_cancelled(self, execution_id: str) -> bool:
        execution = await self._repository.get_execution(execution_id)
        return execution is not None and execution.status == ExecutionStatus.CANCELLED
