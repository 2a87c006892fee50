"""Recurring workflow runs driven by cron expressions."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import CroniterBadCronError, CroniterBadDateError, croniter

from .contracts import utcnow
from .dispatch import RunDispatcher
from .exceptions import InvalidScheduleError, ScheduledTaskNotFoundError
from .persistence import ExecutionRepository, ScheduledTask

logger = logging.getLogger(__name__)


def _zone(tz: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidScheduleError(f"Unknown timezone: {tz}") from e


def next_occurrence(expr: str, tz: str, after: datetime) -> datetime:
    """Next instant strictly after ``after`` matching the cron ``expr``.

    The expression is a standard 5-field cron line evaluated in ``tz``
    wall-clock time. The result is returned in UTC.
    """
    if len(expr.split()) != 5:
        raise InvalidScheduleError(f"Expected a 5-field cron expression: {expr!r}")
    if after.tzinfo is None:
        after = after.replace(tzinfo=timezone.utc)
    local = after.astimezone(_zone(tz))
    try:
        nxt = croniter(expr, local).get_next(datetime)
    except (CroniterBadCronError, CroniterBadDateError, ValueError, KeyError) as e:
        raise InvalidScheduleError(f"Invalid cron expression {expr!r}: {e}") from e
    return nxt.astimezone(timezone.utc)


class Scheduler:
    """Finds due scheduled tasks and submits a run for each."""

    def __init__(self, repository: ExecutionRepository, dispatcher: RunDispatcher) -> None:
        self._repository = repository
        self._dispatcher = dispatcher

    async def create_task(
        self,
        workflow_id: str,
        cron_expression: str,
        timezone: str = "UTC",
        is_active: bool = True,
        now: Optional[datetime] = None,
    ) -> ScheduledTask:
        now = now or utcnow()
        task = ScheduledTask(
            workflow_id=workflow_id,
            cron_expression=cron_expression,
            timezone=timezone,
            is_active=is_active,
            next_run_at=next_occurrence(cron_expression, timezone, now),
        )
        await self._repository.save_scheduled_task(task)
        logger.info(
            f"Scheduled workflow {workflow_id} with '{cron_expression}' ({timezone}), "
            f"next run at {task.next_run_at.isoformat()}"
        )
        return task

    async def update_task(
        self,
        task_id: str,
        cron_expression: Optional[str] = None,
        timezone: Optional[str] = None,
        is_active: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> ScheduledTask:
        """Change a task; ``next_run_at`` follows any change to when it fires."""
        task = await self._repository.get_scheduled_task(task_id)
        if task is None:
            raise ScheduledTaskNotFoundError(task_id)

        recompute = False
        if cron_expression is not None and cron_expression != task.cron_expression:
            task.cron_expression = cron_expression
            recompute = True
        if timezone is not None and timezone != task.timezone:
            task.timezone = timezone
            recompute = True
        if is_active is not None and is_active != task.is_active:
            task.is_active = is_active
            recompute = recompute or is_active

        if recompute:
            task.next_run_at = next_occurrence(
                task.cron_expression, task.timezone, now or utcnow()
            )
        await self._repository.save_scheduled_task(task)
        return task

    async def sweep(self, now: Optional[datetime] = None) -> list[str]:
        """Submit a run for every due task.

        Returns the ids of the executions that were created. A task that
        fails to fire is logged and does not stop the rest of the sweep.
        """
        now = now or utcnow()
        due = await self._repository.list_due_tasks(now)
        if not due:
            logger.debug("No scheduled workflows are due")
            return []

        logger.info(f"Found {len(due)} scheduled workflow(s) to execute")
        execution_ids: list[str] = []
        for task in due:
            try:
                execution_id = await self._fire(task, now)
            except Exception:
                logger.exception(
                    f"Failed to fire scheduled task {task.id} for workflow {task.workflow_id}"
                )
                continue
            if execution_id is not None:
                execution_ids.append(execution_id)
        return execution_ids

    async def _fire(self, task: ScheduledTask, now: datetime) -> Optional[str]:
        next_run_at = next_occurrence(task.cron_expression, task.timezone, now)
        workflow = await self._repository.get_workflow(task.workflow_id)
        if workflow is None or not workflow.is_active:
            logger.info(
                f"Skipping scheduled task {task.id}: workflow {task.workflow_id} "
                f"is {'missing' if workflow is None else 'inactive'}"
            )
            await self._repository.mark_task_run(task.id, task.last_run_at or now, next_run_at)
            return None

        trigger_data = {
            "trigger_type": "schedule",
            "scheduled_task_id": task.id,
            "cron_expression": task.cron_expression,
            "timezone": task.timezone,
            "scheduled_for": task.next_run_at.isoformat() if task.next_run_at else None,
            "executed_at": now.isoformat(),
        }
        execution = await self._dispatcher.create_execution(task.workflow_id, trigger_data)
        await self._repository.mark_task_run(task.id, now, next_run_at)
        await self._dispatcher.enqueue(execution)
        logger.info(
            f"Scheduled workflow execution dispatched: task={task.id} "
            f"execution_id={execution.id} next_run_at={next_run_at.isoformat()}"
        )
        return execution.id

    async def run(self, interval: float = 60.0, lifespan: Optional[float] = None) -> None:
        """Sweep every ``interval`` seconds until ``lifespan`` expires."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        while True:
            await self.sweep()
            if lifespan is not None and loop.time() - started + interval > lifespan:
                break
            await asyncio.sleep(interval)
