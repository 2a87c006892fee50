"""Scheduled run tests."""

from datetime import datetime, timedelta, timezone

import pytest
from conftest import chain, http_action, trigger

from nodeflow import RunDispatcher, Scheduler, next_occurrence
from nodeflow.exceptions import InvalidScheduleError, ScheduledTaskNotFoundError
from nodeflow.persistence import ExecutionStatus
from nodeflow.transports import InMemoryTransport

UTC = timezone.utc


@pytest.fixture
def transport():
    return InMemoryTransport()


@pytest.fixture
def scheduler(repo, transport):
    return Scheduler(repo, RunDispatcher(repo, transport, topic="executions"))


def test_next_occurrence_is_strictly_after():
    after = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
    assert next_occurrence("0 9 * * *", "UTC", after) == datetime(2026, 3, 3, 9, 0, tzinfo=UTC)
    assert next_occurrence("*/15 * * * *", "UTC", after) == datetime(
        2026, 3, 2, 9, 15, tzinfo=UTC
    )


def test_next_occurrence_uses_task_timezone():
    # 09:00 in Berlin is 08:00 UTC in winter and 07:00 UTC in summer
    winter = datetime(2026, 1, 10, 0, 0, tzinfo=UTC)
    summer = datetime(2026, 7, 10, 0, 0, tzinfo=UTC)
    assert next_occurrence("0 9 * * *", "Europe/Berlin", winter) == datetime(
        2026, 1, 10, 8, 0, tzinfo=UTC
    )
    assert next_occurrence("0 9 * * *", "Europe/Berlin", summer) == datetime(
        2026, 7, 10, 7, 0, tzinfo=UTC
    )


def test_next_occurrence_treats_naive_as_utc():
    naive = datetime(2026, 3, 2, 9, 0)
    assert next_occurrence("30 9 * * *", "UTC", naive) == datetime(
        2026, 3, 2, 9, 30, tzinfo=UTC
    )


@pytest.mark.parametrize(
    "expr,tz",
    [
        ("* * * *", "UTC"),
        ("* * * * * *", "UTC"),
        ("61 * * * *", "UTC"),
        ("not a cron at all", "UTC"),
        ("0 9 * * *", "Mars/Olympus_Mons"),
    ],
)
def test_invalid_schedules(expr, tz):
    with pytest.raises(InvalidScheduleError):
        next_occurrence(expr, tz, datetime(2026, 1, 1, tzinfo=UTC))


@pytest.mark.asyncio
async def test_sweep_fires_due_task_once(repo, transport, scheduler):
    workflow = chain(trigger(), http_action("a"))
    await repo.save_workflow(workflow)
    created = datetime(2026, 3, 2, 8, 59, tzinfo=UTC)
    task = await scheduler.create_task(workflow.id, "0 9 * * *", now=created)
    assert task.next_run_at == datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

    now = datetime(2026, 3, 2, 9, 0, 30, tzinfo=UTC)
    execution_ids = await scheduler.sweep(now=now)

    assert len(execution_ids) == 1
    execution = await repo.get_execution(execution_ids[0])
    assert execution.status == ExecutionStatus.PENDING
    assert execution.trigger_data["trigger_type"] == "schedule"
    assert execution.trigger_data["scheduled_task_id"] == task.id
    assert execution.trigger_data["cron_expression"] == "0 9 * * *"
    assert transport.pending("executions") == 1

    stored = await repo.get_scheduled_task(task.id)
    assert stored.last_run_at == now
    assert stored.next_run_at == datetime(2026, 3, 3, 9, 0, tzinfo=UTC)
    assert stored.next_run_at > now

    # nothing left to do in the same minute
    assert await scheduler.sweep(now=now + timedelta(seconds=10)) == []


@pytest.mark.asyncio
async def test_idle_sweep_does_nothing(repo, scheduler):
    assert await scheduler.sweep() == []
    assert await repo.list_executions() == []


@pytest.mark.asyncio
async def test_inactive_workflow_is_skipped_but_rescheduled(repo, transport, scheduler):
    workflow = chain(trigger(), http_action("a"))
    workflow.is_active = False
    await repo.save_workflow(workflow)
    created = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)
    task = await scheduler.create_task(workflow.id, "0 * * * *", now=created)

    now = datetime(2026, 3, 2, 9, 0, 5, tzinfo=UTC)
    assert await scheduler.sweep(now=now) == []
    assert await repo.list_executions() == []
    assert transport.pending("executions") == 0
    stored = await repo.get_scheduled_task(task.id)
    assert stored.next_run_at == datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_one_broken_task_does_not_stop_the_sweep(repo, scheduler):
    workflow = chain(trigger(), http_action("a"))
    await repo.save_workflow(workflow)
    created = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)
    broken = await scheduler.create_task(workflow.id, "0 * * * *", now=created)
    healthy = await scheduler.create_task(workflow.id, "0 * * * *", now=created)

    stored = await repo.get_scheduled_task(broken.id)
    stored.cron_expression = "bogus"
    await repo.save_scheduled_task(stored)

    now = datetime(2026, 3, 2, 9, 0, 5, tzinfo=UTC)
    execution_ids = await scheduler.sweep(now=now)
    assert len(execution_ids) == 1
    execution = await repo.get_execution(execution_ids[0])
    assert execution.trigger_data["scheduled_task_id"] == healthy.id


@pytest.mark.asyncio
async def test_update_task_recomputes_next_run(repo, scheduler):
    workflow = chain(trigger())
    await repo.save_workflow(workflow)
    now = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)
    task = await scheduler.create_task(workflow.id, "0 12 * * *", now=now)
    assert task.next_run_at == datetime(2026, 3, 2, 12, 0, tzinfo=UTC)

    updated = await scheduler.update_task(task.id, cron_expression="30 8 * * *", now=now)
    assert updated.next_run_at == datetime(2026, 3, 2, 8, 30, tzinfo=UTC)

    moved = await scheduler.update_task(task.id, timezone="America/New_York", now=now)
    # 08:30 in New York (EST) is 13:30 UTC
    assert moved.next_run_at == datetime(2026, 3, 2, 13, 30, tzinfo=UTC)

    paused = await scheduler.update_task(task.id, is_active=False, now=now)
    assert paused.is_active is False
    assert paused.next_run_at == moved.next_run_at

    with pytest.raises(ScheduledTaskNotFoundError, match="Scheduled task missing not found"):
        await scheduler.update_task("missing", is_active=True)


@pytest.mark.asyncio
async def test_create_task_rejects_invalid_expression(repo, scheduler):
    with pytest.raises(InvalidScheduleError):
        await scheduler.create_task("wf", "every day")
    assert await repo.list_scheduled_tasks() == []
