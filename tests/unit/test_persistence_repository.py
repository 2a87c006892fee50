from datetime import timedelta

import pytest

from nodeflow.contracts import Node, Workflow, utcnow
from nodeflow.persistence import (
    ExecutionStatus,
    InMemoryExecutionRepository,
    LogStatus,
    ScheduledTask,
    SQLiteExecutionRepository,
    Webhook,
)


@pytest.fixture(params=["inmemory", "sqlite"])
def repository(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteExecutionRepository(tmp_path / "runs.db")
    return InMemoryExecutionRepository()


def _workflow() -> Workflow:
    return Workflow(
        name="Order sync",
        nodes=[Node(node_id="t", kind="trigger"), Node(node_id="a", kind="action")],
    )


@pytest.mark.asyncio
async def test_workflow_round_trip(repository):
    wf = _workflow()
    await repository.save_workflow(wf)

    loaded = await repository.get_workflow(wf.id)
    assert loaded == wf
    assert [w.id for w in await repository.list_workflows()] == [wf.id]
    assert await repository.get_workflow("missing") is None

    wf.is_active = False
    await repository.save_workflow(wf)
    assert (await repository.get_workflow(wf.id)).is_active is False


@pytest.mark.asyncio
async def test_execution_lifecycle(repository):
    execution = await repository.create_execution("wf-1", {"id": 42})
    assert execution.status == ExecutionStatus.PENDING

    await repository.mark_execution_running(execution.id)
    running = await repository.get_execution(execution.id)
    assert running.status == ExecutionStatus.RUNNING
    assert running.started_at is not None
    assert running.trigger_data == {"id": 42}

    await repository.mark_execution_finished(
        execution.id, ExecutionStatus.FAILED, "boom"
    )
    failed = await repository.get_execution(execution.id)
    assert failed.status == ExecutionStatus.FAILED
    assert failed.error_message == "boom"
    assert failed.finished_at is not None


@pytest.mark.asyncio
async def test_logs_finalize_once_and_keep_order(repository):
    execution = await repository.create_execution("wf-1")
    first = await repository.create_log(execution.id, "t", {"a": 1})
    second = await repository.create_log(execution.id, "b", {"a": 1})

    await repository.finalize_log(first.id, LogStatus.SUCCESS, {"a": 1}, duration_ms=1.5)
    await repository.finalize_log(second.id, LogStatus.FAILED, error_message="bad")
    # a second finalize is ignored
    await repository.finalize_log(first.id, LogStatus.FAILED, error_message="late")

    logs = (await repository.get_execution(execution.id)).logs
    assert [log.node_id for log in logs] == ["t", "b"]
    assert logs[0].status == LogStatus.SUCCESS
    assert logs[0].output_data == {"a": 1}
    assert logs[0].duration_ms == 1.5
    assert logs[0].executed_at is not None
    assert logs[1].status == LogStatus.FAILED
    assert logs[1].error_message == "bad"


@pytest.mark.asyncio
async def test_reset_execution_clears_logs(repository):
    execution = await repository.create_execution("wf-1", {"x": 1})
    await repository.create_log(execution.id, "t", {})
    await repository.mark_execution_finished(execution.id, ExecutionStatus.FAILED, "boom")

    await repository.reset_execution(execution.id)
    reset = await repository.get_execution(execution.id)
    assert reset.status == ExecutionStatus.PENDING
    assert reset.error_message is None
    assert reset.finished_at is None
    assert reset.logs == []
    assert reset.trigger_data == {"x": 1}
    assert reset.generation == execution.generation + 1


@pytest.mark.asyncio
async def test_list_executions_filters_newest_first(repository):
    first = await repository.create_execution("wf-1")
    second = await repository.create_execution("wf-1")
    other = await repository.create_execution("wf-2")
    await repository.mark_execution_finished(first.id, ExecutionStatus.SUCCESS)

    assert [e.id for e in await repository.list_executions()] == [
        other.id,
        second.id,
        first.id,
    ]
    assert [e.id for e in await repository.list_executions(workflow_id="wf-1")] == [
        second.id,
        first.id,
    ]
    assert [
        e.id for e in await repository.list_executions(status=ExecutionStatus.SUCCESS)
    ] == [first.id]


@pytest.mark.asyncio
async def test_due_tasks(repository):
    now = utcnow()
    due = ScheduledTask(
        workflow_id="wf-1", cron_expression="* * * * *", next_run_at=now - timedelta(minutes=1)
    )
    later = ScheduledTask(
        workflow_id="wf-1", cron_expression="0 * * * *", next_run_at=now + timedelta(hours=1)
    )
    inactive = ScheduledTask(
        workflow_id="wf-1",
        cron_expression="* * * * *",
        is_active=False,
        next_run_at=now - timedelta(minutes=1),
    )
    for task in (due, later, inactive):
        await repository.save_scheduled_task(task)

    assert [t.id for t in await repository.list_due_tasks(now)] == [due.id]

    next_run = now + timedelta(minutes=1)
    await repository.mark_task_run(due.id, now, next_run)
    stored = await repository.get_scheduled_task(due.id)
    assert stored.last_run_at == now
    assert stored.next_run_at == next_run
    assert await repository.list_due_tasks(now) == []
    assert len(await repository.list_scheduled_tasks()) == 3


@pytest.mark.asyncio
async def test_webhook_round_trip(repository):
    hook = Webhook(workflow_id="wf-1", name="orders", created_at=utcnow())
    other = Webhook(workflow_id="wf-2", name="refunds", is_active=False)
    await repository.save_webhook(hook)
    await repository.save_webhook(other)

    loaded = await repository.get_webhook(hook.webhook_id)
    assert loaded == hook
    assert await repository.get_webhook("missing") is None
    assert [w.webhook_id for w in await repository.list_webhooks()] == [
        hook.webhook_id,
        other.webhook_id,
    ]
    assert [w.name for w in await repository.list_webhooks("wf-2")] == ["refunds"]

    hook.is_active = False
    await repository.save_webhook(hook)
    assert (await repository.get_webhook(hook.webhook_id)).is_active is False

    assert await repository.delete_webhook(hook.webhook_id) is True
    assert await repository.delete_webhook(hook.webhook_id) is False
    assert [w.webhook_id for w in await repository.list_webhooks()] == [other.webhook_id]
