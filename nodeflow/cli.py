"""Command line interface for running nodeflow workers and managing runs."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError

from nodeflow import (
    ExecutionJobRunner,
    ExecutionWorker,
    RunDispatcher,
    Scheduler,
    Workflow,
    get_lock,
    get_repository,
    get_transport,
)
from nodeflow.config import load_config
from nodeflow.exceptions import NodeflowError
from nodeflow.persistence import Execution, ExecutionStatus

app = typer.Typer(help="CLI for nodeflow workflows")

# Command groups
worker_app = typer.Typer(help="Commands for running execution workers")
scheduler_app = typer.Typer(help="Commands for scheduled workflow runs")
workflow_app = typer.Typer(help="Commands for managing workflows")
execution_app = typer.Typer(help="Commands for inspecting and controlling executions")
webhook_app = typer.Typer(help="Commands for managing workflow webhooks")

app.add_typer(worker_app, name="worker")
app.add_typer(scheduler_app, name="scheduler")
app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")
app.add_typer(webhook_app, name="webhook")


@app.callback()
def main(
    log_level: str = typer.Option("INFO", help="Logging level for nodeflow output"),
) -> None:
    """Nodeflow CLI entry point."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _dispatcher() -> RunDispatcher:
    config = load_config()
    return RunDispatcher(get_repository(), get_transport(), topic=config.queue_topic)


def _format_execution(execution: Execution) -> str:
    return f"{execution.id}\t{execution.workflow_id}\t{execution.status.value}"


@worker_app.command("run")
def worker_run(
    concurrency: int = typer.Option(1, help="Jobs processed at the same time"),
    lifespan: Optional[float] = typer.Option(
        None, help="Worker timeout in seconds (default: run indefinitely)"
    ),
) -> None:
    """
    Run a worker that executes queued workflow runs.

    The worker connects to the configured transport, lock and repository.
    Runs of the same workflow never overlap, even across workers.

    Example:
        nodeflow worker run
        nodeflow worker run --concurrency 4 --lifespan 300
    """
    config = load_config()
    transport = get_transport(config=config)
    lock = get_lock(config=config)
    runner = ExecutionJobRunner(
        get_repository(),
        transport,
        lock,
        policy=config.jobs,
        topic=config.queue_topic,
    )
    worker = ExecutionWorker(
        transport, runner, topic=config.queue_topic, concurrency=concurrency
    )
    typer.echo(f"Starting worker on '{config.queue_topic}'")

    async def serve() -> None:
        async with transport:
            try:
                await worker.start(lifespan=lifespan)
            finally:
                await lock.close()

    asyncio.run(serve())
    typer.echo(f"Worker stopped after {worker.processed} job(s)")


@scheduler_app.command("add")
def scheduler_add(
    workflow_id: str,
    cron_expression: str,
    timezone: str = typer.Option("UTC", help="IANA timezone the expression runs in"),
) -> None:
    """
    Schedule a workflow with a 5-field cron expression.

    Example:
        nodeflow scheduler add abc123 "0 9 * * 1-5" --timezone Europe/Berlin
    """
    scheduler = Scheduler(get_repository(), _dispatcher())
    try:
        task = asyncio.run(scheduler.create_task(workflow_id, cron_expression, timezone))
    except NodeflowError as e:
        _fail(str(e))
    typer.echo(f"Scheduled task {task.id}: next run at {task.next_run_at.isoformat()}")


@scheduler_app.command("list")
def scheduler_list() -> None:
    """List scheduled tasks with their next run time."""
    tasks = asyncio.run(get_repository().list_scheduled_tasks())
    if not tasks:
        typer.echo("No scheduled tasks found")
        return
    for task in tasks:
        next_run = task.next_run_at.isoformat() if task.next_run_at else "-"
        state = "active" if task.is_active else "inactive"
        typer.echo(
            f"{task.id}\t{task.workflow_id}\t{task.cron_expression}\t"
            f"{task.timezone}\t{state}\t{next_run}"
        )


@scheduler_app.command("sweep")
def scheduler_sweep() -> None:
    """Submit a run for every scheduled task that is due now."""
    scheduler = Scheduler(get_repository(), _dispatcher())
    execution_ids = asyncio.run(scheduler.sweep())
    if not execution_ids:
        typer.echo("No scheduled workflows are due")
        return
    for execution_id in execution_ids:
        typer.echo(f"Submitted execution {execution_id}")


@scheduler_app.command("run")
def scheduler_run(
    interval: Optional[float] = typer.Option(
        None, help="Seconds between sweeps (default from config)"
    ),
    lifespan: Optional[float] = typer.Option(
        None, help="Scheduler timeout in seconds (default: run indefinitely)"
    ),
) -> None:
    """Sweep for due scheduled tasks in a loop."""
    config = load_config()
    scheduler = Scheduler(get_repository(), _dispatcher())
    interval = interval if interval is not None else config.scheduler.interval
    typer.echo(f"Starting scheduler with a {interval:g}s interval")
    asyncio.run(scheduler.run(interval=interval, lifespan=lifespan))


@workflow_app.command("import")
def workflow_import(path: Path) -> None:
    """
    Store a workflow definition from a JSON or YAML file.

    Node and connection keys may use the editor's camelCase or snake_case.

    Example:
        nodeflow workflow import ./flows/order_sync.json
    """
    if not path.exists():
        _fail("Specified path does not exist")

    text = path.read_text()
    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
        workflow = Workflow.model_validate(data or {})
    except (json.JSONDecodeError, yaml.YAMLError, ValidationError) as e:
        _fail(f"Invalid workflow definition: {e}")

    asyncio.run(get_repository().save_workflow(workflow))
    typer.echo(f"Imported workflow {workflow.id} ({len(workflow.nodes)} nodes)")


@workflow_app.command("list")
def workflow_list() -> None:
    """List stored workflows."""
    workflows = asyncio.run(get_repository().list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        state = "active" if wf.is_active else "inactive"
        typer.echo(f"{wf.id}\t{wf.name}\t{state}")


@workflow_app.command("submit")
def workflow_submit(
    workflow_id: str,
    data: Optional[str] = typer.Option(None, help="JSON object used as trigger data"),
) -> None:
    """
    Queue a manual run of a workflow.

    Example:
        nodeflow workflow submit abc123 --data '{"id": 42}'
    """
    trigger_data = {}
    if data:
        try:
            trigger_data = json.loads(data)
        except json.JSONDecodeError as e:
            _fail(f"Invalid JSON for --data: {e}")
        if not isinstance(trigger_data, dict):
            _fail("--data must be a JSON object")

    try:
        execution_id = asyncio.run(_dispatcher().submit_run(workflow_id, trigger_data))
    except NodeflowError as e:
        _fail(str(e))
    typer.echo(f"Execution submitted: {execution_id}")


@execution_app.command("list")
def execution_list(
    workflow: Optional[str] = typer.Option(None, help="Only runs of this workflow"),
    status: Optional[ExecutionStatus] = typer.Option(None, help="Only runs in this status"),
) -> None:
    """List executions, newest first."""
    executions = asyncio.run(get_repository().list_executions(workflow, status))
    if not executions:
        typer.echo("No executions found")
        return
    for execution in executions:
        typer.echo(_format_execution(execution))


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """
    Show an execution and its per-node logs.

    Example:
        nodeflow execution show 9f1c...
        # Output: Execution 9f1c...: failed
        #         Error: http action failed: connection refused
        #         - trigger_1: success (0.4 ms)
        #         - http_1: failed - http action failed: connection refused
    """
    execution = asyncio.run(get_repository().get_execution(execution_id))
    if execution is None:
        _fail("Execution not found")

    typer.echo(f"Execution {execution.id}: {execution.status.value}")
    typer.echo(f"Workflow: {execution.workflow_id}")
    if execution.trigger_data:
        typer.echo(f"Trigger data: {json.dumps(execution.trigger_data, default=str)}")
    if execution.error_message:
        typer.echo(f"Error: {execution.error_message}")
    for log in execution.logs:
        line = f"- {log.node_id}: {log.status.value}"
        if log.duration_ms is not None:
            line += f" ({log.duration_ms:g} ms)"
        if log.error_message:
            line += f" - {log.error_message}"
        typer.echo(line)


@execution_app.command("retry")
def execution_retry(execution_id: str) -> None:
    """Run a failed or cancelled execution again."""
    try:
        execution = asyncio.run(_dispatcher().retry_execution(execution_id))
    except NodeflowError as e:
        _fail(str(e))
    typer.echo(f"Execution {execution.id} queued for retry")


@execution_app.command("stop")
def execution_stop(execution_id: str) -> None:
    """Cancel a pending or running execution."""
    try:
        execution = asyncio.run(_dispatcher().stop_execution(execution_id))
    except NodeflowError as e:
        _fail(str(e))
    typer.echo(f"Execution {execution.id}: {execution.status.value}")


@webhook_app.command("create")
def webhook_create(
    workflow_id: str,
    name: str = typer.Option(..., help="Label shown when listing webhooks"),
    inactive: bool = typer.Option(False, "--inactive", help="Create the webhook switched off"),
) -> None:
    """
    Open a webhook endpoint for a workflow.

    Example:
        nodeflow webhook create order-sync --name "Shop orders"
        # Output: Created webhook 3b0f... for workflow order-sync
    """
    try:
        webhook = asyncio.run(
            _dispatcher().create_webhook(workflow_id, name, is_active=not inactive)
        )
    except NodeflowError as e:
        _fail(str(e))
    typer.echo(f"Created webhook {webhook.webhook_id} for workflow {workflow_id}")


@webhook_app.command("list")
def webhook_list(
    workflow: Optional[str] = typer.Option(None, help="Only webhooks of this workflow"),
) -> None:
    """List webhooks."""
    webhooks = asyncio.run(get_repository().list_webhooks(workflow))
    if not webhooks:
        typer.echo("No webhooks found")
        return
    for webhook in webhooks:
        state = "active" if webhook.is_active else "inactive"
        typer.echo(
            f"{webhook.webhook_id}\t{webhook.workflow_id}\t{webhook.name}\t{state}"
        )


@webhook_app.command("enable")
def webhook_enable(webhook_id: str) -> None:
    """Accept calls on a webhook again."""
    _set_webhook_active(webhook_id, True)


@webhook_app.command("disable")
def webhook_disable(webhook_id: str) -> None:
    """Reject calls on a webhook without deleting it."""
    _set_webhook_active(webhook_id, False)


def _set_webhook_active(webhook_id: str, active: bool) -> None:
    try:
        webhook = asyncio.run(_dispatcher().update_webhook(webhook_id, is_active=active))
    except NodeflowError as e:
        _fail(str(e))
    state = "active" if webhook.is_active else "inactive"
    typer.echo(f"Webhook {webhook.webhook_id}: {state}")


@webhook_app.command("delete")
def webhook_delete(webhook_id: str) -> None:
    """Remove a webhook endpoint."""
    try:
        asyncio.run(_dispatcher().delete_webhook(webhook_id))
    except NodeflowError as e:
        _fail(str(e))
    typer.echo(f"Deleted webhook {webhook_id}")


@webhook_app.command("call")
def webhook_call(
    webhook_id: str,
    data: Optional[str] = typer.Option(None, help="JSON request body"),
    method: str = typer.Option("POST", help="HTTP method recorded with the call"),
) -> None:
    """
    Deliver a webhook call from the command line.

    The body is available to nodes as ``{{body.<field>}}``.

    Example:
        nodeflow webhook call 3b0f... --data '{"order": 7}'
    """
    body = {}
    if data:
        try:
            body = json.loads(data)
        except json.JSONDecodeError as e:
            _fail(f"Invalid JSON for --data: {e}")

    try:
        execution_id = asyncio.run(
            _dispatcher().submit_webhook(webhook_id, body, method=method)
        )
    except NodeflowError as e:
        _fail(str(e))
    typer.echo(f"Execution submitted: {execution_id}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
