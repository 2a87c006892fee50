"""PostgreSQL implementation of the execution repository."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

import asyncpg

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

_EXECUTION_COLUMNS = (
    "id, workflow_id, status, trigger_data, created_at, started_at, "
    "finished_at, error_message, generation"
)
_LOG_COLUMNS = (
    "id, execution_id, node_id, status, input_data, output_data, "
    "error_message, executed_at, duration_ms"
)
_TASK_COLUMNS = (
    "id, workflow_id, cron_expression, timezone, is_active, last_run_at, next_run_at"
)
_WEBHOOK_COLUMNS = "webhook_id, workflow_id, name, is_active, created_at"


def _json(value: Any) -> Any:
    # asyncpg hands JSONB back as text unless a codec is registered
    if isinstance(value, str):
        return json.loads(value)
    return value


class PostgresExecutionRepository(ExecutionRepository):
    """Persist execution state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                definition JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                trigger_data JSONB,
                created_at TIMESTAMPTZ,
                started_at TIMESTAMPTZ,
                finished_at TIMESTAMPTZ,
                error_message TEXT,
                generation INTEGER NOT NULL DEFAULT 1
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS execution_logs (
                id SERIAL PRIMARY KEY,
                execution_id TEXT NOT NULL,
                node_id TEXT NOT NULL,
                status TEXT NOT NULL,
                input_data JSONB,
                output_data JSONB,
                error_message TEXT,
                executed_at TIMESTAMPTZ,
                duration_ms DOUBLE PRECISION
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS scheduled_tasks (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                cron_expression TEXT NOT NULL,
                timezone TEXT NOT NULL,
                is_active BOOLEAN NOT NULL,
                last_run_at TIMESTAMPTZ,
                next_run_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS webhooks (
                webhook_id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                name TEXT NOT NULL,
                is_active BOOLEAN NOT NULL,
                created_at TIMESTAMPTZ
            )
            """
        )

    async def _execute(self, query: str, *params: Any) -> None:
        conn = await self._connect()
        try:
            await conn.execute(query, *params)
        finally:
            await conn.close()

    async def _fetchrow(self, query: str, *params: Any) -> asyncpg.Record | None:
        conn = await self._connect()
        try:
            return await conn.fetchrow(query, *params)
        finally:
            await conn.close()

    async def _fetch(self, query: str, *params: Any) -> list[asyncpg.Record]:
        conn = await self._connect()
        try:
            return await conn.fetch(query, *params)
        finally:
            await conn.close()

    @staticmethod
    def _row_to_execution(r: asyncpg.Record) -> Execution:
        return Execution(
            id=r["id"],
            workflow_id=r["workflow_id"],
            status=ExecutionStatus(r["status"]),
            trigger_data=_json(r["trigger_data"]) or {},
            created_at=r["created_at"],
            started_at=r["started_at"],
            finished_at=r["finished_at"],
            error_message=r["error_message"],
            generation=r["generation"],
        )

    @staticmethod
    def _row_to_log(r: asyncpg.Record) -> ExecutionLog:
        return ExecutionLog(
            id=r["id"],
            execution_id=r["execution_id"],
            node_id=r["node_id"],
            status=LogStatus(r["status"]),
            input_data=_json(r["input_data"]) or {},
            output_data=_json(r["output_data"]),
            error_message=r["error_message"],
            executed_at=r["executed_at"],
            duration_ms=r["duration_ms"],
        )

    @staticmethod
    def _row_to_webhook(r: asyncpg.Record) -> Webhook:
        return Webhook(
            webhook_id=r["webhook_id"],
            workflow_id=r["workflow_id"],
            name=r["name"],
            is_active=r["is_active"],
            created_at=r["created_at"],
        )

    @staticmethod
    def _row_to_task(r: asyncpg.Record) -> ScheduledTask:
        return ScheduledTask(
            id=r["id"],
            workflow_id=r["workflow_id"],
            cron_expression=r["cron_expression"],
            timezone=r["timezone"],
            is_active=r["is_active"],
            last_run_at=r["last_run_at"],
            next_run_at=r["next_run_at"],
        )

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        await self._execute(
            """
            INSERT INTO workflows (id, definition) VALUES ($1, $2)
            ON CONFLICT (id) DO UPDATE SET definition = EXCLUDED.definition
            """,
            workflow.id,
            workflow.model_dump_json(),
        )

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        row = await self._fetchrow(
            "SELECT definition FROM workflows WHERE id = $1", workflow_id
        )
        return Workflow.model_validate(_json(row["definition"])) if row else None

    async def list_workflows(self) -> list[Workflow]:
        rows = await self._fetch("SELECT definition FROM workflows ORDER BY created_at")
        return [Workflow.model_validate(_json(r["definition"])) for r in rows]

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
        await self._execute(
            "INSERT INTO executions (id, workflow_id, status, trigger_data, created_at) VALUES ($1, $2, $3, $4, $5)",
            execution.id,
            execution.workflow_id,
            execution.status.value,
            json.dumps(execution.trigger_data, default=str),
            execution.created_at,
        )
        return execution

    async def get_execution(self, execution_id: str) -> Execution | None:
        row = await self._fetchrow(
            f"SELECT {_EXECUTION_COLUMNS} FROM executions WHERE id = $1", execution_id
        )
        if not row:
            return None
        execution = self._row_to_execution(row)
        execution.logs = await self.list_logs(execution_id)
        return execution

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> list[Execution]:
        rows = await self._fetch(
            f"""
            SELECT {_EXECUTION_COLUMNS} FROM executions
            WHERE ($1::text IS NULL OR workflow_id = $1)
              AND ($2::text IS NULL OR status = $2)
            ORDER BY created_at DESC
            """,
            workflow_id,
            ExecutionStatus(status).value if status is not None else None,
        )
        return [self._row_to_execution(r) for r in rows]

    async def mark_execution_running(self, execution_id: str) -> None:
        await self._execute(
            "UPDATE executions SET status = $1, started_at = $2 WHERE id = $3",
            ExecutionStatus.RUNNING.value,
            utcnow(),
            execution_id,
        )

    async def mark_execution_finished(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error_message: Optional[str] = None,
    ) -> None:
        await self._execute(
            "UPDATE executions SET status = $1, error_message = $2, finished_at = $3 WHERE id = $4",
            ExecutionStatus(status).value,
            error_message,
            utcnow(),
            execution_id,
        )

    async def reset_execution(self, execution_id: str) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    """
                    UPDATE executions
                    SET status = $1, error_message = NULL, started_at = NULL, finished_at = NULL,
                        generation = generation + 1
                    WHERE id = $2
                    """,
                    ExecutionStatus.PENDING.value,
                    execution_id,
                )
                await conn.execute(
                    "DELETE FROM execution_logs WHERE execution_id = $1", execution_id
                )
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    async def create_log(
        self, execution_id: str, node_id: str, input_data: dict[str, Any]
    ) -> ExecutionLog:
        row = await self._fetchrow(
            """
            INSERT INTO execution_logs (execution_id, node_id, status, input_data)
            VALUES ($1, $2, $3, $4) RETURNING id
            """,
            execution_id,
            node_id,
            LogStatus.RUNNING.value,
            json.dumps(input_data, default=str),
        )
        return ExecutionLog(
            id=row["id"],
            execution_id=execution_id,
            node_id=node_id,
            status=LogStatus.RUNNING,
            input_data=input_data,
        )

    async def finalize_log(
        self,
        log_id: int,
        status: LogStatus,
        output_data: dict[str, Any] | None = None,
        error_message: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ) -> None:
        await self._execute(
            """
            UPDATE execution_logs
            SET status = $1, output_data = $2, error_message = $3, executed_at = $4, duration_ms = $5
            WHERE id = $6 AND status = $7
            """,
            LogStatus(status).value,
            json.dumps(output_data, default=str) if output_data is not None else None,
            error_message,
            utcnow(),
            duration_ms,
            log_id,
            LogStatus.RUNNING.value,
        )

    async def list_logs(self, execution_id: str) -> list[ExecutionLog]:
        rows = await self._fetch(
            f"SELECT {_LOG_COLUMNS} FROM execution_logs WHERE execution_id = $1 ORDER BY id",
            execution_id,
        )
        return [self._row_to_log(r) for r in rows]

    async def clear_logs(self, execution_id: str) -> None:
        await self._execute(
            "DELETE FROM execution_logs WHERE execution_id = $1", execution_id
        )

    # ------------------------------------------------------------------
    async def save_scheduled_task(self, task: ScheduledTask) -> None:
        await self._execute(
            f"""
            INSERT INTO scheduled_tasks ({_TASK_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (id) DO UPDATE SET
                workflow_id = EXCLUDED.workflow_id,
                cron_expression = EXCLUDED.cron_expression,
                timezone = EXCLUDED.timezone,
                is_active = EXCLUDED.is_active,
                last_run_at = EXCLUDED.last_run_at,
                next_run_at = EXCLUDED.next_run_at
            """,
            task.id,
            task.workflow_id,
            task.cron_expression,
            task.timezone,
            task.is_active,
            task.last_run_at,
            task.next_run_at,
        )

    async def get_scheduled_task(self, task_id: str) -> ScheduledTask | None:
        row = await self._fetchrow(
            f"SELECT {_TASK_COLUMNS} FROM scheduled_tasks WHERE id = $1", task_id
        )
        return self._row_to_task(row) if row else None

    async def list_scheduled_tasks(self) -> list[ScheduledTask]:
        rows = await self._fetch(
            f"SELECT {_TASK_COLUMNS} FROM scheduled_tasks ORDER BY created_at"
        )
        return [self._row_to_task(r) for r in rows]

    async def list_due_tasks(self, now: datetime) -> list[ScheduledTask]:
        rows = await self._fetch(
            f"""
            SELECT {_TASK_COLUMNS} FROM scheduled_tasks
            WHERE is_active AND next_run_at IS NOT NULL AND next_run_at <= $1
            ORDER BY next_run_at
            """,
            now,
        )
        return [self._row_to_task(r) for r in rows]

    async def mark_task_run(
        self, task_id: str, last_run_at: datetime, next_run_at: datetime | None
    ) -> None:
        await self._execute(
            "UPDATE scheduled_tasks SET last_run_at = $1, next_run_at = $2 WHERE id = $3",
            last_run_at,
            next_run_at,
            task_id,
        )

    # ------------------------------------------------------------------
    async def save_webhook(self, webhook: Webhook) -> None:
        await self._execute(
            f"""
            INSERT INTO webhooks ({_WEBHOOK_COLUMNS}) VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (webhook_id) DO UPDATE SET
                workflow_id = EXCLUDED.workflow_id,
                name = EXCLUDED.name,
                is_active = EXCLUDED.is_active
            """,
            webhook.webhook_id,
            webhook.workflow_id,
            webhook.name,
            webhook.is_active,
            webhook.created_at,
        )

    async def get_webhook(self, webhook_id: str) -> Webhook | None:
        row = await self._fetchrow(
            f"SELECT {_WEBHOOK_COLUMNS} FROM webhooks WHERE webhook_id = $1", webhook_id
        )
        return self._row_to_webhook(row) if row else None

    async def list_webhooks(self, workflow_id: Optional[str] = None) -> list[Webhook]:
        rows = await self._fetch(
            f"""
            SELECT {_WEBHOOK_COLUMNS} FROM webhooks
            WHERE ($1::text IS NULL OR workflow_id = $1)
            ORDER BY created_at
            """,
            workflow_id,
        )
        return [self._row_to_webhook(r) for r in rows]

    async def delete_webhook(self, webhook_id: str) -> bool:
        row = await self._fetchrow(
            "DELETE FROM webhooks WHERE webhook_id = $1 RETURNING webhook_id", webhook_id
        )
        return row is not None
