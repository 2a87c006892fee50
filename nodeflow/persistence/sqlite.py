"""SQLite implementation of the execution repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

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


def _ts(value: datetime | None) -> str | None:
    """Store timestamps as fixed-width UTC ISO strings so they sort lexically."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _json(value: str | None) -> Any:
    return json.loads(value) if value else None


class SQLiteExecutionRepository(ExecutionRepository):
    """Persist execution state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                definition TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                trigger_data TEXT,
                created_at TEXT,
                started_at TEXT,
                finished_at TEXT,
                error_message TEXT,
                generation INTEGER NOT NULL DEFAULT 1
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS execution_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                execution_id TEXT NOT NULL,
                node_id TEXT NOT NULL,
                status TEXT NOT NULL,
                input_data TEXT,
                output_data TEXT,
                error_message TEXT,
                executed_at TEXT,
                duration_ms REAL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_execution_logs_execution ON execution_logs (execution_id)"
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS scheduled_tasks (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                cron_expression TEXT NOT NULL,
                timezone TEXT NOT NULL,
                is_active INTEGER NOT NULL,
                last_run_at TEXT,
                next_run_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS webhooks (
                webhook_id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                name TEXT NOT NULL,
                is_active INTEGER NOT NULL,
                created_at TEXT
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.lastrowid

    def _execute_count(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _row_to_execution(row: sqlite3.Row) -> Execution:
        return Execution(
            id=row["id"],
            workflow_id=row["workflow_id"],
            status=ExecutionStatus(row["status"]),
            trigger_data=_json(row["trigger_data"]) or {},
            created_at=_dt(row["created_at"]),
            started_at=_dt(row["started_at"]),
            finished_at=_dt(row["finished_at"]),
            error_message=row["error_message"],
            generation=row["generation"],
        )

    @staticmethod
    def _row_to_log(row: sqlite3.Row) -> ExecutionLog:
        return ExecutionLog(
            id=row["id"],
            execution_id=row["execution_id"],
            node_id=row["node_id"],
            status=LogStatus(row["status"]),
            input_data=_json(row["input_data"]) or {},
            output_data=_json(row["output_data"]),
            error_message=row["error_message"],
            executed_at=_dt(row["executed_at"]),
            duration_ms=row["duration_ms"],
        )

    @staticmethod
    def _row_to_webhook(row: sqlite3.Row) -> Webhook:
        return Webhook(
            webhook_id=row["webhook_id"],
            workflow_id=row["workflow_id"],
            name=row["name"],
            is_active=bool(row["is_active"]),
            created_at=_dt(row["created_at"]),
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> ScheduledTask:
        return ScheduledTask(
            id=row["id"],
            workflow_id=row["workflow_id"],
            cron_expression=row["cron_expression"],
            timezone=row["timezone"],
            is_active=bool(row["is_active"]),
            last_run_at=_dt(row["last_run_at"]),
            next_run_at=_dt(row["next_run_at"]),
        )

    # ------------------------------------------------------------------
    # Workflows
    async def save_workflow(self, workflow: Workflow) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO workflows (id, definition) VALUES (?, ?)",
            workflow.id,
            workflow.model_dump_json(),
        )

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT definition FROM workflows WHERE id = ?", workflow_id
        )
        return Workflow.model_validate_json(row["definition"]) if row else None

    async def list_workflows(self) -> list[Workflow]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT definition FROM workflows ORDER BY rowid"
        )
        return [Workflow.model_validate_json(r["definition"]) for r in rows]

    # ------------------------------------------------------------------
    # Executions
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
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO executions ({_EXECUTION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            execution.id,
            execution.workflow_id,
            execution.status.value,
            json.dumps(execution.trigger_data, default=str),
            _ts(execution.created_at),
            None,
            None,
            None,
            execution.generation,
        )
        return execution

    async def get_execution(self, execution_id: str) -> Execution | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_EXECUTION_COLUMNS} FROM executions WHERE id = ?",
            execution_id,
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
        query = f"SELECT {_EXECUTION_COLUMNS} FROM executions WHERE 1 = 1"
        params: list[Any] = []
        if workflow_id is not None:
            query += " AND workflow_id = ?"
            params.append(workflow_id)
        if status is not None:
            query += " AND status = ?"
            params.append(ExecutionStatus(status).value)
        query += " ORDER BY created_at DESC, rowid DESC"
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        return [self._row_to_execution(r) for r in rows]

    async def mark_execution_running(self, execution_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE executions SET status = ?, started_at = ? WHERE id = ?",
            ExecutionStatus.RUNNING.value,
            _ts(utcnow()),
            execution_id,
        )

    async def mark_execution_finished(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error_message: Optional[str] = None,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE executions SET status = ?, error_message = ?, finished_at = ? WHERE id = ?",
            ExecutionStatus(status).value,
            error_message,
            _ts(utcnow()),
            execution_id,
        )

    async def reset_execution(self, execution_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE executions
            SET status = ?, error_message = NULL, started_at = NULL, finished_at = NULL,
                generation = generation + 1
            WHERE id = ?
            """,
            ExecutionStatus.PENDING.value,
            execution_id,
        )
        await self.clear_logs(execution_id)

    # ------------------------------------------------------------------
    # Logs
    async def create_log(
        self, execution_id: str, node_id: str, input_data: dict[str, Any]
    ) -> ExecutionLog:
        log_id = await asyncio.to_thread(
            self._execute,
            "INSERT INTO execution_logs (execution_id, node_id, status, input_data) VALUES (?, ?, ?, ?)",
            execution_id,
            node_id,
            LogStatus.RUNNING.value,
            json.dumps(input_data, default=str),
        )
        return ExecutionLog(
            id=log_id,
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
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE execution_logs
            SET status = ?, output_data = ?, error_message = ?, executed_at = ?, duration_ms = ?
            WHERE id = ? AND status = ?
            """,
            LogStatus(status).value,
            json.dumps(output_data, default=str) if output_data is not None else None,
            error_message,
            _ts(utcnow()),
            duration_ms,
            log_id,
            LogStatus.RUNNING.value,
        )

    async def list_logs(self, execution_id: str) -> list[ExecutionLog]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_LOG_COLUMNS} FROM execution_logs WHERE execution_id = ? ORDER BY id",
            execution_id,
        )
        return [self._row_to_log(r) for r in rows]

    async def clear_logs(self, execution_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "DELETE FROM execution_logs WHERE execution_id = ?",
            execution_id,
        )

    # ------------------------------------------------------------------
    # Scheduled tasks
    async def save_scheduled_task(self, task: ScheduledTask) -> None:
        await asyncio.to_thread(
            self._execute,
            f"INSERT OR REPLACE INTO scheduled_tasks ({_TASK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            task.id,
            task.workflow_id,
            task.cron_expression,
            task.timezone,
            int(task.is_active),
            _ts(task.last_run_at),
            _ts(task.next_run_at),
        )

    async def get_scheduled_task(self, task_id: str) -> ScheduledTask | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_TASK_COLUMNS} FROM scheduled_tasks WHERE id = ?",
            task_id,
        )
        return self._row_to_task(row) if row else None

    async def list_scheduled_tasks(self) -> list[ScheduledTask]:
        rows = await asyncio.to_thread(
            self._fetchall, f"SELECT {_TASK_COLUMNS} FROM scheduled_tasks ORDER BY rowid"
        )
        return [self._row_to_task(r) for r in rows]

    async def list_due_tasks(self, now: datetime) -> list[ScheduledTask]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"""
            SELECT {_TASK_COLUMNS} FROM scheduled_tasks
            WHERE is_active = 1 AND next_run_at IS NOT NULL AND next_run_at <= ?
            ORDER BY next_run_at
            """,
            _ts(now),
        )
        return [self._row_to_task(r) for r in rows]

    async def mark_task_run(
        self, task_id: str, last_run_at: datetime, next_run_at: datetime | None
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE scheduled_tasks SET last_run_at = ?, next_run_at = ? WHERE id = ?",
            _ts(last_run_at),
            _ts(next_run_at),
            task_id,
        )

    # ------------------------------------------------------------------
    # Webhooks
    async def save_webhook(self, webhook: Webhook) -> None:
        await asyncio.to_thread(
            self._execute,
            f"INSERT OR REPLACE INTO webhooks ({_WEBHOOK_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
            webhook.webhook_id,
            webhook.workflow_id,
            webhook.name,
            int(webhook.is_active),
            _ts(webhook.created_at),
        )

    async def get_webhook(self, webhook_id: str) -> Webhook | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_WEBHOOK_COLUMNS} FROM webhooks WHERE webhook_id = ?",
            webhook_id,
        )
        return self._row_to_webhook(row) if row else None

    async def list_webhooks(self, workflow_id: Optional[str] = None) -> list[Webhook]:
        query = f"SELECT {_WEBHOOK_COLUMNS} FROM webhooks"
        params: list[Any] = []
        if workflow_id is not None:
            query += " WHERE workflow_id = ?"
            params.append(workflow_id)
        rows = await asyncio.to_thread(self._fetchall, query + " ORDER BY rowid", *params)
        return [self._row_to_webhook(r) for r in rows]

    async def delete_webhook(self, webhook_id: str) -> bool:
        removed = await asyncio.to_thread(
            self._execute_count, "DELETE FROM webhooks WHERE webhook_id = ?", webhook_id
        )
        return removed > 0
