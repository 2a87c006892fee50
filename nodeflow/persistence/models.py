"""Data models for persisted execution state."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionStatus.SUCCESS,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )


class LogStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class ExecutionLog(BaseModel):
    """Record of one node attempt within an execution."""

    id: Optional[int] = None
    execution_id: str
    node_id: str
    status: LogStatus = LogStatus.RUNNING
    input_data: dict[str, Any] = Field(default_factory=dict)
    output_data: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
    executed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None


class Execution(BaseModel):
    """One run of a workflow against its trigger data."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    trigger_data: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error_message: Optional[str] = None
    # bumped on every manual retry; jobs from an older generation are stale
    generation: int = 1
    logs: list[ExecutionLog] = Field(default_factory=list)


class ScheduledTask(BaseModel):
    """Recurring trigger for a workflow."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    cron_expression: str
    timezone: str = "UTC"
    is_active: bool = True
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None


class Webhook(BaseModel):
    """Public endpoint that starts runs of a workflow.

    Callers address it by ``webhook_id`` only, so an endpoint can be
    switched off or removed without touching the workflow.
    """

    webhook_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    name: str
    is_active: bool = True
    created_at: Optional[datetime] = None
