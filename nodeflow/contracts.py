"""Core data contracts for nodeflow workflow graphs and queued jobs."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NodeKind(str, Enum):
    TRIGGER = "trigger"
    ACTION = "action"
    CONDITION = "condition"


class _EditorModel(BaseModel):
    """Accepts both snake_case names and the editor's camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class Node(_EditorModel):
    """A typed step in a workflow graph.

    ``kind`` stays a plain string so an unknown kind fails the node when
    the run reaches it rather than when the graph loads.
    """

    node_id: str
    kind: str = Field(validation_alias=AliasChoices("kind", "type"))
    label: str = ""
    config: Dict[str, Any] = Field(default_factory=dict)


class Connection(_EditorModel):
    """Directed edge between two nodes of the same workflow."""

    source_node_id: str
    target_node_id: str
    connection_type: Literal["success", "failure", "always"] = "success"


class Workflow(_EditorModel):
    """A node graph as authored in the editor. Read-only to the engine."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    nodes: List[Node] = Field(default_factory=list)
    connections: List[Connection] = Field(default_factory=list)
    is_active: bool = True
    settings: Dict[str, Any] = Field(default_factory=dict)

    def trigger_nodes(self) -> List[Node]:
        return [n for n in self.nodes if n.kind == NodeKind.TRIGGER.value]


class ExecutionJob(BaseModel):
    """Envelope published on the queue for one attempt at one execution."""

    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    execution_id: str
    workflow_id: str
    attempt: int = 1
    generation: int = 1
    first_enqueued_at: datetime = Field(default_factory=utcnow)
    spec_version: str = "1.0"

    def to_json(self) -> str:
        """Serialize job to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "ExecutionJob":
        """Deserialize job from JSON."""
        return cls.model_validate_json(data)

    def bump_attempt(self) -> "ExecutionJob":
        """Return a copy for the next attempt with a fresh job id."""
        return self.model_copy(
            update={"attempt": self.attempt + 1, "job_id": str(uuid.uuid4())}
        )

    def redelivery(self) -> "ExecutionJob":
        """Return a copy for the same attempt, e.g. after waiting on a lock."""
        return self.model_copy(update={"job_id": str(uuid.uuid4())})
