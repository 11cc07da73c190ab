"""Data models for persisted execution state."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from ..contracts import StepId


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    AWAITING_INPUT = "awaiting_input"
    COMPLETED = "completed"
    HALTED = "halted"
    ERROR = "error"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {
        ExecutionStatus.COMPLETED,
        ExecutionStatus.HALTED,
        ExecutionStatus.ERROR,
        ExecutionStatus.CANCELLED,
    }
)
ACTIVE_STATUSES = frozenset(
    {
        ExecutionStatus.PENDING,
        ExecutionStatus.IN_PROGRESS,
        ExecutionStatus.AWAITING_INPUT,
        ExecutionStatus.PAUSED,
    }
)


class Artifact(BaseModel):
    """Generated output attached to an execution."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    section: str
    content: str
    generated_at: datetime = Field(default_factory=utcnow)
    step_id: Optional[StepId] = None
    version: int = 1


class Checkpoint(BaseModel):
    step_index: int
    timestamp: datetime = Field(default_factory=utcnow)
    variables: dict[str, Any] = Field(default_factory=dict)
    completed_steps: list[StepId] = Field(default_factory=list)
    artifact_ids: list[str] = Field(default_factory=list)


class HistoryEntry(BaseModel):
    """One applied status transition."""

    from_status: ExecutionStatus
    to_status: ExecutionStatus
    trigger: str
    timestamp: datetime = Field(default_factory=utcnow)
    details: Optional[str] = None


class ErrorEntry(BaseModel):
    step_id: Optional[StepId] = None
    code: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)
    recoverable: bool = False


class AwaitingInput(BaseModel):
    """Describes what the caller must supply before the run can resume."""

    prompt: str
    variables: list[str] = Field(default_factory=list)
    options: list[str] = Field(default_factory=list)
    step_id: Optional[StepId] = None
    kind: Literal["ask", "artifact_review"] = "ask"


class ExecutionRecord(BaseModel):
    """Persisted state of one workflow run."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    project_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    current_step_index: int = 1
    completed_steps: list[StepId] = Field(default_factory=list)
    variables: dict[str, Any] = Field(default_factory=dict)
    artifacts: list[Artifact] = Field(default_factory=list)
    checkpoints: list[Checkpoint] = Field(default_factory=list)
    history: list[HistoryEntry] = Field(default_factory=list)
    errors: list[ErrorEntry] = Field(default_factory=list)
    awaiting_input: Optional[AwaitingInput] = None
    halt_reason: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "ExecutionRecord":
        return cls.model_validate_json(data)


class StateFilter(BaseModel):
    """Narrows ``StateStore.list`` results. Unset fields match everything."""

    status: Optional[ExecutionStatus] = None
    workflow_id: Optional[str] = None
    project_id: Optional[str] = None
    since: Optional[datetime] = None

    def matches(self, record: ExecutionRecord) -> bool:
        if self.status is not None and record.status != self.status:
            return False
        if self.workflow_id is not None and record.workflow_id != self.workflow_id:
            return False
        if self.project_id is not None and record.project_id != self.project_id:
            return False
        if self.since is not None and record.updated_at < self.since:
            return False
        return True
