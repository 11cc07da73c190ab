"""Pure construction and update helpers for ``ExecutionRecord``.

Every function returns a new record and leaves its input untouched. None of
them perform I/O; the engine persists whatever they return.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

from ..constants import DEFAULT_PROJECT_ID
from ..contracts import StepId
from ..errors import CheckpointNotFound
from ..persistence.models import (
    Artifact,
    Checkpoint,
    ErrorEntry,
    ExecutionRecord,
    ExecutionStatus,
    HistoryEntry,
    utcnow,
)


def create(
    workflow_id: str,
    project_id: str = DEFAULT_PROJECT_ID,
    variables: Optional[dict[str, Any]] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> ExecutionRecord:
    """Build a fresh ``pending`` record positioned at the first step."""
    now = utcnow()
    return ExecutionRecord(
        workflow_id=workflow_id,
        project_id=project_id,
        status=ExecutionStatus.PENDING,
        current_step_index=1,
        variables=dict(variables or {}),
        metadata=dict(metadata or {}),
        history=[
            HistoryEntry(
                from_status=ExecutionStatus.PENDING,
                to_status=ExecutionStatus.PENDING,
                trigger="execution_created",
                timestamp=now,
            )
        ],
        created_at=now,
        updated_at=now,
    )


def with_artifact(record: ExecutionRecord, artifact: Artifact) -> ExecutionRecord:
    updated = record.model_copy(deep=True)
    updated.artifacts.append(artifact.model_copy(deep=True))
    updated.updated_at = utcnow()
    return updated


def with_checkpoint(record: ExecutionRecord) -> tuple[ExecutionRecord, Checkpoint]:
    """Snapshot variables, completed steps and artifact ids at the current index."""
    timestamp = utcnow()
    if record.checkpoints and record.checkpoints[-1].timestamp >= timestamp:
        timestamp = record.checkpoints[-1].timestamp + timedelta(microseconds=1)
    checkpoint = Checkpoint(
        step_index=record.current_step_index,
        timestamp=timestamp,
        variables=dict(record.variables),
        completed_steps=list(record.completed_steps),
        artifact_ids=[a.id for a in record.artifacts],
    )
    updated = record.model_copy(deep=True)
    updated.checkpoints.append(checkpoint)
    updated.updated_at = utcnow()
    return updated, checkpoint.model_copy(deep=True)


def find_checkpoint(record: ExecutionRecord, step_index: int) -> Checkpoint | None:
    """Return the most recent checkpoint taken at ``step_index``."""
    for checkpoint in reversed(record.checkpoints):
        if checkpoint.step_index == step_index:
            return checkpoint
    return None


def restore_checkpoint(
    record: ExecutionRecord, step_index: int, details: Optional[str] = None
) -> ExecutionRecord:
    """Roll the record back to the latest checkpoint at ``step_index``.

    Artifacts and checkpoints are kept; only the index, variables and
    completed steps are overwritten. The record is forced to ``in_progress``.
    """
    checkpoint = find_checkpoint(record, step_index)
    if checkpoint is None:
        raise CheckpointNotFound(step_index)

    now = utcnow()
    updated = record.model_copy(deep=True)
    updated.current_step_index = checkpoint.step_index
    updated.variables = dict(checkpoint.variables)
    updated.completed_steps = list(checkpoint.completed_steps)
    updated.awaiting_input = None
    updated.halt_reason = None
    updated.completed_at = None
    updated.history.append(
        HistoryEntry(
            from_status=record.status,
            to_status=ExecutionStatus.IN_PROGRESS,
            trigger="checkpoint_restored",
            timestamp=now,
            details=details or f"Restored checkpoint at step {step_index}",
        )
    )
    updated.status = ExecutionStatus.IN_PROGRESS
    updated.updated_at = now
    return updated


def mark_completed(record: ExecutionRecord, step_id: StepId) -> ExecutionRecord:
    updated = record.model_copy(deep=True)
    if step_id not in updated.completed_steps:
        updated.completed_steps.append(step_id)
    updated.updated_at = utcnow()
    return updated


def record_error(
    record: ExecutionRecord,
    code: str,
    message: str,
    step_id: Optional[StepId] = None,
    recoverable: bool = False,
) -> ExecutionRecord:
    updated = record.model_copy(deep=True)
    updated.errors.append(
        ErrorEntry(step_id=step_id, code=code, message=message, recoverable=recoverable)
    )
    updated.updated_at = utcnow()
    return updated


def progress(record: ExecutionRecord, total_steps: int) -> dict[str, Any]:
    """Summarise how far the execution has got."""
    completed = len(record.completed_steps)
    percent = round(completed / total_steps * 100) if total_steps else 100
    return {
        "current_step": min(record.current_step_index, total_steps),
        "total_steps": total_steps,
        "completed_steps": completed,
        "percent": min(percent, 100),
    }
