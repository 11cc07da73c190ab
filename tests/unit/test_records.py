from datetime import timedelta

import pytest

from mdsflow.engine import records
from mdsflow.errors import CheckpointNotFound
from mdsflow.persistence.models import Artifact, ExecutionStatus, utcnow


def _in_progress(**variables):
    record = records.create("wf", project_id="proj", variables=variables)
    record.status = ExecutionStatus.IN_PROGRESS
    return record


def test_create_builds_pending_record():
    record = records.create("wf", project_id="proj", variables={"a": 1})

    assert record.status == ExecutionStatus.PENDING
    assert record.current_step_index == 1
    assert record.completed_steps == []
    assert record.artifacts == [] and record.checkpoints == [] and record.errors == []
    assert record.history[-1].to_status == record.status
    assert record.variables == {"a": 1}


def test_checkpoint_round_trip_restores_state():
    record = _in_progress(topic="jokes")
    record.completed_steps = [1]
    record.current_step_index = 2

    checkpointed, checkpoint = records.with_checkpoint(record)
    assert checkpoint.step_index == 2
    assert checkpointed.checkpoints[-1].variables == {"topic": "jokes"}

    restored = records.restore_checkpoint(checkpointed, 2)
    assert restored.variables == record.variables
    assert restored.completed_steps == record.completed_steps
    assert restored.current_step_index == 2
    assert restored.status == ExecutionStatus.IN_PROGRESS
    assert restored.history[-1].trigger == "checkpoint_restored"


def test_restore_rolls_back_later_progress():
    record = _in_progress(a=1)
    record, _ = records.with_checkpoint(record)
    record = records.mark_completed(record, 1)
    record.variables["a"] = 2
    record.current_step_index = 3
    record.status = ExecutionStatus.ERROR

    restored = records.restore_checkpoint(record, 1)

    assert restored.variables == {"a": 1}
    assert restored.completed_steps == []
    assert restored.current_step_index == 1
    assert restored.status == ExecutionStatus.IN_PROGRESS
    assert restored.history[-1].from_status == ExecutionStatus.ERROR
    assert len(restored.checkpoints) == 1


def test_restore_uses_latest_matching_checkpoint():
    record = _in_progress(version="first")
    record, _ = records.with_checkpoint(record)
    record.variables["version"] = "second"
    record, _ = records.with_checkpoint(record)
    record.variables["version"] = "third"

    restored = records.restore_checkpoint(record, 1)

    assert restored.variables["version"] == "second"


def test_restore_missing_checkpoint_raises_without_mutation():
    record = _in_progress()
    before = record.model_dump()

    with pytest.raises(CheckpointNotFound) as exc:
        records.restore_checkpoint(record, 5)
    assert exc.value.step_index == 5
    assert record.model_dump() == before


def test_checkpoint_timestamps_are_monotonic():
    record = _in_progress()
    record, first = records.with_checkpoint(record)
    record.checkpoints[-1].timestamp = utcnow() + timedelta(seconds=5)

    record, second = records.with_checkpoint(record)

    assert second.timestamp > record.checkpoints[0].timestamp


def test_checkpoint_snapshots_artifact_ids():
    record = records.with_artifact(_in_progress(), Artifact(section="intro", content="hi"))

    _, checkpoint = records.with_checkpoint(record)

    assert checkpoint.artifact_ids == [record.artifacts[0].id]


def test_with_artifact_returns_copy():
    record = _in_progress()

    updated = records.with_artifact(record, Artifact(section="goals", content="..."))

    assert record.artifacts == []
    assert [a.section for a in updated.artifacts] == ["goals"]


def test_mark_completed_is_idempotent():
    record = records.mark_completed(records.mark_completed(_in_progress(), "draft"), "draft")

    assert record.completed_steps == ["draft"]


def test_record_error_appends_entry():
    record = records.record_error(_in_progress(), "STEP_FAILED", "boom", step_id=2, recoverable=True)

    assert len(record.errors) == 1
    assert record.errors[0].step_id == 2
    assert record.errors[0].recoverable is True


def test_progress_summary():
    record = _in_progress()
    record.completed_steps = [1, 2]
    record.current_step_index = 3

    assert records.progress(record, 4) == {
        "current_step": 3,
        "total_steps": 4,
        "completed_steps": 2,
        "percent": 50,
    }
