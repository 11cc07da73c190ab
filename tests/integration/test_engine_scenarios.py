"""End-to-end runs of the workflow engine over an in-memory store."""

import pytest

from mdsflow.config import EngineConfig
from mdsflow.context import ExecutionContext
from mdsflow.definitions import parse_workflow
from mdsflow.engine import EventType
from mdsflow.errors import InvalidInput, InvalidTransition
from mdsflow.persistence import ExecutionStatus


def _workflow(workflow_id, *steps):
    return parse_workflow({"id": workflow_id, "steps": list(steps)})


def _set(**params):
    return {"actions": [{"type": "set", "params": params}]}


class Counter:
    def __init__(self, fail_first: int = 0):
        self.calls = 0
        self.fail_first = fail_first

    def __call__(self, action, record, context):
        self.calls += 1
        if self.calls <= self.fail_first:
            raise RuntimeError(f"attempt {self.calls} failed")
        return {"calls": self.calls}


@pytest.mark.asyncio
async def test_linear_workflow_completes(make_engine, store, received):
    definition = _workflow("linear", _set(a=1), _set(b=2), _set(c="{{a}}-{{b}}"))
    engine = make_engine(definition)

    result = await engine.start("linear")

    assert result.status == ExecutionStatus.COMPLETED
    record = await store.get(result.execution_id)
    assert record.status == ExecutionStatus.COMPLETED
    assert record.completed_steps == [1, 2, 3]
    assert record.current_step_index == 4
    assert record.variables == {"a": 1, "b": 2, "c": "1-2"}
    assert record.completed_at is not None
    assert [c.step_index for c in record.checkpoints] == [1, 2, 3]
    assert result.progress == {
        "current_step": 3,
        "total_steps": 3,
        "completed_steps": 3,
        "percent": 100,
    }

    types = [event.type for event in received]
    assert types.count(EventType.STEP_START) == 3
    assert types.count(EventType.STEP_COMPLETE) == 3
    assert types.count(EventType.PROGRESS) == 2
    assert received[0].type == EventType.STATE_CHANGE
    assert received[-1].data["to_status"] == "completed"


@pytest.mark.asyncio
async def test_ask_waits_for_input_then_completes(make_engine, store):
    definition = _workflow(
        "approval",
        _set(doc="PRD"),
        {"ask": {"prompt": "Approve {{doc}}?", "variables": ["approved"]}},
        {"condition": "approved", **_set(published=True)},
    )
    engine = make_engine(definition)

    waiting = await engine.start("approval")

    assert waiting.status == ExecutionStatus.AWAITING_INPUT
    assert waiting.input_required == ["approved"]
    assert waiting.prompt == "Approve PRD?"
    assert [r.id for r in await engine.get_active_executions()] == [waiting.execution_id]

    with pytest.raises(InvalidInput) as excinfo:
        await engine.provide_input(waiting.execution_id, {"other": 1})
    assert excinfo.value.missing == ["approved"]
    still_waiting = await store.get(waiting.execution_id)
    assert still_waiting.status == ExecutionStatus.AWAITING_INPUT

    done = await engine.provide_input(waiting.execution_id, {"approved": True})

    assert done.status == ExecutionStatus.COMPLETED
    record = await store.get(waiting.execution_id)
    assert record.variables["approved"] is True
    assert record.variables["published"] is True
    assert record.completed_steps == [1, 2, 3]
    assert record.awaiting_input is None


@pytest.mark.asyncio
async def test_rejected_answer_loops_back_to_draft(make_engine, store):
    def draft(action, record, context):
        return {"drafts": record.variables.get("drafts", 0) + 1}

    definition = _workflow(
        "review-loop",
        {"actions": [{"type": "draft"}]},
        {
            "ask": {"prompt": "Approve?", "variables": ["approved"]},
            "goto": {"target": 1, "when": "not approved"},
        },
        _set(published=True),
    )
    engine = make_engine(definition, handlers={"draft": draft})
    waiting = await engine.start("review-loop")

    rejected = await engine.provide_input(waiting.execution_id, {"approved": False})

    assert rejected.status == ExecutionStatus.AWAITING_INPUT
    record = await store.get(waiting.execution_id)
    assert record.variables["drafts"] == 2
    assert "published" not in record.variables

    done = await engine.provide_input(waiting.execution_id, {"approved": True})

    assert done.status == ExecutionStatus.COMPLETED
    record = await store.get(waiting.execution_id)
    assert record.variables["drafts"] == 2
    assert record.variables["published"] is True
    assert record.completed_steps == [1, 2, 3]


@pytest.mark.asyncio
async def test_required_step_failure_ends_in_error(make_engine, store, received):
    failing = Counter(fail_first=10)
    definition = _workflow(
        "failing",
        _set(a=1),
        {"actions": [{"type": "boom"}], "retry": {"max_attempts": 3, "delay_ms": 0}},
        _set(c=3),
    )
    engine = make_engine(definition, handlers={"boom": failing})

    result = await engine.start("failing")

    assert result.status == ExecutionStatus.ERROR
    assert failing.calls == 3
    record = await store.get(result.execution_id)
    assert record.status == ExecutionStatus.ERROR
    assert record.completed_steps == [1]
    assert len(record.errors) == 1
    assert record.errors[0].code == "STEP_FAILED"
    assert record.errors[0].recoverable is False
    assert record.errors[0].step_id == 2
    assert result.error.message == "attempt 3 failed"
    assert EventType.ERROR in [event.type for event in received]


@pytest.mark.asyncio
async def test_optional_step_failure_is_skipped(make_engine, store, received):
    definition = _workflow(
        "optional",
        _set(a=1),
        {"required": False, "actions": [{"type": "boom"}], "retry": {"max_attempts": 2, "delay_ms": 0}},
        _set(c=3),
    )
    engine = make_engine(definition, handlers={"boom": Counter(fail_first=10)})

    result = await engine.start("optional")

    assert result.status == ExecutionStatus.COMPLETED
    record = await store.get(result.execution_id)
    assert record.completed_steps == [1, 3]
    assert len(record.errors) == 1
    assert record.errors[0].recoverable is True
    types = [event.type for event in received]
    assert EventType.STEP_FAIL in types
    assert EventType.WARNING in types


@pytest.mark.asyncio
async def test_pause_mid_step_then_resume(make_engine, store):
    engine = None
    calls = []

    async def pausing(action, record, context):
        calls.append(record.current_step_index)
        if len(calls) == 1:
            await engine.pause(record.id)
        return {"drafted": True}

    definition = _workflow("pausable", _set(a=1), {"actions": [{"type": "draft"}]}, _set(c=3))
    engine = make_engine(definition, handlers={"draft": pausing})

    paused = await engine.start("pausable")

    assert paused.status == ExecutionStatus.PAUSED
    record = await store.get(paused.execution_id)
    assert record.current_step_index == 2
    assert record.completed_steps == [1]
    assert "drafted" not in record.variables
    assert record.checkpoints[-1].step_index == 2

    with pytest.raises(InvalidTransition):
        await engine.continue_execution(paused.execution_id)

    resumed = await engine.resume(paused.execution_id)

    assert resumed.status == ExecutionStatus.COMPLETED
    assert calls == [2, 2]
    record = await store.get(paused.execution_id)
    assert record.completed_steps == [1, 2, 3]
    triggers = [entry.trigger for entry in record.history]
    assert "user_paused" in triggers
    assert "user_resumed" in triggers


@pytest.mark.asyncio
async def test_pause_requires_in_progress(make_engine):
    engine = make_engine(_workflow("quick", _set(a=1)))
    result = await engine.start("quick")

    with pytest.raises(InvalidTransition):
        await engine.pause(result.execution_id)
    with pytest.raises(InvalidTransition):
        await engine.resume(result.execution_id)


@pytest.mark.asyncio
async def test_unconditional_goto_hits_loop_limit(make_engine, store):
    definition = _workflow("looping", _set(a=1), {"goto": 1})
    engine = make_engine(definition)

    result = await engine.start("looping")

    assert result.status == ExecutionStatus.ERROR
    assert result.error.code == "STEP_LOOP_LIMIT"
    record = await store.get(result.execution_id)
    assert record.errors[-1].code == "STEP_LOOP_LIMIT"
    assert "20" in record.errors[-1].message


@pytest.mark.asyncio
async def test_loop_limit_counts_across_input_rounds(make_engine, store):
    definition = _workflow(
        "nagging",
        _set(a=1),
        {
            "ask": {"prompt": "Again?", "variables": ["again"]},
            "goto": {"target": 1, "when": "again"},
        },
    )
    engine = make_engine(definition, options=EngineConfig(loop_limit_factor=2))

    waiting = await engine.start("nagging")
    assert waiting.status == ExecutionStatus.AWAITING_INPUT
    waiting = await engine.provide_input(waiting.execution_id, {"again": True})
    assert waiting.status == ExecutionStatus.AWAITING_INPUT

    result = await engine.provide_input(waiting.execution_id, {"again": True})

    assert result.status == ExecutionStatus.ERROR
    assert result.error.code == "STEP_LOOP_LIMIT"
    record = await store.get(result.execution_id)
    assert record.metadata["step_visits"] == 5


@pytest.mark.asyncio
async def test_conditional_goto_repeats_until_condition_clears(make_engine, store):
    def count(action, record, context):
        return {"count": record.variables.get("count", 0) + 1}

    definition = _workflow(
        "repeat",
        {"actions": [{"type": "count"}]},
        {"goto": {"target": 1, "when": "count < 3"}},
    )
    engine = make_engine(definition, handlers={"count": count})

    result = await engine.start("repeat")

    assert result.status == ExecutionStatus.COMPLETED
    record = await store.get(result.execution_id)
    assert record.variables["count"] == 3
    assert record.completed_steps == [1, 2]


@pytest.mark.asyncio
async def test_guards_and_dependencies_skip_steps(make_engine, store, received):
    definition = _workflow(
        "skipping",
        {"condition": "false", **_set(a=1)},
        {"dependencies": [1], **_set(b=2)},
        _set(c=3),
    )
    engine = make_engine(definition)

    result = await engine.start("skipping")

    assert result.status == ExecutionStatus.COMPLETED
    record = await store.get(result.execution_id)
    assert record.completed_steps == [3]
    assert record.variables == {"c": 3}
    skips = [event.data["reason"] for event in received if event.type == EventType.STEP_SKIP]
    assert skips == ["condition", "dependencies"]


@pytest.mark.asyncio
async def test_artifact_review_regenerate_and_edit(make_engine, store):
    definition = _workflow(
        "review",
        {"template_output": {"section": "goals", "template": "Goals for {{project}}"}},
    )
    engine = make_engine(definition)

    first = await engine.start("review", {"project": "Atlas"})

    assert first.status == ExecutionStatus.AWAITING_INPUT
    assert first.input_required == ["action"]
    assert first.options == ["continue", "regenerate", "edit"]
    assert [(a.content, a.version) for a in first.artifacts] == [("Goals for Atlas", 1)]

    with pytest.raises(InvalidInput):
        await engine.provide_input(first.execution_id, {"action": "maybe"})
    with pytest.raises(InvalidInput) as excinfo:
        await engine.provide_input(first.execution_id, {"action": "e"})
    assert excinfo.value.missing == ["content"]

    second = await engine.provide_input(first.execution_id, {"action": "r"})

    assert second.status == ExecutionStatus.AWAITING_INPUT
    assert [a.version for a in second.artifacts] == [1, 2]

    done = await engine.provide_input(
        first.execution_id, {"action": "edit", "content": "Ship search by Q3"}
    )

    assert done.status == ExecutionStatus.COMPLETED
    assert [a.version for a in done.artifacts] == [1, 2, 3]
    assert done.artifacts[-1].content == "Ship search by Q3"
    assert done.artifacts[-1].section == "goals"


@pytest.mark.asyncio
async def test_autonomous_mode_accepts_artifacts(make_engine):
    definition = _workflow(
        "review", {"template_output": {"section": "goals"}}, _set(done=True)
    )
    engine = make_engine(definition)

    result = await engine.start("review", context=ExecutionContext(mode="autonomous"))

    assert result.status == ExecutionStatus.COMPLETED
    assert [a.content for a in result.artifacts] == ["## goals\n"]


@pytest.mark.asyncio
async def test_halt_directive_stops_workflow(make_engine, store):
    definition = _workflow(
        "gated", _set(score=2), {"halt": {"reason": "Score {{score}} too low", "when": "score < 5"}}
    )
    engine = make_engine(definition)

    result = await engine.start("gated")

    assert result.status == ExecutionStatus.HALTED
    assert result.message == "Score 2 too low"
    record = await store.get(result.execution_id)
    assert record.halt_reason == "Score 2 too low"
    assert record.is_terminal
