import pytest

from mdsflow.engine.events import EngineEvent, EventStream, EventType
from mdsflow.hooks import HookPhase, HookRegistry, NoopHookRunner


@pytest.mark.asyncio
async def test_handlers_run_in_priority_order():
    registry = HookRegistry()
    calls = []

    registry.register("after_step", lambda p: calls.append("late"), plugin="late", priority=200)
    registry.register("after_step", lambda p: calls.append("early"), plugin="early", priority=10)
    registry.register("after_step", lambda p: calls.append("default"), plugin="default")

    await registry.execute_hook("after_step", {"step_id": 1})

    assert calls == ["early", "default", "late"]


@pytest.mark.asyncio
async def test_before_hook_can_veto():
    registry = HookRegistry()
    seen = []

    async def guard(payload):
        return {"cancelled": True}

    registry.register("before_step", guard, plugin="guard", priority=1)
    registry.register("before_step", lambda p: seen.append(p), plugin="later")

    result = await registry.execute_hook("before_step", {"step_id": 2})

    assert result == {"step_id": 2, "cancelled": True, "cancelled_by": "guard"}
    assert seen == [], "handlers after a veto must not run"


@pytest.mark.asyncio
async def test_only_on_phase_results_are_merged():
    registry = HookRegistry()
    registry.register("on_error", lambda p: {"notified": True}, plugin="pager")
    registry.register("after_step", lambda p: {"ignored": True}, plugin="audit")

    on_result = await registry.execute_hook("on_error", {"code": "STEP_FAILED"})
    after_result = await registry.execute_hook("after_step", {"step_id": 1})

    assert on_result == {"code": "STEP_FAILED", "notified": True}
    assert after_result == {"step_id": 1}


@pytest.mark.asyncio
async def test_after_hook_cannot_veto():
    registry = HookRegistry()
    registry.register("after_complete", lambda p: {"cancelled": True})

    result = await registry.execute_hook("after_complete", {"status": "completed"})

    assert "cancelled" not in result


@pytest.mark.asyncio
async def test_failing_handler_is_skipped(caplog):
    registry = HookRegistry()

    def broken(payload):
        raise RuntimeError("boom")

    registry.register("on_error", broken, plugin="broken", priority=1)
    registry.register("on_error", lambda p: {"handled": True}, plugin="ok")

    result = await registry.execute_hook("on_error", {})

    assert result == {"handled": True}
    assert "broken failed: boom" in caplog.text


@pytest.mark.asyncio
async def test_strict_registry_propagates_handler_errors():
    registry = HookRegistry(strict=True)

    def broken(payload):
        raise RuntimeError("boom")

    registry.register("on_error", broken)

    with pytest.raises(RuntimeError, match="boom"):
        await registry.execute_hook("on_error", {})


@pytest.mark.asyncio
async def test_unknown_hook_returns_payload(caplog):
    registry = HookRegistry()

    result = await registry.execute_hook("before_lunch", {"a": 1})

    assert result == {"a": 1}
    assert "Unknown hook: before_lunch" in caplog.text


def test_register_unknown_hook_fails():
    registry = HookRegistry()
    with pytest.raises(ValueError):
        registry.register("before_lunch", lambda p: None)


@pytest.mark.asyncio
async def test_custom_extension_point_and_unregister():
    registry = HookRegistry()
    registry.register_extension_point("before_export", HookPhase.BEFORE, cancellable=True)
    registry.register("before_export", lambda p: {"cancelled": True}, plugin="lock")

    assert (await registry.execute_hook("before_export", {}))["cancelled"] is True

    registry.unregister("before_export", "lock")
    assert registry.handlers("before_export") == []
    assert await registry.execute_hook("before_export", {}) == {}

    with pytest.raises(ValueError):
        registry.register_extension_point("before_export")


@pytest.mark.asyncio
async def test_noop_runner_returns_copy():
    payload = {"a": 1}
    result = await NoopHookRunner().execute_hook("before_step", payload)

    assert result == payload
    assert result is not payload


@pytest.mark.asyncio
async def test_event_stream_filters_and_unsubscribes():
    stream = EventStream()
    everything, progress = [], []

    async def on_progress(event):
        progress.append(event.type)

    stop = stream.subscribe(everything.append)
    stream.subscribe(on_progress, EventType.PROGRESS)

    await stream.emit(EngineEvent(type=EventType.STEP_START, execution_id="e", workflow_id="w"))
    await stream.emit(EngineEvent(type=EventType.PROGRESS, execution_id="e", workflow_id="w"))
    stop()
    await stream.emit(EngineEvent(type=EventType.PROGRESS, execution_id="e", workflow_id="w"))

    assert [e.type for e in everything] == [EventType.STEP_START, EventType.PROGRESS]
    assert progress == [EventType.PROGRESS, EventType.PROGRESS]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_stop_others():
    stream = EventStream()
    received = []

    def broken(event):
        raise RuntimeError("subscriber down")

    stream.subscribe(broken)
    stream.subscribe(received.append)

    await stream.emit(EngineEvent(type=EventType.ERROR, execution_id="e", workflow_id="w"))

    assert len(received) == 1
