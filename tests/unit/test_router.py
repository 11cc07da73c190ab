import pytest

from mdsflow.actions import RegistryActionRunner
from mdsflow.definitions import WorkflowCatalog, parse_agent, parse_workflow
from mdsflow.engine import WorkflowEngine
from mdsflow.errors import CommandNotFound
from mdsflow.persistence import ExecutionStatus, InMemoryStateStore
from mdsflow.router import CommandKind, CommandRouter

AGENT = {
    "metadata": {"id": "pm", "name": "Product Manager"},
    "menu": [
        {"trigger": "*create-prd", "description": "Create a PRD", "workflow": "create-prd"},
        {"trigger": "*summary", "task": "summarize"},
        {"trigger": "*note", "exec": {"type": "set", "params": {"note": "{{topic}} noted"}}},
        {"trigger": "*stop", "exec": {"type": "halt", "params": {"reason": "not today"}}},
        {"trigger": "*broken", "exec": {"type": "explode"}},
    ],
}

CREATE_PRD = {
    "id": "create-prd",
    "steps": [
        {"actions": [{"type": "set", "params": {"drafted": True}}]},
        {"ask": {"prompt": "Approve?", "variables": ["approved"]}},
    ],
}

SUMMARIZE = {
    "id": "summarize",
    "steps": [
        {"template_output": {"section": "summary", "template": "Summary of {{topic}}"}},
        {"ask": {"prompt": "Audience?", "variables": ["audience"]}},
        {"actions": [{"type": "set", "params": {"done": True}}]},
    ],
}


def _explode(action, record, context):
    raise RuntimeError("kaboom")


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def router(store):
    catalog = WorkflowCatalog([parse_workflow(CREATE_PRD), parse_workflow(SUMMARIZE)])
    engine = WorkflowEngine(
        store, catalog, action_runner=RegistryActionRunner(handlers={"explode": _explode})
    )
    return CommandRouter(engine, [parse_agent(AGENT)])


def test_command_table(router):
    kinds = {command.trigger: command.kind for command in router.commands("pm")}

    assert kinds == {
        "*create-prd": CommandKind.WORKFLOW,
        "*summary": CommandKind.TASK,
        "*note": CommandKind.EXEC,
        "*stop": CommandKind.EXEC,
        "*broken": CommandKind.EXEC,
    }
    assert router.resolve("pm", "CREATE-PRD").target == "create-prd"
    assert router.resolve("pm", " *summary ").kind == CommandKind.TASK
    assert router.commands("nobody") == []


def test_unknown_command(router):
    with pytest.raises(CommandNotFound):
        router.resolve("pm", "*dance")
    with pytest.raises(CommandNotFound):
        router.resolve("architect", "*create-prd")


@pytest.mark.asyncio
async def test_workflow_command_is_persisted(router, store):
    result = await router.invoke("pm", "*create-prd")

    assert result.status == ExecutionStatus.AWAITING_INPUT
    assert (await store.get(result.execution_id)).workflow_id == "create-prd"


@pytest.mark.asyncio
async def test_task_command_runs_in_memory(router, store):
    waiting = await router.invoke("pm", "*summary", {"topic": "search"})

    assert waiting.status == ExecutionStatus.AWAITING_INPUT
    assert waiting.input_required == ["audience"]
    assert [a.content for a in waiting.artifacts] == ["Summary of search"]

    done = await router.invoke("pm", "*summary", {"topic": "search", "audience": "execs"})

    assert done.status == ExecutionStatus.COMPLETED
    assert done.record.variables["done"] is True
    assert done.record.completed_steps == [1, 2, 3]
    assert await store.list() == []


@pytest.mark.asyncio
async def test_exec_command_outcomes(router):
    noted = await router.invoke("pm", "*note", {"topic": "pricing"})
    halted = await router.invoke("pm", "*stop")
    failed = await router.invoke("pm", "*broken")

    assert noted.status == ExecutionStatus.COMPLETED
    assert noted.record.variables["note"] == "pricing noted"
    assert halted.status == ExecutionStatus.HALTED
    assert halted.message == "not today"
    assert failed.status == ExecutionStatus.ERROR
    assert failed.error.code == "COMMAND_ERROR"
    assert failed.error.message == "kaboom"


@pytest.mark.asyncio
async def test_workflow_target_can_be_a_file(store, tmp_path):
    path = tmp_path / "quick.workflow.yaml"
    path.write_text(
        "id: quick\nsteps:\n  - actions:\n      - type: set\n        params: {ok: true}\n"
    )
    agent = parse_agent(
        {"metadata": {"id": "dev", "name": "Dev"}, "menu": [{"trigger": "*go", "workflow": str(path)}]}
    )
    engine = WorkflowEngine(store)
    router = CommandRouter(engine, [agent])

    result = await router.invoke("dev", "*go")

    assert result.status == ExecutionStatus.COMPLETED
    assert "quick" in engine.catalog
