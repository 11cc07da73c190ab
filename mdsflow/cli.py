"""Command line interface for running mdsflow workflows."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Coroutine, List, Optional

import typer

from mdsflow.actions import RegistryActionRunner
from mdsflow.cli_utils.workflow import (
    _format_workflow_path,
    describe_record,
    parse_variables,
    workflow_step_labels,
)
from mdsflow.config import configure_logging, load_config
from mdsflow.context import DocumentLoader, ExecutionContext
from mdsflow.definitions import (
    WorkflowCatalog,
    discover_workflow_files,
    load_agent,
    load_workflow,
)
from mdsflow.engine import ExecutionResult, WorkflowEngine
from mdsflow.errors import DefinitionValidationError, MdsflowError
from mdsflow.persistence import ExecutionStatus, StateFilter, get_store
from mdsflow.router import CommandRouter

app = typer.Typer(help="CLI for mdsflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflow definitions")
run_app = typer.Typer(help="Commands for starting and controlling executions")
agent_app = typer.Typer(help="Commands for invoking agent menus")

app.add_typer(workflow_app, name="workflow")
app.add_typer(run_app, name="run")
app.add_typer(agent_app, name="agent")

WorkflowsOption = typer.Option(
    None, "--workflows", help="Directory containing workflow definitions (default: current dir)"
)
StoreOption = typer.Option(None, "--store", help="State store URL, e.g. sqlite://runs.db")
VarOption = typer.Option(None, "--var", help="Variable as key=value; may be repeated")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override log level"),
) -> None:
    """mdsflow CLI entry point."""
    config = load_config()
    configure_logging(log_level or config.log_level)


def _build_engine(workflows: Optional[Path], store: Optional[str]) -> WorkflowEngine:
    config = load_config()
    catalog = WorkflowCatalog()
    catalog.load_directory((workflows or Path.cwd()).expanduser().resolve())
    return WorkflowEngine(
        get_store(store, config),
        catalog,
        action_runner=RegistryActionRunner(document_loader=DocumentLoader(config.project_root)),
        config=config,
    )


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    try:
        return asyncio.run(coro)
    except MdsflowError as e:
        typer.secho(f"Error [{e.code}]: {e.message}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _variables(values: Optional[List[str]]) -> dict[str, Any]:
    try:
        return parse_variables(values)
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _echo_result(result: ExecutionResult) -> None:
    typer.echo(f"Execution {result.execution_id or '-'}: {result.status.value}")
    if result.message:
        typer.echo(result.message)
    if result.status == ExecutionStatus.AWAITING_INPUT:
        typer.echo(f"Input required: {', '.join(result.input_required) or '(none)'}")
        if result.options:
            typer.echo(f"Options: {', '.join(result.options)}")
    if result.error is not None:
        typer.secho(f"{result.error.code}: {result.error.message}", fg=typer.colors.RED)
    for artifact in result.artifacts:
        typer.echo(f"- {artifact.section} (v{artifact.version})")
    if result.status in (ExecutionStatus.ERROR, ExecutionStatus.CANCELLED):
        raise typer.Exit(code=1)


# ----------------------------------------------------------------------
# workflow
@workflow_app.command("discover")
def workflow_discover(
    path: Optional[Path] = None,
    respect_gitignore: bool = typer.Option(
        True, help="Skip files and directories specified in .gitignore files"
    ),
) -> None:
    """
    Find workflow definition files in a directory.

    Looks for ``*.workflow.yaml`` and ``workflow.yaml`` files and prints the
    id, name and step count of every valid definition.

    Example:
        mdsflow workflow discover --path ./workflows
        # Output: ./prd/workflow.yaml - create-prd: Create PRD (4 steps)
    """
    search_path = (path or Path.cwd()).expanduser().resolve()
    typer.echo(f"Discovering workflows in: {search_path}")

    if not search_path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    found = 0
    for workflow_file in discover_workflow_files(search_path, respect_gitignore=respect_gitignore):
        try:
            definition = load_workflow(workflow_file)
        except DefinitionValidationError as e:
            typer.secho(f"Skipping {workflow_file}: {e.message}", fg=typer.colors.RED)
            continue
        found += 1
        display_path = _format_workflow_path(workflow_file, search_path)
        title = definition.name or definition.description or "No description found"
        typer.echo(f"{display_path} - {definition.id}: {title} ({len(definition.steps)} steps)")

    if not found:
        typer.echo("No workflows discovered.")


@workflow_app.command("validate")
def workflow_validate(workflow_path: Path) -> None:
    """Validate a workflow YAML file and list its steps."""
    try:
        definition = load_workflow(workflow_path)
    except FileNotFoundError:
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except DefinitionValidationError as e:
        typer.secho(e.message, fg=typer.colors.RED)
        for error in e.errors:
            typer.echo(f"  {error['path'] or '(root)'}: {error['message']}")
        raise typer.Exit(code=1)

    typer.echo(f"Valid workflow {definition.id} ({len(definition.steps)} steps)")
    for label in workflow_step_labels(definition):
        typer.echo(f"  {label}")


# ----------------------------------------------------------------------
# run
@run_app.command("start")
def run_start(
    workflow_id: str,
    var: Optional[List[str]] = VarOption,
    workflows: Optional[Path] = WorkflowsOption,
    store: Optional[str] = StoreOption,
    project: Optional[str] = typer.Option(None, "--project", help="Project id"),
    autonomous: bool = typer.Option(False, help="Accept generated artifacts without review"),
) -> None:
    """
    Start a workflow, or pick up its active execution for the project.

    Example:
        mdsflow run start create-prd --var project_name=Atlas --store sqlite://runs.db
    """
    variables = _variables(var)
    engine = _build_engine(workflows, store)
    context = ExecutionContext(
        project_id=project or engine.config.project_id,
        mode="autonomous" if autonomous else "interactive",
        config=engine.config.model_dump(),
    )
    _echo_result(_run(engine.start(workflow_id, variables, context)))


@run_app.command("continue")
def run_continue(
    execution_id: str,
    workflows: Optional[Path] = WorkflowsOption,
    store: Optional[str] = StoreOption,
) -> None:
    """Re-enter the step loop of an execution, e.g. after a crash."""
    engine = _build_engine(workflows, store)
    _echo_result(_run(engine.continue_execution(execution_id)))


@run_app.command("input")
def run_input(
    execution_id: str,
    var: Optional[List[str]] = VarOption,
    workflows: Optional[Path] = WorkflowsOption,
    store: Optional[str] = StoreOption,
) -> None:
    """
    Provide the input an execution is waiting for.

    Example:
        mdsflow run input 3f2c... --var approved=true
        mdsflow run input 3f2c... --var action=edit --var "content=## Goals"
    """
    variables = _variables(var)
    engine = _build_engine(workflows, store)
    _echo_result(_run(engine.provide_input(execution_id, variables)))


@run_app.command("pause")
def run_pause(
    execution_id: str,
    workflows: Optional[Path] = WorkflowsOption,
    store: Optional[str] = StoreOption,
) -> None:
    """Pause an in-progress execution and checkpoint it."""
    engine = _build_engine(workflows, store)
    _echo_result(_run(engine.pause(execution_id)))


@run_app.command("resume")
def run_resume(
    execution_id: str,
    workflows: Optional[Path] = WorkflowsOption,
    store: Optional[str] = StoreOption,
) -> None:
    """Resume a paused execution."""
    engine = _build_engine(workflows, store)
    _echo_result(_run(engine.resume(execution_id)))


@run_app.command("cancel")
def run_cancel(
    execution_id: str,
    reason: str = typer.Option("Cancelled by user", help="Reason recorded with the cancel"),
    workflows: Optional[Path] = WorkflowsOption,
    store: Optional[str] = StoreOption,
) -> None:
    """Cancel an execution that has not finished."""
    engine = _build_engine(workflows, store)
    result = _run(engine.cancel(execution_id, reason))
    typer.echo(f"Execution {result.execution_id}: {result.status.value}")


@run_app.command("restore")
def run_restore(
    execution_id: str,
    step_index: int,
    workflows: Optional[Path] = WorkflowsOption,
    store: Optional[str] = StoreOption,
) -> None:
    """Restore the latest checkpoint at STEP_INDEX and run from there."""
    engine = _build_engine(workflows, store)
    _echo_result(_run(engine.restore(execution_id, step_index)))


@run_app.command("list")
def run_list(
    status: Optional[ExecutionStatus] = typer.Option(None, help="Only show this status"),
    workflow: Optional[str] = typer.Option(None, help="Only show this workflow id"),
    store: Optional[str] = StoreOption,
) -> None:
    """
    List executions with their current status.

    Example:
        mdsflow run list --status awaiting_input
        # Output: 3f2c...    create-prd    awaiting_input    step 2
    """
    config = load_config()
    state_store = get_store(store, config)
    found = _run(state_store.list(StateFilter(status=status, workflow_id=workflow)))
    if not found:
        typer.echo("No executions found")
        return
    for record in found:
        typer.echo(
            f"{record.id}\t{record.workflow_id}\t{record.status.value}\t"
            f"step {record.current_step_index}"
        )


@run_app.command("show")
def run_show(execution_id: str, store: Optional[str] = StoreOption) -> None:
    """Show status, variables, artifacts and history for an execution."""
    config = load_config()
    state_store = get_store(store, config)
    record = _run(state_store.get(execution_id))
    if record is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    for line in describe_record(record):
        typer.echo(line)


# ----------------------------------------------------------------------
# agent
@agent_app.command("invoke")
def agent_invoke(
    agent_path: Path,
    trigger: str,
    var: Optional[List[str]] = VarOption,
    workflows: Optional[Path] = WorkflowsOption,
    store: Optional[str] = StoreOption,
) -> None:
    """
    Run a menu command from an agent definition file.

    Example:
        mdsflow agent invoke agents/pm.agent.yaml "*create-prd" --workflows ./workflows
    """
    variables = _variables(var)
    try:
        agent = load_agent(agent_path)
    except FileNotFoundError:
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except DefinitionValidationError as e:
        typer.secho(e.message, fg=typer.colors.RED)
        raise typer.Exit(code=1)

    engine = _build_engine(workflows, store)
    router = CommandRouter(engine, [agent])
    _echo_result(_run(router.invoke(agent.metadata.id, trigger, variables)))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
