"""Route agent menu triggers to workflows, atomic tasks or single actions."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel

from .context import ExecutionContext
from .contracts import ActionSpec, AgentDefinition, AgentMenuItem, WorkflowDefinition
from .definitions import load_workflow
from .engine import records
from .engine.executor import OutcomeKind
from .engine.workflow import ExecutionResult, WorkflowEngine
from .errors import CommandNotFound, HaltRequested, StepExecutionError
from .persistence.models import ErrorEntry, ExecutionStatus

logger = logging.getLogger(__name__)


class CommandKind(str, Enum):
    WORKFLOW = "workflow"
    TASK = "task"
    EXEC = "exec"


class Command(BaseModel):
    """A resolved menu entry."""

    kind: CommandKind
    agent_id: str
    trigger: str
    description: str = ""
    target: Optional[str] = None
    action: Optional[ActionSpec] = None


def _normalize_trigger(trigger: str) -> str:
    return trigger.strip().lstrip("*").lower()


def _command_from_item(agent_id: str, item: AgentMenuItem) -> Command:
    if item.workflow is not None:
        return Command(
            kind=CommandKind.WORKFLOW,
            agent_id=agent_id,
            trigger=item.trigger,
            description=item.description,
            target=item.workflow,
        )
    if item.task is not None:
        return Command(
            kind=CommandKind.TASK,
            agent_id=agent_id,
            trigger=item.trigger,
            description=item.description,
            target=item.task,
        )
    return Command(
        kind=CommandKind.EXEC,
        agent_id=agent_id,
        trigger=item.trigger,
        description=item.description,
        action=item.exec,
    )


class CommandRouter:
    """Dispatch agent commands through a typed command table.

    Workflow commands go through the engine and are persisted. Task commands
    run every step of the target workflow once, in memory. Exec commands run
    one action directly.
    """

    def __init__(
        self, engine: WorkflowEngine, agents: Optional[Iterable[AgentDefinition]] = None
    ) -> None:
        self.engine = engine
        self._commands: Dict[str, Dict[str, Command]] = {}
        for agent in agents or []:
            self.register_agent(agent)

    def register_agent(self, agent: AgentDefinition) -> None:
        table: Dict[str, Command] = {}
        for item in agent.menu:
            table[_normalize_trigger(item.trigger)] = _command_from_item(agent.metadata.id, item)
        self._commands[agent.metadata.id] = table
        logger.debug(f"Registered agent {agent.metadata.id} with {len(table)} command(s)")

    def commands(self, agent_id: str) -> List[Command]:
        return list(self._commands.get(agent_id, {}).values())

    def resolve(self, agent_id: str, trigger: str) -> Command:
        command = self._commands.get(agent_id, {}).get(_normalize_trigger(trigger))
        if command is None:
            raise CommandNotFound(agent_id, trigger)
        return command

    async def invoke(
        self,
        agent_id: str,
        trigger: str,
        input: Optional[Dict[str, Any]] = None,
        context: Optional[ExecutionContext] = None,
    ) -> ExecutionResult:
        command = self.resolve(agent_id, trigger)
        context = context or ExecutionContext(project_id=self.engine.config.project_id)
        logger.info(f"Agent {agent_id} invoking {command.kind.value} command {command.trigger}")
        if command.kind == CommandKind.WORKFLOW:
            return await self.engine.start(self._workflow(command.target), input, context)
        if command.kind == CommandKind.TASK:
            return await self.run_task(self._workflow(command.target), input, context)
        return await self.run_exec(command, input, context)

    def _workflow(self, target: Optional[str]) -> WorkflowDefinition | str:
        if target and Path(target).suffix in (".yaml", ".yml") and Path(target).is_file():
            definition = load_workflow(target)
            self.engine.catalog.register(definition)
            return definition
        return target or ""

    async def run_task(
        self,
        workflow: WorkflowDefinition | str,
        input: Optional[Dict[str, Any]] = None,
        context: Optional[ExecutionContext] = None,
    ) -> ExecutionResult:
        """Run every step of ``workflow`` once without persisting anything.

        Artifacts are accepted as generated. A step that asks for input the
        caller has not supplied ends the task with ``awaiting_input``; invoke
        the task again with that input.
        """
        definition = (
            workflow if isinstance(workflow, WorkflowDefinition) else self.engine.catalog.get(workflow)
        )
        context = (context or ExecutionContext()).model_copy(update={"mode": "autonomous"})
        transitions = self.engine.transitions
        record = records.create(
            definition.id, project_id=context.project_id, variables=dict(input or {})
        )
        record = transitions.transition(record, ExecutionStatus.IN_PROGRESS)

        for index, step in enumerate(definition.steps, start=1):
            record.current_step_index = index
            if any(dep not in record.completed_steps for dep in step.dependencies):
                continue
            outcome = await self.engine.executor.execute(step, record, context)
            record.variables.update(outcome.variables)
            for artifact in outcome.artifacts:
                record = records.with_artifact(record, artifact)

            if outcome.kind == OutcomeKind.AWAIT_INPUT:
                missing = [v for v in outcome.awaiting.variables if v not in record.variables]
                if missing:
                    record.awaiting_input = outcome.awaiting
                    record = transitions.transition(record, ExecutionStatus.AWAITING_INPUT)
                    return self.engine.result_for(record, definition)
                record = records.mark_completed(record, step.id)
            elif outcome.kind == OutcomeKind.SUCCESS:
                record = records.mark_completed(record, step.id)
            elif outcome.kind == OutcomeKind.HALT:
                record.halt_reason = outcome.halt_reason
                record = transitions.transition(record, ExecutionStatus.HALTED)
                return self.engine.result_for(record, definition)
            elif outcome.kind == OutcomeKind.FAILED:
                error = outcome.error
                record = records.record_error(
                    record, error.code, error.message, step_id=step.id, recoverable=error.recoverable
                )
                if step.required:
                    record = transitions.transition(record, ExecutionStatus.ERROR)
                    return self.engine.result_for(record, definition)

        record.current_step_index = len(definition.steps) + 1
        record = transitions.transition(record, ExecutionStatus.COMPLETED)
        return self.engine.result_for(record, definition)

    async def run_exec(
        self,
        command: Command,
        input: Optional[Dict[str, Any]] = None,
        context: Optional[ExecutionContext] = None,
    ) -> ExecutionResult:
        """Run a single action outside any workflow."""
        context = context or ExecutionContext()
        record = records.create(
            f"exec:{command.trigger}", project_id=context.project_id, variables=dict(input or {})
        )
        record = self.engine.transitions.transition(record, ExecutionStatus.IN_PROGRESS)
        try:
            outputs = await self.engine.executor.action_runner.run(command.action, record, context)
        except HaltRequested as e:
            record.halt_reason = e.reason
            record = self.engine.transitions.transition(record, ExecutionStatus.HALTED)
            return ExecutionResult(
                status=record.status, execution_id=record.id, message=e.reason, record=record
            )
        except Exception as e:
            code = e.code if isinstance(e, StepExecutionError) else "COMMAND_ERROR"
            logger.error(f"Command {command.trigger} of agent {command.agent_id} failed: {e}")
            record = records.record_error(record, code, str(e))
            record = self.engine.transitions.transition(record, ExecutionStatus.ERROR)
            return ExecutionResult(
                status=record.status,
                execution_id=record.id,
                message=str(e),
                error=ErrorEntry(code=code, message=str(e)),
                record=record,
            )
        record.variables.update(outputs or {})
        record.current_step_index = 2
        record = self.engine.transitions.transition(record, ExecutionStatus.COMPLETED)
        return ExecutionResult(
            status=record.status,
            execution_id=record.id,
            message=f"Command {command.trigger} completed",
            record=record,
        )
