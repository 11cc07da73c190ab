"""Workflow engine driving execution records through their steps."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from ..actions import ActionRunner, ContentGenerator
from ..conditions import ConditionEvaluator
from ..config import EngineConfig, MdsflowConfig
from ..constants import CONTINUATION_VARIABLE, EDIT_CONTENT_VARIABLE, STEP_VISITS_KEY
from ..context import ExecutionContext, resolve_variables
from ..contracts import RetryPolicy, StepSpec, WorkflowDefinition
from ..definitions import WorkflowCatalog
from ..errors import (
    ExecutionNotFound,
    HookCancelled,
    InvalidInput,
    InvalidTransition,
    StepLoopLimitExceeded,
)
from ..hooks import HookRunner, NoopHookRunner
from ..persistence.models import (
    Artifact,
    ErrorEntry,
    ExecutionRecord,
    ExecutionStatus,
    StateFilter,
)
from ..persistence.repository import StateStore
from . import records
from .events import EngineEvent, EventStream, EventType
from .executor import OutcomeKind, StepExecutor, StepOutcome
from .transitions import TransitionTable

logger = logging.getLogger(__name__)

_REVIEW_CHOICES = {
    "continue": "continue",
    "c": "continue",
    "regenerate": "regenerate",
    "r": "regenerate",
    "edit": "edit",
    "e": "edit",
}


class ExecutionResult(BaseModel):
    """What an engine operation hands back to its caller."""

    status: ExecutionStatus
    execution_id: str = ""
    message: str = ""
    artifacts: List[Artifact] = Field(default_factory=list)
    input_required: List[str] = Field(default_factory=list)
    prompt: Optional[str] = None
    options: List[str] = Field(default_factory=list)
    error: Optional[ErrorEntry] = None
    progress: Dict[str, Any] = Field(default_factory=dict)
    vetoed_by: Optional[str] = None
    record: Optional[ExecutionRecord] = None

    @property
    def vetoed(self) -> bool:
        return self.vetoed_by is not None


class WorkflowEngine:
    """Create, drive and control workflow executions.

    The engine is the only writer of an execution record while it is active.
    Every state change is applied through the transition table and persisted
    as a whole-record replacement; callers must serialize operations on a
    single execution id.
    """

    def __init__(
        self,
        store: StateStore,
        catalog: Optional[WorkflowCatalog] = None,
        action_runner: Optional[ActionRunner] = None,
        content_generator: Optional[ContentGenerator] = None,
        condition_evaluator: Optional[ConditionEvaluator] = None,
        hooks: Optional[HookRunner] = None,
        events: Optional[EventStream] = None,
        options: Optional[EngineConfig] = None,
        config: Optional[MdsflowConfig] = None,
    ) -> None:
        self.store = store
        self.catalog = catalog or WorkflowCatalog()
        self.config = config or MdsflowConfig()
        self.options = options or self.config.engine
        self.hooks = hooks or NoopHookRunner()
        self.events = events or EventStream()
        self.transitions = TransitionTable(allow_operator_resume=self.options.allow_halted_resume)
        self.executor = StepExecutor(
            action_runner=action_runner,
            content_generator=content_generator,
            condition_evaluator=condition_evaluator,
            default_retry=RetryPolicy(
                max_attempts=self.options.default_retry_attempts,
                delay_ms=self.options.default_retry_delay_ms,
            ),
        )

    # ------------------------------------------------------------------
    # Public operations
    async def start(
        self,
        workflow: Union[str, WorkflowDefinition],
        input: Optional[Dict[str, Any]] = None,
        context: Optional[ExecutionContext] = None,
    ) -> ExecutionResult:
        """Start ``workflow`` or pick up its active execution for this project."""
        definition = self._definition(workflow)
        context = context or ExecutionContext(project_id=self.config.project_id)

        existing = await self._find_active(definition.id, context.project_id)
        if existing is not None:
            logger.info(
                f"Found active execution {existing.id} for {definition.id}, continuing it"
            )
            if existing.status == ExecutionStatus.PAUSED:
                return await self.resume(existing.id, context)
            if existing.status == ExecutionStatus.AWAITING_INPUT and input:
                return await self.provide_input(existing.id, input, context)
            return await self._continue_record(existing, definition, context)

        payload = {
            "workflow_id": definition.id,
            "project_id": context.project_id,
            "input": dict(input or {}),
        }
        try:
            await self._run_before_hook("before_start", payload)
        except HookCancelled as e:
            return self._vetoed(e, None, definition)

        variables = resolve_variables(definition.variables, context, self.config)
        variables.update(input or {})
        record = records.create(
            definition.id,
            project_id=context.project_id,
            variables=variables,
            metadata={
                "workflow_name": definition.name,
                "session_id": context.session_id,
                "user": context.user,
            },
        )
        record = self.transitions.transition(record, ExecutionStatus.IN_PROGRESS)
        record, checkpoint = records.with_checkpoint(record)
        await self._save(record)
        logger.info(f"Started execution {record.id} of workflow {definition.id}")
        await self._emit_state_change(record)
        await self._emit(EventType.CHECKPOINT_CREATED, record, step_index=checkpoint.step_index)
        return await self._run_loop(record, definition, context)

    async def continue_(
        self, workflow_id: str, context: Optional[ExecutionContext] = None
    ) -> ExecutionResult:
        """Re-enter the step loop of the workflow's execution for this project.

        The active execution is preferred. Without one, the most recent
        execution is reported unchanged if it already finished.
        """
        definition = self._definition(workflow_id)
        context = context or ExecutionContext(project_id=self.config.project_id)
        candidates = await self.store.list(
            StateFilter(workflow_id=definition.id, project_id=context.project_id)
        )
        if not candidates:
            raise ExecutionNotFound(workflow_id)
        active = [r for r in candidates if r.is_active]
        record = max(active or candidates, key=lambda r: r.updated_at)
        return await self._continue_record(record, definition, context)

    async def continue_execution(
        self, execution_id: str, context: Optional[ExecutionContext] = None
    ) -> ExecutionResult:
        record = await self._load(execution_id)
        definition = self._definition(record.workflow_id)
        return await self._continue_record(record, definition, self._context(record, context))

    async def pause(self, execution_id: str) -> ExecutionResult:
        record = await self._load(execution_id)
        if record.status != ExecutionStatus.IN_PROGRESS:
            raise InvalidTransition(record.status.value, ExecutionStatus.PAUSED.value)
        definition = self._definition(record.workflow_id)

        record, checkpoint = records.with_checkpoint(record)
        record = self.transitions.transition(
            record, ExecutionStatus.PAUSED, details=f"Paused at step {record.current_step_index}"
        )
        await self._save(record)
        await self._emit(EventType.CHECKPOINT_CREATED, record, step_index=checkpoint.step_index)
        await self._emit_state_change(record)
        logger.info(f"Paused execution {record.id} at step {record.current_step_index}")
        return self.result_for(record, definition)

    async def resume(
        self, execution_id: str, context: Optional[ExecutionContext] = None
    ) -> ExecutionResult:
        """Resume a paused execution from the checkpoint taken when it paused.

        Halted executions can also be resumed when operator resume is enabled.
        """
        record = await self._load(execution_id)
        if record.status not in (ExecutionStatus.PAUSED, ExecutionStatus.HALTED):
            raise InvalidTransition(record.status.value, ExecutionStatus.IN_PROGRESS.value)
        definition = self._definition(record.workflow_id)
        context = self._context(record, context)

        was_paused = record.status == ExecutionStatus.PAUSED
        record = self.transitions.transition(record, ExecutionStatus.IN_PROGRESS)
        if was_paused and records.find_checkpoint(record, record.current_step_index):
            record = records.restore_checkpoint(
                record, record.current_step_index, details="Resumed from pause checkpoint"
            )
        await self._save(record)
        await self._emit_state_change(record)
        logger.info(f"Resumed execution {record.id} at step {record.current_step_index}")
        return await self._run_loop(record, definition, context)

    async def cancel(
        self,
        execution_id: str,
        reason: str = "Cancelled by user",
        context: Optional[ExecutionContext] = None,
    ) -> ExecutionResult:
        record = await self._load(execution_id)
        if record.is_terminal:
            raise InvalidTransition(record.status.value, ExecutionStatus.CANCELLED.value)
        definition = self._definition(record.workflow_id)
        context = self._context(record, context)

        record = records.record_error(record, "CANCELLED", reason, recoverable=False)
        record = self.transitions.transition(record, ExecutionStatus.CANCELLED, details=reason)
        await self._save(record)
        await self._emit_state_change(record)
        logger.info(f"Cancelled execution {record.id}: {reason}")
        await self._run_on_hook(
            "on_cancel",
            {"execution_id": record.id, "workflow_id": record.workflow_id, "reason": reason},
            context,
        )
        return self.result_for(record, definition, message=reason)

    async def provide_input(
        self,
        execution_id: str,
        input: Dict[str, Any],
        context: Optional[ExecutionContext] = None,
    ) -> ExecutionResult:
        """Supply the variables an ``awaiting_input`` execution asked for."""
        record = await self._load(execution_id)
        if record.status != ExecutionStatus.AWAITING_INPUT or record.awaiting_input is None:
            raise InvalidTransition(record.status.value, ExecutionStatus.IN_PROGRESS.value)
        definition = self._definition(record.workflow_id)
        context = self._context(record, context)
        awaiting = record.awaiting_input

        missing = [
            name for name in awaiting.variables if name not in input and name not in record.variables
        ]
        if missing:
            raise InvalidInput(f"Missing required input: {', '.join(missing)}", missing=missing)

        choice = None
        if awaiting.kind == "artifact_review":
            raw = str(input.get(CONTINUATION_VARIABLE, "")).strip().lower()
            choice = _REVIEW_CHOICES.get(raw)
            if choice is None:
                raise InvalidInput(
                    f"Unknown review action {raw!r}; expected one of {', '.join(awaiting.options)}"
                )
            if choice == "edit" and EDIT_CONTENT_VARIABLE not in input:
                raise InvalidInput(
                    f"Editing requires the '{EDIT_CONTENT_VARIABLE}' input",
                    missing=[EDIT_CONTENT_VARIABLE],
                )

        record = record.model_copy(deep=True)
        record.variables.update(input)
        record = self.transitions.transition(
            record, ExecutionStatus.IN_PROGRESS, details=", ".join(sorted(input)) or None
        )
        await self._emit_state_change(record)

        step_index = definition.index_of(awaiting.step_id) or record.current_step_index
        step = definition.step_at(step_index)
        if choice == "regenerate":
            logger.info(f"Regenerating artifact for step {step.id} of execution {record.id}")
        else:
            if choice == "edit":
                record = self._edited_artifact(record, step, str(input[EDIT_CONTENT_VARIABLE]))
            record = records.mark_completed(record, step.id)
            await self._step_completed(record, step)
            goto = None
            if step.goto is not None and self.executor.condition_evaluator.evaluate(
                step.goto.when, record.variables
            ):
                goto = step.goto.target
            record = await self._advance(record, definition, completed=True, goto=goto)
            if record.current_step_index > len(definition.steps):
                return await self._complete(record, definition, context)
        await self._save(record)
        return await self._run_loop(record, definition, context)

    async def restore(
        self,
        execution_id: str,
        step_index: int,
        context: Optional[ExecutionContext] = None,
    ) -> ExecutionResult:
        """Roll an execution back to a checkpoint and run from there."""
        record = await self._load(execution_id)
        if record.status in (ExecutionStatus.COMPLETED, ExecutionStatus.CANCELLED):
            raise InvalidTransition(record.status.value, ExecutionStatus.IN_PROGRESS.value)
        definition = self._definition(record.workflow_id)
        context = self._context(record, context)

        record = records.restore_checkpoint(record, step_index)
        await self._save(record)
        await self._emit_state_change(record)
        logger.info(f"Restored execution {record.id} to checkpoint at step {step_index}")
        return await self._run_loop(record, definition, context)

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        return await self.store.get(execution_id)

    async def get_active_executions(
        self, project_id: Optional[str] = None
    ) -> list[ExecutionRecord]:
        found = await self.store.list(StateFilter(project_id=project_id))
        return [r for r in found if r.is_active]

    # ------------------------------------------------------------------
    # Step loop
    async def _continue_record(
        self, record: ExecutionRecord, definition: WorkflowDefinition, context: ExecutionContext
    ) -> ExecutionResult:
        if record.status == ExecutionStatus.PAUSED:
            raise InvalidTransition(
                record.status.value,
                ExecutionStatus.IN_PROGRESS.value,
                message=f"Execution {record.id} is paused; resume it instead",
            )
        if record.status == ExecutionStatus.PENDING:
            record = self.transitions.transition(record, ExecutionStatus.IN_PROGRESS)
            await self._save(record)
            await self._emit_state_change(record)
        if record.status != ExecutionStatus.IN_PROGRESS:
            return self.result_for(record, definition)
        return await self._run_loop(record, definition, context)

    async def _run_loop(
        self, record: ExecutionRecord, definition: WorkflowDefinition, context: ExecutionContext
    ) -> ExecutionResult:
        total = len(definition.steps)
        limit = self.options.loop_limit_factor * total

        while record.current_step_index <= total:
            # Counted on the record so re-entering the loop does not reset it.
            visits = int(record.metadata.get(STEP_VISITS_KEY, 0)) + 1
            record = record.model_copy(
                update={"metadata": {**record.metadata, STEP_VISITS_KEY: visits}}
            )
            if visits > limit:
                return await self._fail(
                    record, definition, context, StepLoopLimitExceeded(limit), step_id=None
                )

            step = definition.step_at(record.current_step_index)

            if step.id in record.completed_steps:
                logger.debug(f"Step {step.id} already completed, not running it again")
                outcome = StepOutcome(kind=OutcomeKind.SKIP, step_id=step.id, reason="completed")
            elif any(dep not in record.completed_steps for dep in step.dependencies):
                outcome = StepOutcome(kind=OutcomeKind.SKIP, step_id=step.id, reason="dependencies")
            else:
                try:
                    await self._run_before_hook(
                        "before_step",
                        {
                            "execution_id": record.id,
                            "workflow_id": record.workflow_id,
                            "step_id": step.id,
                            "step_index": record.current_step_index,
                            "variables": dict(record.variables),
                        },
                    )
                except HookCancelled as e:
                    return self._vetoed(e, record, definition)

                logger.info(
                    f"Execution {record.id}: starting step {step.id} ({step.label})"
                )
                await self._emit(EventType.STEP_START, record, step_id=step.id)
                try:
                    outcome = await self.executor.execute(step, record, context)
                except Exception as e:
                    logger.error(f"Step {step.id} of execution {record.id} is invalid: {e}")
                    return await self._fail(record, definition, context, e, step_id=step.id)

                interrupted = await self._interrupted(record)
                if interrupted is not None:
                    return self.result_for(interrupted, definition)

            result = await self._apply(record, definition, context, step, outcome)
            if isinstance(result, ExecutionResult):
                return result
            record = result
            if record.current_step_index > total:
                break
            await self._save(record)
            await self._emit(EventType.PROGRESS, record, **records.progress(record, total))

        return await self._complete(record, definition, context)

    async def _apply(
        self,
        record: ExecutionRecord,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        step: StepSpec,
        outcome: StepOutcome,
    ) -> Union[ExecutionRecord, ExecutionResult]:
        """Fold ``outcome`` into the record, or finish the loop with a result."""
        record = record.model_copy(deep=True)
        record.variables.update(outcome.variables)
        for artifact in outcome.artifacts:
            record = records.with_artifact(record, artifact)

        if outcome.kind == OutcomeKind.FAILED and not step.required:
            error = outcome.error
            logger.warning(f"Optional step {step.id} failed, skipping: {error.message}")
            record = records.record_error(
                record, error.code, error.message, step_id=step.id, recoverable=True
            )
            await self._emit(EventType.STEP_FAIL, record, step_id=step.id, error=error.message)
            await self._emit(EventType.WARNING, record, step_id=step.id, message=error.message)
            outcome = StepOutcome(kind=OutcomeKind.SKIP, step_id=step.id, reason="failed")

        if outcome.kind == OutcomeKind.SUCCESS:
            record = records.mark_completed(record, step.id)
            await self._step_completed(record, step)
            return await self._advance(record, definition, completed=True, goto=outcome.goto)

        if outcome.kind == OutcomeKind.SKIP:
            await self._emit(EventType.STEP_SKIP, record, step_id=step.id, reason=outcome.reason)
            return await self._advance(record, definition, completed=False)

        if outcome.kind == OutcomeKind.AWAIT_INPUT:
            record.awaiting_input = outcome.awaiting
            record = self.transitions.transition(
                record, ExecutionStatus.AWAITING_INPUT, details=f"Step {step.id}"
            )
            await self._save(record)
            await self._emit_state_change(record)
            return self.result_for(record, definition)

        if outcome.kind == OutcomeKind.HALT:
            record.halt_reason = outcome.halt_reason
            record = self.transitions.transition(
                record, ExecutionStatus.HALTED, details=outcome.halt_reason
            )
            await self._save(record)
            await self._emit_state_change(record)
            logger.info(f"Execution {record.id} halted at step {step.id}: {outcome.halt_reason}")
            return self.result_for(record, definition)

        error = outcome.error
        await self._emit(EventType.STEP_FAIL, record, step_id=step.id, error=error.message)
        return await self._fail_with_entry(record, definition, context, error)

    async def _step_completed(self, record: ExecutionRecord, step: StepSpec) -> None:
        logger.info(f"Execution {record.id}: completed step {step.id}")
        await self._emit(EventType.STEP_COMPLETE, record, step_id=step.id)
        await self.hooks.execute_hook(
            "after_step",
            {
                "execution_id": record.id,
                "workflow_id": record.workflow_id,
                "step_id": step.id,
                "variables": dict(record.variables),
            },
        )

    async def _advance(
        self,
        record: ExecutionRecord,
        definition: WorkflowDefinition,
        completed: bool,
        goto: Optional[int] = None,
    ) -> ExecutionRecord:
        current = record.current_step_index
        record = record.model_copy(deep=True)
        if goto is not None:
            if goto <= current:
                # Jumping back re-opens every step between the target and here.
                reopened = {definition.step_at(i).id for i in range(goto, current + 1)}
                record.completed_steps = [s for s in record.completed_steps if s not in reopened]
            record.current_step_index = goto
        else:
            record.current_step_index = current + 1

        interval = self.options.checkpoint_interval
        if (
            completed
            and record.current_step_index <= len(definition.steps)
            and len(record.completed_steps) % interval == 0
        ):
            record, checkpoint = records.with_checkpoint(record)
            logger.debug(f"Checkpoint at step {checkpoint.step_index} for execution {record.id}")
            await self._emit(
                EventType.CHECKPOINT_CREATED, record, step_index=checkpoint.step_index
            )
        return record

    async def _complete(
        self, record: ExecutionRecord, definition: WorkflowDefinition, context: ExecutionContext
    ) -> ExecutionResult:
        record = self.transitions.transition(record, ExecutionStatus.COMPLETED)
        await self._save(record)
        await self._emit_state_change(record)
        logger.info(f"Execution {record.id} of workflow {definition.id} completed")
        await self.hooks.execute_hook(
            "after_complete",
            {
                "execution_id": record.id,
                "workflow_id": record.workflow_id,
                "artifacts": [a.model_dump() for a in record.artifacts],
            },
        )
        return self.result_for(record, definition)

    async def _fail(
        self,
        record: ExecutionRecord,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        error: Exception,
        step_id: Any,
    ) -> ExecutionResult:
        entry = ErrorEntry(
            step_id=step_id,
            code=getattr(error, "code", "STEP_INVALID"),
            message=str(error),
            recoverable=False,
        )
        return await self._fail_with_entry(record, definition, context, entry)

    async def _fail_with_entry(
        self,
        record: ExecutionRecord,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        entry: ErrorEntry,
    ) -> ExecutionResult:
        record = records.record_error(
            record, entry.code, entry.message, step_id=entry.step_id, recoverable=entry.recoverable
        )
        record = self.transitions.transition(record, ExecutionStatus.ERROR, details=entry.message)
        await self._save(record)
        logger.error(f"Execution {record.id} failed [{entry.code}]: {entry.message}")
        await self._emit_state_change(record)
        await self._emit(EventType.ERROR, record, code=entry.code, message=entry.message)
        await self._run_on_hook(
            "on_error",
            {
                "execution_id": record.id,
                "workflow_id": record.workflow_id,
                "error": entry.model_dump(mode="json"),
            },
            context,
        )
        return self.result_for(record, definition)

    # ------------------------------------------------------------------
    # Helpers
    def _definition(self, workflow: Union[str, WorkflowDefinition]) -> WorkflowDefinition:
        if isinstance(workflow, WorkflowDefinition):
            self.catalog.register(workflow)
            return workflow
        return self.catalog.get(workflow)

    def _context(
        self, record: ExecutionRecord, context: Optional[ExecutionContext]
    ) -> ExecutionContext:
        if context is not None:
            return context
        return ExecutionContext(
            project_id=record.project_id,
            user=record.metadata.get("user"),
            session_id=record.metadata.get("session_id") or record.id,
        )

    async def _load(self, execution_id: str) -> ExecutionRecord:
        record = await self.store.get(execution_id)
        if record is None:
            raise ExecutionNotFound(execution_id)
        return record

    async def _find_active(self, workflow_id: str, project_id: str) -> ExecutionRecord | None:
        found = await self.store.list(StateFilter(workflow_id=workflow_id, project_id=project_id))
        active = [r for r in found if r.is_active]
        if not active:
            return None
        return max(active, key=lambda r: r.updated_at)

    async def _interrupted(self, record: ExecutionRecord) -> ExecutionRecord | None:
        """Return the stored record if another caller changed its status mid-step."""
        stored = await self.store.get(record.id)
        if stored is not None and stored.status != record.status:
            logger.info(
                f"Execution {record.id} moved to {stored.status.value} while a step was running"
            )
            return stored
        return None

    async def _save(self, record: ExecutionRecord) -> None:
        await self.store.set(record.id, record)

    async def _emit(self, event_type: EventType, record: ExecutionRecord, **data: Any) -> None:
        await self.events.emit(
            EngineEvent(
                type=event_type,
                execution_id=record.id,
                workflow_id=record.workflow_id,
                data=data,
            )
        )

    async def _emit_state_change(self, record: ExecutionRecord) -> None:
        last = record.history[-1]
        await self._emit(
            EventType.STATE_CHANGE,
            record,
            from_status=last.from_status.value,
            to_status=last.to_status.value,
            trigger=last.trigger,
        )

    async def _run_on_hook(
        self, name: str, payload: Dict[str, Any], context: ExecutionContext
    ) -> None:
        result = await self.hooks.execute_hook(name, payload)
        context.data.update({k: v for k, v in result.items() if k not in payload})

    def _edited_artifact(
        self, record: ExecutionRecord, step: StepSpec, content: str
    ) -> ExecutionRecord:
        previous = [a for a in record.artifacts if a.step_id == step.id]
        section = (
            previous[-1].section
            if previous
            else (step.template_output.section if step.template_output else str(step.id))
        )
        version = max((a.version for a in previous), default=0) + 1
        return records.with_artifact(
            record, Artifact(section=section, content=content, step_id=step.id, version=version)
        )

    async def _run_before_hook(self, name: str, payload: Dict[str, Any]) -> None:
        result = await self.hooks.execute_hook(name, payload)
        if result.get("cancelled"):
            raise HookCancelled(name, result.get("cancelled_by"))

    def _vetoed(
        self,
        veto: HookCancelled,
        record: Optional[ExecutionRecord],
        definition: WorkflowDefinition,
    ) -> ExecutionResult:
        cancelled_by = veto.cancelled_by or veto.hook_name
        logger.info(f"Workflow {definition.id}: {veto.message}")
        return ExecutionResult(
            status=ExecutionStatus.HALTED,
            execution_id=record.id if record else "",
            message=veto.message,
            vetoed_by=cancelled_by,
            progress=records.progress(record, len(definition.steps)) if record else {},
            record=record,
        )

    def result_for(
        self,
        record: ExecutionRecord,
        definition: WorkflowDefinition,
        message: Optional[str] = None,
    ) -> ExecutionResult:
        """Describe ``record`` to a caller."""
        status = record.status
        result = ExecutionResult(
            status=status,
            execution_id=record.id,
            progress=records.progress(record, len(definition.steps)),
            record=record,
        )
        if status == ExecutionStatus.COMPLETED:
            result.message = message or f"Workflow {definition.id} completed"
            result.artifacts = list(record.artifacts)
        elif status == ExecutionStatus.AWAITING_INPUT and record.awaiting_input is not None:
            result.message = message or record.awaiting_input.prompt
            result.prompt = record.awaiting_input.prompt
            result.input_required = list(record.awaiting_input.variables)
            result.options = list(record.awaiting_input.options)
            result.artifacts = list(record.artifacts)
        elif status == ExecutionStatus.HALTED:
            result.message = message or record.halt_reason or "Workflow halted"
        elif status in (ExecutionStatus.ERROR, ExecutionStatus.CANCELLED):
            result.error = record.errors[-1] if record.errors else None
            result.message = message or (result.error.message if result.error else status.value)
        elif status == ExecutionStatus.PAUSED:
            result.message = message or f"Workflow paused at step {record.current_step_index}"
        else:
            result.message = message or f"Workflow {status.value}"
        return result
