"""Runs a single workflow step and reports what the engine should do next."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..actions import ActionRunner, ContentGenerator, RegistryActionRunner, TemplateContentGenerator
from ..conditions import ConditionEvaluator, ExpressionConditionEvaluator
from ..constants import (
    CONTINUATION_OPTIONS,
    CONTINUATION_VARIABLE,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY_MS,
)
from ..context import ExecutionContext, substitute
from ..contracts import RetryPolicy, StepId, StepSpec
from ..errors import HaltRequested, StepExecutionError, StepTimeoutError
from ..persistence.models import Artifact, AwaitingInput, ErrorEntry, ExecutionRecord
from ..utils.retry import schedule_retry

logger = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    SKIP = "skip"
    AWAIT_INPUT = "await_input"
    HALT = "halt"
    FAILED = "failed"


class StepOutcome(BaseModel):
    """Result of one step. ``variables`` and ``artifacts`` are deltas."""

    kind: OutcomeKind
    step_id: Optional[StepId] = None
    variables: dict[str, Any] = Field(default_factory=dict)
    artifacts: list[Artifact] = Field(default_factory=list)
    awaiting: Optional[AwaitingInput] = None
    goto: Optional[int] = None
    halt_reason: Optional[str] = None
    error: Optional[ErrorEntry] = None
    attempts: int = 0
    reason: Optional[str] = None


def continuation_prompt(section: str) -> str:
    return (
        f"Generated section '{section}'. "
        "Reply with continue [c], regenerate [r] or edit [e]."
    )


class StepExecutor:
    """Execute one step specification against a read-only record.

    Guard conditions and step directives are evaluated here; declared actions
    are delegated to the action runner with the step's retry policy and
    timeout applied.
    """

    def __init__(
        self,
        action_runner: Optional[ActionRunner] = None,
        content_generator: Optional[ContentGenerator] = None,
        condition_evaluator: Optional[ConditionEvaluator] = None,
        default_retry: Optional[RetryPolicy] = None,
    ) -> None:
        self.action_runner = action_runner or RegistryActionRunner()
        self.content_generator = content_generator or TemplateContentGenerator()
        self.condition_evaluator = condition_evaluator or ExpressionConditionEvaluator()
        self.default_retry = default_retry or RetryPolicy(
            max_attempts=DEFAULT_RETRY_ATTEMPTS, delay_ms=DEFAULT_RETRY_DELAY_MS
        )

    async def execute(
        self, step: StepSpec, record: ExecutionRecord, context: ExecutionContext
    ) -> StepOutcome:
        if not self.condition_evaluator.evaluate(step.condition, record.variables):
            logger.debug(f"Step {step.id} guard is false, skipping")
            return StepOutcome(kind=OutcomeKind.SKIP, step_id=step.id, reason="condition")

        policy = step.retry or self.default_retry
        attempt = 1
        while True:
            try:
                variables, artifacts = await self._attempt(step, record, context)
            except HaltRequested as e:
                return StepOutcome(
                    kind=OutcomeKind.HALT,
                    step_id=step.id,
                    halt_reason=e.reason,
                    attempts=attempt,
                )
            except StepExecutionError as e:
                last_error = e
            except Exception as e:
                last_error = StepExecutionError(str(e) or type(e).__name__, step_id=step.id)
                last_error.__cause__ = e
            else:
                return self._resolve(step, record, context, variables, artifacts, attempt)

            if attempt >= policy.max_attempts:
                break
            logger.warning(
                f"Step {step.id} attempt {attempt}/{policy.max_attempts} failed: "
                f"{last_error.message}; retrying"
            )
            await schedule_retry(attempt, policy.delay_ms)
            attempt += 1

        logger.error(
            f"Step {step.id} failed after {policy.max_attempts} attempt(s): {last_error.message}"
        )
        return StepOutcome(
            kind=OutcomeKind.FAILED,
            step_id=step.id,
            attempts=policy.max_attempts,
            error=ErrorEntry(
                step_id=step.id,
                code=last_error.code,
                message=last_error.message,
                recoverable=not step.required,
            ),
        )

    async def _attempt(
        self, step: StepSpec, record: ExecutionRecord, context: ExecutionContext
    ) -> tuple[dict[str, Any], list[Artifact]]:
        work = self._run_actions(step, record, context)
        if step.timeout_ms is None:
            return await work
        try:
            return await asyncio.wait_for(work, timeout=step.timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise StepTimeoutError(
                f"Step {step.id} timed out after {step.timeout_ms}ms", step_id=step.id
            ) from e

    async def _run_actions(
        self, step: StepSpec, record: ExecutionRecord, context: ExecutionContext
    ) -> tuple[dict[str, Any], list[Artifact]]:
        delta: dict[str, Any] = {}
        for action in step.actions:
            view = record.model_copy(update={"variables": {**record.variables, **delta}})
            outputs = await self.action_runner.run(action, view, context)
            if outputs:
                delta.update(outputs)

        artifacts: list[Artifact] = []
        if step.template_output is not None:
            view = record.model_copy(update={"variables": {**record.variables, **delta}})
            content = await self.content_generator.generate(step.template_output, view, context)
            artifacts.append(
                Artifact(
                    section=step.template_output.section,
                    content=content,
                    step_id=step.id,
                    version=_next_version(record, step.id, step.template_output.section),
                )
            )
        return delta, artifacts

    def _resolve(
        self,
        step: StepSpec,
        record: ExecutionRecord,
        context: ExecutionContext,
        variables: dict[str, Any],
        artifacts: list[Artifact],
        attempts: int,
    ) -> StepOutcome:
        merged = {**record.variables, **variables}
        base = {
            "step_id": step.id,
            "variables": variables,
            "artifacts": artifacts,
            "attempts": attempts,
        }

        if step.halt is not None and self.condition_evaluator.evaluate(step.halt.when, merged):
            return StepOutcome(
                kind=OutcomeKind.HALT,
                halt_reason=substitute(step.halt.reason, merged, context.config),
                **base,
            )

        if step.template_output is not None and not context.autonomous:
            return StepOutcome(
                kind=OutcomeKind.AWAIT_INPUT,
                awaiting=AwaitingInput(
                    prompt=continuation_prompt(step.template_output.section),
                    variables=[CONTINUATION_VARIABLE],
                    options=list(CONTINUATION_OPTIONS),
                    step_id=step.id,
                    kind="artifact_review",
                ),
                **base,
            )

        if step.ask is not None:
            return StepOutcome(
                kind=OutcomeKind.AWAIT_INPUT,
                awaiting=AwaitingInput(
                    prompt=substitute(step.ask.prompt, merged, context.config),
                    variables=list(step.ask.variables),
                    options=list(step.ask.options),
                    step_id=step.id,
                    kind="ask",
                ),
                **base,
            )

        goto = None
        if step.goto is not None and self.condition_evaluator.evaluate(step.goto.when, merged):
            goto = step.goto.target
        return StepOutcome(kind=OutcomeKind.SUCCESS, goto=goto, **base)


def _next_version(record: ExecutionRecord, step_id: Optional[StepId], section: str) -> int:
    versions = [
        a.version for a in record.artifacts if a.step_id == step_id and a.section == section
    ]
    return max(versions) + 1 if versions else 1


__all__ = ["OutcomeKind", "StepExecutor", "StepOutcome", "continuation_prompt"]
