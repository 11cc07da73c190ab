"""Exception types raised by the mdsflow engine and its collaborators."""

from __future__ import annotations

from typing import Any, Optional


class MdsflowError(Exception):
    """Base class for all mdsflow errors."""

    code = "RUNTIME_ERROR"
    recoverable = False

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        recoverable: Optional[bool] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
        }


class InvalidTransition(MdsflowError):
    """Requested status change is not in the transition table."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, message: Optional[str] = None):
        super().__init__(
            message or f"Invalid transition: {from_status} -> {to_status}",
            details={"from": from_status, "to": to_status},
        )
        self.from_status = from_status
        self.to_status = to_status


class TransitionConditionUnmet(MdsflowError):
    """A transition rule exists but its guard rejected the record."""

    code = "TRANSITION_CONDITION_UNMET"

    def __init__(self, from_status: str, to_status: str):
        super().__init__(
            f"Transition condition not met: {from_status} -> {to_status}",
            details={"from": from_status, "to": to_status},
        )
        self.from_status = from_status
        self.to_status = to_status


class CheckpointNotFound(MdsflowError):
    code = "CHECKPOINT_NOT_FOUND"

    def __init__(self, step_index: int):
        super().__init__(
            f"Checkpoint not found for step: {step_index}",
            details={"step_index": step_index},
        )
        self.step_index = step_index


class StepExecutionError(MdsflowError):
    """An action failed while executing a step.

    Retries are handled by the step executor; this error only escapes once
    the retry policy is exhausted.
    """

    code = "STEP_FAILED"
    recoverable = True

    def __init__(self, message: str, *, step_id: Any = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.step_id = step_id


class StepTimeoutError(StepExecutionError):
    code = "STEP_TIMEOUT"


class HaltRequested(MdsflowError):
    """Raised by an action to stop the workflow in the ``halted`` state."""

    code = "HALT_REQUESTED"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class HookCancelled(MdsflowError):
    """A cancellable before-hook vetoed the pending operation."""

    code = "HOOK_CANCELLED"
    recoverable = True

    def __init__(self, hook_name: str, cancelled_by: Optional[str] = None):
        by = f" by {cancelled_by}" if cancelled_by else ""
        super().__init__(
            f"Operation vetoed by hook {hook_name}{by}",
            details={"hook": hook_name, "cancelled_by": cancelled_by},
        )
        self.hook_name = hook_name
        self.cancelled_by = cancelled_by


class StateStoreError(MdsflowError, OSError):
    """State store I/O failure. Aborts the calling engine operation."""

    code = "STATE_STORE_ERROR"
    recoverable = True


class StepLoopLimitExceeded(MdsflowError):
    code = "STEP_LOOP_LIMIT"

    def __init__(self, limit: int):
        super().__init__(
            f"Step execution limit of {limit} exceeded",
            details={"limit": limit},
        )
        self.limit = limit


class ExecutionNotFound(MdsflowError):
    code = "EXECUTION_NOT_FOUND"

    def __init__(self, execution_id: str):
        super().__init__(f"Execution not found: {execution_id}")
        self.execution_id = execution_id


class WorkflowNotFound(MdsflowError):
    code = "WORKFLOW_NOT_FOUND"

    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


class DefinitionValidationError(MdsflowError):
    """A YAML agent or workflow definition failed validation."""

    code = "DEFINITION_INVALID"

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None):
        super().__init__(message, details={"errors": errors or []})
        self.errors = errors or []


class InvalidInput(MdsflowError):
    """Input supplied to an awaiting execution does not satisfy its prompt."""

    code = "INVALID_INPUT"
    recoverable = True

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        super().__init__(message, details={"missing": missing or []})
        self.missing = missing or []


class ConditionError(MdsflowError):
    """A guard expression could not be parsed or uses unsupported syntax."""

    code = "CONDITION_INVALID"


class CommandNotFound(MdsflowError):
    code = "COMMAND_NOT_FOUND"

    def __init__(self, agent_id: str, trigger: str):
        super().__init__(f"Command {trigger!r} not found for agent {agent_id}")
        self.agent_id = agent_id
        self.trigger = trigger


__all__ = [
    "MdsflowError",
    "InvalidTransition",
    "TransitionConditionUnmet",
    "CheckpointNotFound",
    "StepExecutionError",
    "StepTimeoutError",
    "HaltRequested",
    "HookCancelled",
    "StateStoreError",
    "StepLoopLimitExceeded",
    "ExecutionNotFound",
    "WorkflowNotFound",
    "DefinitionValidationError",
    "InvalidInput",
    "ConditionError",
    "CommandNotFound",
]
