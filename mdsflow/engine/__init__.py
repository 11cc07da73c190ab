"""Workflow state machine and step execution engine."""

from __future__ import annotations

from . import records
from .events import EngineEvent, EventStream, EventType
from .executor import OutcomeKind, StepExecutor, StepOutcome
from .transitions import TransitionRule, TransitionTable
from .workflow import ExecutionResult, WorkflowEngine

__all__ = [
    "EngineEvent",
    "EventStream",
    "EventType",
    "ExecutionResult",
    "OutcomeKind",
    "StepExecutor",
    "StepOutcome",
    "TransitionRule",
    "TransitionTable",
    "WorkflowEngine",
    "records",
]
