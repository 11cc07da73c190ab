"""Utility functions to interact with workflow files and runs from the CLI."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

from ..contracts import WorkflowDefinition
from ..persistence.models import ExecutionRecord


def _format_workflow_path(path: Path, search_path: Path) -> str:
    resolved_path = path.resolve()
    candidate_bases = []
    if search_path.is_dir():
        candidate_bases.append(search_path.resolve())
    else:
        candidate_bases.append(search_path.parent.resolve())
    candidate_bases.append(Path.cwd())

    for base in candidate_bases:
        try:
            rel = resolved_path.relative_to(base)
            return f"./{rel}"
        except ValueError:
            continue
    return str(path)


def parse_variables(values: Optional[Iterable[str]]) -> dict[str, Any]:
    """Parse ``key=value`` pairs, reading each value as a YAML scalar.

    ``approved=true`` gives ``{"approved": True}`` and ``count=3`` gives
    ``{"count": 3}``; anything that is not valid YAML stays a string.
    """

    variables: dict[str, Any] = {}
    for item in values or []:
        if "=" not in item:
            raise ValueError(f"Expected key=value, got {item!r}")
        key, raw = item.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Missing variable name in {item!r}")
        try:
            variables[key] = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError:
            variables[key] = raw
    return variables


def workflow_step_labels(definition: WorkflowDefinition) -> list[str]:
    """Return ``id: label`` strings for each step, in order."""

    return [f"{step.id}: {step.label}" for step in definition.steps]


def describe_record(record: ExecutionRecord, total_steps: Optional[int] = None) -> list[str]:
    lines = [f"Execution {record.id}: {record.status.value}"]
    lines.append(f"Workflow: {record.workflow_id} (project {record.project_id})")
    step = f"{record.current_step_index}"
    if total_steps is not None:
        step += f"/{total_steps}"
    lines.append(f"Current step: {step}")
    if record.completed_steps:
        lines.append(f"Completed steps: {', '.join(str(s) for s in record.completed_steps)}")
    if record.variables:
        lines.append(f"Variables: {record.variables}")
    if record.awaiting_input is not None:
        lines.append(f"Awaiting input: {', '.join(record.awaiting_input.variables)}")
    if record.halt_reason:
        lines.append(f"Halt reason: {record.halt_reason}")
    for artifact in record.artifacts:
        lines.append(f"- artifact {artifact.section} v{artifact.version} ({len(artifact.content)} chars)")
    for entry in record.history:
        lines.append(
            f"- {entry.timestamp:%Y-%m-%d %H:%M:%S} {entry.from_status.value} -> "
            f"{entry.to_status.value} [{entry.trigger}]"
        )
    for error in record.errors:
        lines.append(f"! {error.code}: {error.message}")
    return lines
