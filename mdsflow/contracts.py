"""Definition contracts for mdsflow agents and workflows."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import MAX_RETRY_ATTEMPTS

logger = logging.getLogger(__name__)

StepId = Union[int, str]


class ActionSpec(BaseModel):
    """One declared action inside a step, delegated to the action runner."""

    type: str
    params: Dict[str, Any] = Field(default_factory=dict)


class TemplateOutput(BaseModel):
    """Directive asking the step to produce an artifact section."""

    section: str
    template: str = ""


class AskDirective(BaseModel):
    """Directive asking the user for one or more variables."""

    prompt: str
    variables: List[str] = Field(default_factory=list)
    options: List[str] = Field(default_factory=list)


class RetryPolicy(BaseModel):
    max_attempts: int = Field(default=1, ge=1, le=MAX_RETRY_ATTEMPTS)
    delay_ms: int = Field(default=1000, ge=0)


class GotoDirective(BaseModel):
    """Jump to ``target`` (1-based step index) when ``when`` holds."""

    target: int = Field(..., ge=1)
    when: Optional[str] = None


class HaltDirective(BaseModel):
    reason: str = "Workflow halted"
    when: Optional[str] = None


class StepSpec(BaseModel):
    """Defines one step in a workflow."""

    id: Optional[StepId] = None
    name: str = ""
    goal: str = ""
    condition: Optional[str] = None
    actions: List[ActionSpec] = Field(default_factory=list)
    template_output: Optional[TemplateOutput] = None
    ask: Optional[AskDirective] = None
    dependencies: List[StepId] = Field(default_factory=list)
    retry: Optional[RetryPolicy] = None
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    required: bool = True
    goto: Optional[GotoDirective] = None
    halt: Optional[HaltDirective] = None

    @field_validator("goto", mode="before")
    @classmethod
    def _coerce_goto(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return {"target": value}
        return value

    @field_validator("halt", mode="before")
    @classmethod
    def _coerce_halt(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"reason": value}
        return value

    @property
    def label(self) -> str:
        return self.name or self.goal or str(self.id)


class VariableDefinition(BaseModel):
    source: Literal["config", "system", "context", "input", "computed"] = "input"
    path: Optional[str] = None
    default: Any = None
    required: bool = False
    prompt: Optional[str] = None


class WorkflowDefinition(BaseModel):
    """A validated, immutable workflow definition."""

    id: str
    name: str = ""
    description: str = ""
    version: Optional[str] = None
    variables: Dict[str, VariableDefinition] = Field(default_factory=dict)
    steps: List[StepSpec] = Field(..., min_length=1)
    hooks: Dict[str, List[str]] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_steps(self) -> "WorkflowDefinition":
        seen: set[StepId] = set()
        for index, step in enumerate(self.steps, start=1):
            if step.id is None:
                step.id = index
            if step.id in seen:
                raise ValueError(f"Duplicate step id: {step.id}")
            seen.add(step.id)
        for step in self.steps:
            missing = [dep for dep in step.dependencies if dep not in seen]
            if missing:
                raise ValueError(f"Step {step.id} depends on unknown steps: {missing}")
            if step.goto and step.goto.target > len(self.steps):
                raise ValueError(
                    f"Step {step.id} goto target {step.goto.target} is out of range"
                )
        return self

    def step_at(self, index: int) -> StepSpec:
        """Return the step at the 1-based ``index``."""
        return self.steps[index - 1]

    def index_of(self, step_id: StepId) -> Optional[int]:
        for index, step in enumerate(self.steps, start=1):
            if step.id == step_id:
                return index
        return None


class AgentMetadata(BaseModel):
    id: str
    name: str
    title: str = ""
    module: str = "core"
    description: Optional[str] = None


class AgentMenuItem(BaseModel):
    """A trigger exposed by an agent. Exactly one target must be set."""

    trigger: str
    description: str = ""
    workflow: Optional[str] = None
    task: Optional[str] = None
    exec: Optional[ActionSpec] = None

    @model_validator(mode="after")
    def _single_target(self) -> "AgentMenuItem":
        targets = [t for t in (self.workflow, self.task, self.exec) if t is not None]
        if len(targets) != 1:
            raise ValueError(
                f"Menu item {self.trigger!r} must declare exactly one of workflow, task or exec"
            )
        return self


class AgentDefinition(BaseModel):
    metadata: AgentMetadata
    menu: List[AgentMenuItem] = Field(default_factory=list)

    model_config = {"frozen": True}
