"""Load agent and workflow definitions from YAML and keep them in a catalog."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional

import yaml
from pydantic import ValidationError

from .cli_utils.fs import iter_definition_files
from .constants import WORKFLOW_FILE_PATTERNS
from .contracts import AgentDefinition, WorkflowDefinition
from .errors import DefinitionValidationError, WorkflowNotFound

logger = logging.getLogger(__name__)


def _read_mapping(path: str | Path) -> Dict[str, Any]:
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise DefinitionValidationError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise DefinitionValidationError(f"{path} must contain a mapping at the top level")
    return data


def _validation_errors(error: ValidationError) -> list[dict[str, Any]]:
    return [
        {
            "path": ".".join(str(part) for part in item["loc"]),
            "message": item["msg"],
            "type": item["type"],
        }
        for item in error.errors()
    ]


def parse_workflow(data: Dict[str, Any], source: str = "<memory>") -> WorkflowDefinition:
    """Validate a workflow mapping.

    A top-level ``workflow:`` key is unwrapped so both flat files and files
    nesting the definition under ``workflow`` are accepted.
    """
    if "workflow" in data and isinstance(data["workflow"], dict):
        data = data["workflow"]
    try:
        return WorkflowDefinition.model_validate(data)
    except ValidationError as e:
        raise DefinitionValidationError(
            f"Workflow definition {source} is invalid", errors=_validation_errors(e)
        ) from e


def parse_agent(data: Dict[str, Any], source: str = "<memory>") -> AgentDefinition:
    if "agent" in data and isinstance(data["agent"], dict):
        data = data["agent"]
    try:
        return AgentDefinition.model_validate(data)
    except ValidationError as e:
        raise DefinitionValidationError(
            f"Agent definition {source} is invalid", errors=_validation_errors(e)
        ) from e


def load_workflow(path: str | Path) -> WorkflowDefinition:
    return parse_workflow(_read_mapping(path), source=str(path))


def load_agent(path: str | Path) -> AgentDefinition:
    return parse_agent(_read_mapping(path), source=str(path))


def discover_workflow_files(
    path: str | Path, respect_gitignore: bool = True
) -> Iterator[Path]:
    """Yield workflow YAML files contained within ``path``."""
    yield from iter_definition_files(
        Path(path), WORKFLOW_FILE_PATTERNS, respect_gitignore=respect_gitignore
    )


class WorkflowCatalog:
    """Workflow definitions available to the engine, keyed by id."""

    def __init__(self, definitions: Optional[Iterable[WorkflowDefinition]] = None) -> None:
        self._definitions: Dict[str, WorkflowDefinition] = {}
        for definition in definitions or []:
            self.register(definition)

    def register(self, definition: WorkflowDefinition) -> None:
        if definition.id in self._definitions:
            logger.debug(f"Replacing workflow definition {definition.id}")
        self._definitions[definition.id] = definition

    def get(self, workflow_id: str) -> WorkflowDefinition:
        try:
            return self._definitions[workflow_id]
        except KeyError:
            raise WorkflowNotFound(workflow_id) from None

    def ids(self) -> list[str]:
        return sorted(self._definitions)

    def __contains__(self, workflow_id: object) -> bool:
        return workflow_id in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def load_directory(self, path: str | Path, respect_gitignore: bool = True) -> list[str]:
        """Load every workflow file below ``path``.

        Invalid files are logged and skipped. Returns the ids that were loaded.
        """
        loaded: list[str] = []
        for workflow_file in discover_workflow_files(path, respect_gitignore=respect_gitignore):
            try:
                definition = load_workflow(workflow_file)
            except DefinitionValidationError as e:
                logger.warning(f"Skipping {workflow_file}: {e.message}")
                continue
            self.register(definition)
            loaded.append(definition.id)
        return loaded
