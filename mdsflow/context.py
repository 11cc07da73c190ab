"""Execution context, document loading and variable substitution."""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, Field

from .config import MdsflowConfig
from .constants import DEFAULT_PROJECT_ID
from .contracts import VariableDefinition

logger = logging.getLogger(__name__)

_VARIABLE_PATTERN = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}")
_CONFIG_PATTERN = re.compile(r"\{config:([\w.\-]+)\}")
_SYSTEM_PATTERN = re.compile(r"\{system:([\w\-]+)\}")


class ExecutionContext(BaseModel):
    """Caller-supplied information available to a workflow run.

    Steps only read from it. The engine merges the output of ``on`` phase
    hooks into ``data``.
    """

    user: Optional[str] = None
    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str = DEFAULT_PROJECT_ID
    mode: Literal["interactive", "autonomous"] = "interactive"
    config: Dict[str, Any] = Field(default_factory=dict)
    documents: Dict[str, str] = Field(default_factory=dict)
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def autonomous(self) -> bool:
        return self.mode == "autonomous"


class DocumentLoader:
    """Read text documents relative to a base directory, caching the result."""

    def __init__(self, base_path: str | Path = ".") -> None:
        self.base_path = Path(base_path)
        self._cache: dict[Path, str] = {}

    def resolve(self, path: str | Path) -> Path:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.base_path / candidate
        return candidate.resolve()

    def load(self, path: str | Path) -> str:
        resolved = self.resolve(path)
        if resolved not in self._cache:
            logger.debug(f"Loading document {resolved}")
            self._cache[resolved] = resolved.read_text(encoding="utf-8")
        return self._cache[resolved]

    def clear(self) -> None:
        self._cache.clear()


def lookup(data: Any, path: str) -> Any:
    """Follow a dotted ``path`` through nested mappings. Missing keys give ``None``."""
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return None
    return current


def system_values(config: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
    config = config or {}
    now = datetime.now()
    return {
        "date": now.date().isoformat(),
        "datetime": now.isoformat(timespec="seconds"),
        "timestamp": int(now.timestamp()),
        "project_root": config.get("project_root", "."),
        "output_folder": config.get("output_folder", "docs"),
    }


def _config_mapping(config: MdsflowConfig | Mapping[str, Any] | None) -> dict[str, Any]:
    if config is None:
        return {}
    if isinstance(config, MdsflowConfig):
        return config.model_dump()
    return dict(config)


def _lookup_config(config: Mapping[str, Any], path: str) -> Any:
    value = lookup(config.get("variables", {}), path)
    if value is None:
        value = lookup(config, path)
    return value


def substitute(
    template: str,
    variables: Mapping[str, Any],
    config: MdsflowConfig | Mapping[str, Any] | None = None,
) -> str:
    """Replace ``{{var}}``, ``{config:key}`` and ``{system:key}`` placeholders.

    Placeholders that cannot be resolved are left as they are.
    """
    conf = _config_mapping(config)
    system = system_values(conf)

    def _replace_with(source_lookup):
        def _replace(match: re.Match[str]) -> str:
            value = source_lookup(match.group(1))
            return match.group(0) if value is None else str(value)

        return _replace

    result = _VARIABLE_PATTERN.sub(_replace_with(lambda key: lookup(variables, key)), template)
    result = _CONFIG_PATTERN.sub(_replace_with(lambda key: _lookup_config(conf, key)), result)
    result = _SYSTEM_PATTERN.sub(_replace_with(system.get), result)
    return result


def resolve_variables(
    definitions: Mapping[str, VariableDefinition],
    context: Optional[ExecutionContext] = None,
    config: MdsflowConfig | Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Resolve declared workflow variables into concrete starting values.

    ``config`` variables read from configuration by dotted path, ``system``
    variables from the runtime, ``context`` variables from ``context.data``.
    ``input`` and ``computed`` variables start from their default and are
    expected to be filled in by the caller or by step actions.
    """
    conf = _config_mapping(config)
    if context is not None and context.config:
        conf = {**conf, **context.config}
    system = system_values(conf)
    data = context.data if context is not None else {}

    resolved: dict[str, Any] = {}
    for name, definition in definitions.items():
        key = definition.path or name
        value: Any = None
        if definition.source == "config":
            value = _lookup_config(conf, key)
        elif definition.source == "system":
            value = system.get(key)
        elif definition.source == "context":
            value = lookup(data, key)
        if value is None:
            value = definition.default
        if isinstance(value, str):
            value = substitute(value, resolved, conf)
        resolved[name] = value
    return resolved


__all__ = [
    "DocumentLoader",
    "ExecutionContext",
    "lookup",
    "resolve_variables",
    "substitute",
    "system_values",
]
