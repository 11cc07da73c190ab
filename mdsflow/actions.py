"""Action runners and artifact content generators used by the step executor."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union

from .context import DocumentLoader, ExecutionContext, substitute
from .contracts import ActionSpec, TemplateOutput
from .errors import HaltRequested, StepExecutionError
from .persistence.models import ExecutionRecord

logger = logging.getLogger(__name__)

ActionResult = Optional[Dict[str, Any]]
ActionHandler = Callable[
    [ActionSpec, ExecutionRecord, ExecutionContext],
    Union[ActionResult, Awaitable[ActionResult]],
]


class ActionRunner(Protocol):
    async def run(
        self, action: ActionSpec, record: ExecutionRecord, context: ExecutionContext
    ) -> ActionResult:
        """Execute ``action`` and return variables it produced."""


class ContentGenerator(Protocol):
    async def generate(
        self, spec: TemplateOutput, record: ExecutionRecord, context: ExecutionContext
    ) -> str:
        """Produce artifact content for a ``template_output`` directive."""


def _substitute_value(value: Any, variables: Dict[str, Any], config: Dict[str, Any]) -> Any:
    if isinstance(value, str):
        return substitute(value, variables, config)
    if isinstance(value, dict):
        return {k: _substitute_value(v, variables, config) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute_value(v, variables, config) for v in value]
    return value


class RegistryActionRunner:
    """Dispatch actions to handlers registered by action ``type``.

    Handlers may be plain functions or coroutines. A handler returning a
    mapping contributes those variables to the step; any other non-``None``
    value is stored under ``result``.
    """

    def __init__(
        self,
        handlers: Optional[Dict[str, ActionHandler]] = None,
        document_loader: Optional[DocumentLoader] = None,
        include_builtins: bool = True,
    ) -> None:
        self.document_loader = document_loader or DocumentLoader()
        self._handlers: Dict[str, ActionHandler] = {}
        if include_builtins:
            self._handlers.update(
                {
                    "set": self._set,
                    "log": self._log,
                    "load_document": self._load_document,
                    "halt": self._halt,
                }
            )
        self._handlers.update(handlers or {})

    def register(self, action_type: str, handler: ActionHandler) -> None:
        self._handlers[action_type] = handler

    def __contains__(self, action_type: str) -> bool:
        return action_type in self._handlers

    async def run(
        self, action: ActionSpec, record: ExecutionRecord, context: ExecutionContext
    ) -> ActionResult:
        handler = self._handlers.get(action.type)
        if handler is None:
            raise StepExecutionError(
                f"No handler registered for action type {action.type!r}",
                code="UNKNOWN_ACTION",
            )
        result = handler(action, record, context)
        if inspect.isawaitable(result):
            result = await result
        if result is None:
            return {}
        if isinstance(result, dict):
            return result
        return {"result": result}

    # ------------------------------------------------------------------
    # Built-in actions
    def _set(
        self, action: ActionSpec, record: ExecutionRecord, context: ExecutionContext
    ) -> Dict[str, Any]:
        return _substitute_value(dict(action.params), record.variables, context.config)

    def _log(
        self, action: ActionSpec, record: ExecutionRecord, context: ExecutionContext
    ) -> None:
        message = substitute(str(action.params.get("message", "")), record.variables, context.config)
        level = str(action.params.get("level", "info")).upper()
        logger.log(getattr(logging, level, logging.INFO), f"[{record.workflow_id}] {message}")

    def _load_document(
        self, action: ActionSpec, record: ExecutionRecord, context: ExecutionContext
    ) -> Dict[str, Any]:
        path = action.params.get("path")
        if not path:
            raise StepExecutionError("load_document requires a 'path' parameter")
        path = substitute(str(path), record.variables, context.config)
        if path in context.documents:
            content = context.documents[path]
        else:
            try:
                content = self.document_loader.load(path)
            except OSError as e:
                raise StepExecutionError(f"Failed to load document {path}: {e}") from e
        return {action.params.get("variable", "document"): content}

    def _halt(
        self, action: ActionSpec, record: ExecutionRecord, context: ExecutionContext
    ) -> None:
        reason = substitute(
            str(action.params.get("reason", "Halted by action")), record.variables, context.config
        )
        raise HaltRequested(reason)


class TemplateContentGenerator:
    """Render artifact content from the directive's template.

    An empty template renders a bare section heading.
    """

    async def generate(
        self, spec: TemplateOutput, record: ExecutionRecord, context: ExecutionContext
    ) -> str:
        template = spec.template or f"## {spec.section}\n"
        return substitute(template, record.variables, context.config)
