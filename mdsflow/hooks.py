"""Hook registry invoked by the engine at fixed extension points."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

logger = logging.getLogger(__name__)

HookPayload = Dict[str, Any]
HookHandler = Callable[[HookPayload], Union[Optional[HookPayload], Awaitable[Optional[HookPayload]]]]

DEFAULT_PRIORITY = 100


class HookPhase(str, Enum):
    BEFORE = "before"
    AFTER = "after"
    ON = "on"


@dataclass(frozen=True)
class ExtensionPoint:
    name: str
    phase: HookPhase = HookPhase.ON
    cancellable: bool = False


EXTENSION_POINTS: Dict[str, ExtensionPoint] = {
    "before_start": ExtensionPoint("before_start", HookPhase.BEFORE, cancellable=True),
    "before_step": ExtensionPoint("before_step", HookPhase.BEFORE, cancellable=True),
    "after_step": ExtensionPoint("after_step", HookPhase.AFTER),
    "after_complete": ExtensionPoint("after_complete", HookPhase.AFTER),
    "on_error": ExtensionPoint("on_error", HookPhase.ON),
    "on_cancel": ExtensionPoint("on_cancel", HookPhase.ON),
}


class HookRunner(Protocol):
    async def execute_hook(self, name: str, payload: HookPayload) -> HookPayload:
        """Run every handler for ``name`` and return the resulting payload.

        A cancellable hook that is vetoed returns a payload with
        ``cancelled`` set to ``True`` and ``cancelled_by`` naming the handler.
        """


class NoopHookRunner:
    """Hook runner that returns every payload unchanged."""

    async def execute_hook(self, name: str, payload: HookPayload) -> HookPayload:
        return dict(payload)


@dataclass
class HookRegistration:
    hook: str
    handler: HookHandler
    plugin: str
    priority: int = DEFAULT_PRIORITY


class HookRegistry:
    """Ordered callbacks per extension point.

    Handlers run in ascending ``priority`` order. A ``before`` phase handler
    returning ``{"cancelled": True}`` stops the chain and vetoes the
    operation. Results of ``on`` phase handlers are merged into the payload.
    Handler errors are logged and skipped unless ``strict`` is set.
    """

    def __init__(self, strict: bool = False) -> None:
        self.strict = strict
        self._extension_points: Dict[str, ExtensionPoint] = dict(EXTENSION_POINTS)
        self._hooks: Dict[str, List[HookRegistration]] = {}

    def register_extension_point(
        self, name: str, phase: HookPhase = HookPhase.ON, cancellable: bool = False
    ) -> None:
        if name in self._extension_points:
            raise ValueError(f"Extension point already exists: {name}")
        self._extension_points[name] = ExtensionPoint(name, phase, cancellable)

    def register(
        self,
        hook: str,
        handler: HookHandler,
        plugin: Optional[str] = None,
        priority: int = DEFAULT_PRIORITY,
    ) -> None:
        if hook not in self._extension_points:
            raise ValueError(f"Unknown hook: {hook}")
        registration = HookRegistration(
            hook=hook,
            handler=handler,
            plugin=plugin or getattr(handler, "__name__", "anonymous"),
            priority=priority,
        )
        handlers = self._hooks.setdefault(hook, [])
        handlers.append(registration)
        handlers.sort(key=lambda r: r.priority)

    def unregister(self, hook: str, plugin: str) -> None:
        self._hooks[hook] = [r for r in self._hooks.get(hook, []) if r.plugin != plugin]

    def handlers(self, hook: str) -> List[HookRegistration]:
        return list(self._hooks.get(hook, []))

    async def execute_hook(self, name: str, payload: HookPayload) -> HookPayload:
        point = self._extension_points.get(name)
        if point is None:
            logger.warning(f"Unknown hook: {name}")
            return dict(payload)

        result = dict(payload)
        for registration in self._hooks.get(name, []):
            try:
                outcome = registration.handler(dict(result))
                if inspect.isawaitable(outcome):
                    outcome = await outcome
            except Exception as e:
                if self.strict:
                    raise
                logger.error(f"Hook {name} handler {registration.plugin} failed: {e}")
                continue

            if not isinstance(outcome, dict):
                continue
            if point.cancellable and outcome.get("cancelled"):
                return {**result, "cancelled": True, "cancelled_by": registration.plugin}
            if point.phase == HookPhase.ON:
                result = {**result, **outcome}
        return result
