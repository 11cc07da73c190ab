"""Event stream emitted by the workflow engine."""

from __future__ import annotations

import inspect
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from ..persistence.models import utcnow

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    STATE_CHANGE = "state_change"
    STEP_START = "step_start"
    STEP_COMPLETE = "step_complete"
    STEP_FAIL = "step_fail"
    STEP_SKIP = "step_skip"
    CHECKPOINT_CREATED = "checkpoint_created"
    PROGRESS = "progress"
    ERROR = "error"
    WARNING = "warning"


class EngineEvent(BaseModel):
    type: EventType
    execution_id: str
    workflow_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    data: Dict[str, Any] = Field(default_factory=dict)


EventCallback = Callable[[EngineEvent], Union[None, Awaitable[None]]]


class EventStream:
    """Fan engine events out to subscribed callbacks in subscription order.

    A failing subscriber is logged and does not affect the execution.
    """

    def __init__(self) -> None:
        self._subscribers: List[tuple[Optional[EventType], EventCallback]] = []

    def subscribe(
        self, callback: EventCallback, event_type: Optional[EventType] = None
    ) -> Callable[[], None]:
        """Register ``callback`` and return a function that removes it."""
        entry = (event_type, callback)
        self._subscribers.append(entry)

        def _unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return _unsubscribe

    async def emit(self, event: EngineEvent) -> None:
        for event_type, callback in list(self._subscribers):
            if event_type is not None and event_type != event.type:
                continue
            try:
                outcome = callback(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(f"Event subscriber failed on {event.type.value}: {e}")
