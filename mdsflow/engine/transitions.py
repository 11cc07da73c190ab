"""Legal status transitions for execution records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from ..errors import InvalidTransition, TransitionConditionUnmet
from ..persistence.models import ExecutionRecord, ExecutionStatus, HistoryEntry, utcnow

logger = logging.getLogger(__name__)

RecordPredicate = Callable[[ExecutionRecord], bool]
RecordAction = Callable[[ExecutionRecord], None]


@dataclass(frozen=True)
class TransitionRule:
    """A permitted move into ``to_status`` from any of ``from_statuses``."""

    from_statuses: frozenset[ExecutionStatus]
    to_status: ExecutionStatus
    trigger: str
    condition: Optional[RecordPredicate] = None
    action: Optional[RecordAction] = None

    def applies(self, from_status: ExecutionStatus, to_status: ExecutionStatus) -> bool:
        return from_status in self.from_statuses and to_status == self.to_status


def _has_awaiting_input(record: ExecutionRecord) -> bool:
    return record.awaiting_input is not None


def _clear_awaiting_input(record: ExecutionRecord) -> None:
    record.awaiting_input = None


def _stamp_completed(record: ExecutionRecord) -> None:
    record.awaiting_input = None
    record.completed_at = utcnow()


def _clear_halt_reason(record: ExecutionRecord) -> None:
    record.halt_reason = None


S = ExecutionStatus

DEFAULT_RULES: tuple[TransitionRule, ...] = (
    TransitionRule(frozenset({S.PENDING}), S.IN_PROGRESS, "workflow_started"),
    TransitionRule(
        frozenset({S.IN_PROGRESS}),
        S.AWAITING_INPUT,
        "input_required",
        condition=_has_awaiting_input,
    ),
    TransitionRule(
        frozenset({S.AWAITING_INPUT}),
        S.IN_PROGRESS,
        "input_received",
        action=_clear_awaiting_input,
    ),
    TransitionRule(frozenset({S.IN_PROGRESS}), S.PAUSED, "user_paused"),
    TransitionRule(frozenset({S.PAUSED}), S.IN_PROGRESS, "user_resumed"),
    TransitionRule(
        frozenset({S.IN_PROGRESS, S.AWAITING_INPUT}),
        S.COMPLETED,
        "workflow_completed",
        action=_stamp_completed,
    ),
    TransitionRule(
        frozenset({S.IN_PROGRESS, S.AWAITING_INPUT}),
        S.HALTED,
        "workflow_halted",
        action=_clear_awaiting_input,
    ),
    TransitionRule(
        frozenset({S.PENDING, S.IN_PROGRESS, S.AWAITING_INPUT, S.PAUSED}),
        S.ERROR,
        "error_occurred",
        action=_clear_awaiting_input,
    ),
    TransitionRule(
        frozenset({S.PENDING, S.IN_PROGRESS, S.AWAITING_INPUT, S.PAUSED}),
        S.CANCELLED,
        "workflow_cancelled",
        action=_clear_awaiting_input,
    ),
)

OPERATOR_RESUME_RULE = TransitionRule(
    frozenset({S.HALTED}), S.IN_PROGRESS, "operator_resumed", action=_clear_halt_reason
)


class TransitionTable:
    """Static lookup of legal status changes.

    ``transition`` never mutates its argument: it returns an updated copy
    with the new status and exactly one extra history entry.
    """

    def __init__(
        self,
        rules: Optional[Iterable[TransitionRule]] = None,
        allow_operator_resume: bool = False,
    ) -> None:
        self._rules: list[TransitionRule] = list(rules if rules is not None else DEFAULT_RULES)
        if allow_operator_resume:
            self._rules.append(OPERATOR_RESUME_RULE)

    @property
    def rules(self) -> list[TransitionRule]:
        return list(self._rules)

    def find_rule(
        self, from_status: ExecutionStatus, to_status: ExecutionStatus
    ) -> TransitionRule | None:
        for rule in self._rules:
            if rule.applies(from_status, to_status):
                return rule
        return None

    def can_transition(self, from_status: ExecutionStatus, to_status: ExecutionStatus) -> bool:
        return self.find_rule(from_status, to_status) is not None

    def transition(
        self,
        record: ExecutionRecord,
        to_status: ExecutionStatus,
        details: Optional[str] = None,
    ) -> ExecutionRecord:
        from_status = record.status
        rule = self.find_rule(from_status, to_status)
        if rule is None:
            raise InvalidTransition(from_status.value, to_status.value)
        if rule.condition is not None and not rule.condition(record):
            raise TransitionConditionUnmet(from_status.value, to_status.value)

        updated = record.model_copy(deep=True)
        if rule.action is not None:
            rule.action(updated)
        now = utcnow()
        updated.status = to_status
        updated.updated_at = now
        updated.history.append(
            HistoryEntry(
                from_status=from_status,
                to_status=to_status,
                trigger=rule.trigger,
                timestamp=now,
                details=details,
            )
        )
        logger.debug(
            f"Execution {record.id}: {from_status.value} -> {to_status.value} ({rule.trigger})"
        )
        return updated
