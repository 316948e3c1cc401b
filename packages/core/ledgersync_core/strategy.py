"""Resolve duplicate matches into concrete actions under a strategy."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from ledgersync_schemas import (
    DuplicateAction,
    DuplicateActionType,
    DuplicateMatch,
    DuplicateStrategy,
)

from .errors import IncompleteReview, InvalidDuplicateAction

_STRATEGY_DEFAULTS: dict[DuplicateStrategy, DuplicateActionType | None] = {
    DuplicateStrategy.SKIP_ALL: DuplicateActionType.SKIP,
    DuplicateStrategy.AUTO_MERGE: DuplicateActionType.MERGE,
    DuplicateStrategy.KEEP_ALL: DuplicateActionType.KEEP_BOTH,
    DuplicateStrategy.REVIEW_EACH: None,
}


@dataclass(slots=True)
class ResolutionPlan:
    """Final action for every matched row, keyed by candidate row number."""

    actions: dict[int, DuplicateAction] = field(default_factory=dict)

    def action_for(self, row_number: int) -> DuplicateAction | None:
        return self.actions.get(row_number)

    def rows_with(self, action_type: DuplicateActionType) -> list[int]:
        return sorted(
            row for row, action in self.actions.items() if action.action_type is action_type
        )


def validate_actions(
    matches: Sequence[DuplicateMatch], actions: Iterable[DuplicateAction]
) -> dict[int, DuplicateAction]:
    """Index actions by row, rejecting any that do not line up with a match."""
    by_row = {match.candidate_row_number: match for match in matches}
    indexed: dict[int, DuplicateAction] = {}
    for action in actions:
        match = by_row.get(action.candidate_row_number)
        if match is None:
            raise InvalidDuplicateAction(
                f"Row {action.candidate_row_number} has no duplicate match to act on"
            )
        if match.existing_transaction_id != action.existing_transaction_id:
            raise InvalidDuplicateAction(
                f"Row {action.candidate_row_number} matched transaction "
                f"{match.existing_transaction_id}, not {action.existing_transaction_id}"
            )
        if action.candidate_row_number in indexed:
            raise InvalidDuplicateAction(
                f"Row {action.candidate_row_number} has more than one action"
            )
        indexed[action.candidate_row_number] = action
    return indexed


class StrategyResolver:
    """Turn matches plus recorded actions into a complete plan.

    Recorded actions always win; the strategy only decides what happens to
    matches nobody has acted on yet.
    """

    def resolve(
        self,
        matches: Sequence[DuplicateMatch],
        strategy: DuplicateStrategy,
        actions: Iterable[DuplicateAction] = (),
    ) -> ResolutionPlan:
        actions = list(actions)
        if strategy is DuplicateStrategy.REVIEW_EACH and len(actions) != len(matches):
            raise IncompleteReview(expected=len(matches), received=len(actions))
        recorded = validate_actions(matches, actions)

        default = _STRATEGY_DEFAULTS[strategy]
        plan = ResolutionPlan()
        for match in matches:
            action = recorded.get(match.candidate_row_number)
            if action is None:
                if default is None:
                    raise IncompleteReview(expected=len(matches), received=len(recorded))
                action = DuplicateAction(
                    candidate_row_number=match.candidate_row_number,
                    existing_transaction_id=match.existing_transaction_id,
                    action_type=default,
                )
            plan.actions[match.candidate_row_number] = action
        return plan

    def pending(
        self,
        matches: Sequence[DuplicateMatch],
        strategy: DuplicateStrategy,
        actions: Iterable[DuplicateAction] = (),
    ) -> list[DuplicateMatch]:
        """Matches that still block commit under ``strategy``."""
        if strategy is not DuplicateStrategy.REVIEW_EACH:
            return []
        resolved = {action.candidate_row_number for action in actions}
        return [match for match in matches if match.candidate_row_number not in resolved]


__all__ = ["ResolutionPlan", "StrategyResolver", "validate_actions"]
