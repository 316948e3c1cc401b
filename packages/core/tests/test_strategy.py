"""Tests for resolving duplicate matches under each strategy."""

from __future__ import annotations

import pytest
from ledgersync_core import IncompleteReview, InvalidDuplicateAction, StrategyResolver
from ledgersync_schemas import (
    DuplicateAction,
    DuplicateActionType,
    DuplicateMatch,
    DuplicateStrategy,
)

MATCHES = [
    DuplicateMatch(
        candidate_row_number=row,
        existing_transaction_id=100 + row,
        confidence=95,
        match_reason="test",
    )
    for row in (1, 2, 3)
]


def _action(row: int, action_type: DuplicateActionType) -> DuplicateAction:
    return DuplicateAction(
        candidate_row_number=row,
        existing_transaction_id=100 + row,
        action_type=action_type,
    )


@pytest.mark.parametrize(
    ("strategy", "expected"),
    [
        (DuplicateStrategy.SKIP_ALL, DuplicateActionType.SKIP),
        (DuplicateStrategy.AUTO_MERGE, DuplicateActionType.MERGE),
        (DuplicateStrategy.KEEP_ALL, DuplicateActionType.KEEP_BOTH),
    ],
)
def test_automatic_strategies_fill_every_match(
    strategy: DuplicateStrategy, expected: DuplicateActionType
) -> None:
    plan = StrategyResolver().resolve(MATCHES, strategy)

    assert plan.rows_with(expected) == [1, 2, 3]


def test_recorded_actions_override_strategy_default() -> None:
    plan = StrategyResolver().resolve(
        MATCHES,
        DuplicateStrategy.AUTO_MERGE,
        [_action(2, DuplicateActionType.NOT_DUPLICATE)],
    )

    assert plan.rows_with(DuplicateActionType.MERGE) == [1, 3]
    assert plan.rows_with(DuplicateActionType.NOT_DUPLICATE) == [2]


@pytest.mark.parametrize("count", [0, 1, 2, 3])
def test_review_each_requires_an_action_per_match(count: int) -> None:
    actions = [_action(row, DuplicateActionType.SKIP) for row in (1, 2, 3)[:count]]
    resolver = StrategyResolver()

    if count == len(MATCHES):
        plan = resolver.resolve(MATCHES, DuplicateStrategy.REVIEW_EACH, actions)
        assert plan.rows_with(DuplicateActionType.SKIP) == [1, 2, 3]
    else:
        with pytest.raises(IncompleteReview) as excinfo:
            resolver.resolve(MATCHES, DuplicateStrategy.REVIEW_EACH, actions)
        assert (excinfo.value.expected, excinfo.value.received) == (3, count)


def test_review_each_with_no_matches_needs_no_actions() -> None:
    plan = StrategyResolver().resolve([], DuplicateStrategy.REVIEW_EACH)

    assert plan.actions == {}


def test_extra_action_counts_as_incomplete_review() -> None:
    actions = [_action(row, DuplicateActionType.SKIP) for row in (1, 2, 3)]
    actions.append(_action(3, DuplicateActionType.MERGE))

    with pytest.raises(IncompleteReview):
        StrategyResolver().resolve(MATCHES, DuplicateStrategy.REVIEW_EACH, actions)


@pytest.mark.parametrize(
    "action",
    [
        DuplicateAction(
            candidate_row_number=9,
            existing_transaction_id=109,
            action_type=DuplicateActionType.SKIP,
        ),
        DuplicateAction(
            candidate_row_number=1,
            existing_transaction_id=999,
            action_type=DuplicateActionType.MERGE,
        ),
    ],
)
def test_actions_must_line_up_with_matches(action: DuplicateAction) -> None:
    with pytest.raises(InvalidDuplicateAction):
        StrategyResolver().resolve(MATCHES, DuplicateStrategy.KEEP_ALL, [action])


def test_duplicate_actions_for_one_row_are_rejected() -> None:
    actions = [_action(1, DuplicateActionType.SKIP), _action(1, DuplicateActionType.MERGE)]

    with pytest.raises(InvalidDuplicateAction):
        StrategyResolver().resolve(MATCHES, DuplicateStrategy.SKIP_ALL, actions)


def test_pending_lists_unreviewed_matches() -> None:
    resolver = StrategyResolver()
    actions = [_action(2, DuplicateActionType.SKIP)]

    pending = resolver.pending(MATCHES, DuplicateStrategy.REVIEW_EACH, actions)

    assert [m.candidate_row_number for m in pending] == [1, 3]
    assert resolver.pending(MATCHES, DuplicateStrategy.AUTO_MERGE) == []
