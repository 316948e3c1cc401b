"""Commit a reviewed import as one atomic ledger mutation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ledgersync_schemas import (
    CandidateTransaction,
    DuplicateActionType,
    ExecuteImportRequest,
    ImportBatch,
    ImportSummary,
    LedgerTransaction,
    NewLedgerTransaction,
    TransactionType,
)

from .config import EngineSettings
from .errors import BatchTooLarge, CommitFailure, NothingToImport, StorageError
from .ledger import LedgerSession, LedgerStore
from .logging_setup import get_logger
from .matching import DuplicateMatcher
from .strategy import ResolutionPlan, StrategyResolver

logger = get_logger(__name__)

Clock = Callable[[], datetime]

# Actions that still put the candidate on the ledger as a brand new row.
_INSERTING_ACTIONS = frozenset({DuplicateActionType.KEEP_BOTH, DuplicateActionType.NOT_DUPLICATE})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_batch_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class _Tally:
    """Running totals while the commit walks the final row set."""

    inserted_ids: list[int] = field(default_factory=list)
    merged_snapshots: list[LedgerTransaction] = field(default_factory=list)
    total_skipped: int = 0
    total_income: int = 0
    total_expenses: int = 0
    balance_delta: int = 0
    duplicates_merged: int = 0
    duplicates_skipped: int = 0

    def count_amount(self, candidate: CandidateTransaction) -> None:
        if candidate.type is TransactionType.INCOME:
            self.total_income += abs(candidate.amount)
        else:
            self.total_expenses += abs(candidate.amount)


def _signed(candidate: CandidateTransaction, amount: int) -> int:
    """Sign an amount by the candidate's type: income positive, expense negative."""
    if candidate.type is TransactionType.INCOME:
        return abs(amount)
    return -abs(amount)


class ImportExecutor:
    """Apply inserts, merges and the wallet balance change in one transaction.

    Duplicates are re-detected inside the write transaction so the plan is
    built against exactly the ledger state being mutated.
    """

    def __init__(
        self,
        store: LedgerStore,
        matcher: DuplicateMatcher,
        resolver: Optional[StrategyResolver] = None,
        settings: Optional[EngineSettings] = None,
        *,
        clock: Clock = _utc_now,
        id_factory: Callable[[], str] = _new_batch_id,
    ) -> None:
        self._store = store
        self._matcher = matcher
        self._resolver = resolver or StrategyResolver()
        self.settings = settings or EngineSettings()
        self._clock = clock
        self._id_factory = id_factory

    def execute(self, request: ExecuteImportRequest) -> ImportSummary:
        if len(request.rows) > self.settings.max_rows_per_import:
            raise BatchTooLarge(
                f"An import may hold at most {self.settings.max_rows_per_import} rows, "
                f"got {len(request.rows)}"
            )
        row_numbers = [row.row_number for row in request.rows]
        if len(set(row_numbers)) != len(row_numbers):
            raise ValueError("Row numbers must be unique within a batch")

        excluded = set(request.excluded_row_numbers)
        importable = [
            row for row in request.rows if row.is_valid and row.row_number not in excluded
        ]
        if not importable:
            raise NothingToImport("No valid transactions to import")

        batch_id = self._id_factory()
        try:
            with self._store.transaction() as session:
                summary = self._commit(session, request, importable, batch_id)
        except StorageError as exc:
            logger.error(
                "Import commit failed; rolled back",
                extra={"batch_id": batch_id, "wallet_id": request.wallet_id},
                exc_info=True,
            )
            raise CommitFailure(f"Import {batch_id} was rolled back: {exc}") from exc

        logger.info(
            "Import committed",
            extra={
                "batch_id": batch_id,
                "wallet_id": request.wallet_id,
                "imported_count": summary.total_imported,
                "duplicates_merged": summary.duplicates_merged,
                "duplicates_skipped": summary.duplicates_skipped,
            },
        )
        return summary

    def _commit(
        self,
        session: LedgerSession,
        request: ExecuteImportRequest,
        importable: list[CandidateTransaction],
        batch_id: str,
    ) -> ImportSummary:
        session.get_wallet(request.wallet_id)
        matches = self._matcher.detect_duplicates(importable, request.wallet_id, session=session)
        # Excluded and invalid rows are never re-detected, so their actions are dropped.
        importable_rows = {row.row_number for row in importable}
        actions = [
            action
            for action in request.duplicate_actions
            if action.candidate_row_number in importable_rows
        ]
        plan = self._resolver.resolve(matches, request.strategy, actions)

        tally = _Tally(total_skipped=len(request.rows) - len(importable))
        for candidate in importable:
            self._apply(session, request.wallet_id, candidate, plan, tally, batch_id)

        if not tally.inserted_ids and not tally.merged_snapshots:
            raise NothingToImport("Every row was skipped; nothing to import")

        new_balance = session.adjust_wallet_balance(request.wallet_id, tally.balance_delta)
        committed_at = self._clock()
        undo_expires_at = committed_at + timedelta(hours=self.settings.undo_window_hours)
        summary = ImportSummary(
            batch_id=batch_id,
            total_imported=len(tally.inserted_ids),
            total_skipped=tally.total_skipped,
            total_income=tally.total_income,
            total_expenses=tally.total_expenses,
            net_change=tally.total_income - tally.total_expenses,
            new_wallet_balance=new_balance,
            duplicates_merged=tally.duplicates_merged,
            duplicates_skipped=tally.duplicates_skipped,
            can_undo=True,
            undo_expires_at=undo_expires_at,
        )
        session.save_batch(
            ImportBatch(
                batch_id=batch_id,
                wallet_id=request.wallet_id,
                committed_at=committed_at,
                undo_expires_at=undo_expires_at,
                strategy=request.strategy,
                rows=list(request.rows),
                actions=list(plan.actions.values()),
                summary=summary,
                merged_snapshots=tally.merged_snapshots,
                inserted_transaction_ids=tally.inserted_ids,
                balance_delta=tally.balance_delta,
                total_rows=len(request.rows),
                valid_rows=sum(1 for row in request.rows if row.is_valid),
                date_range_start=min(row.date for row in importable),
                date_range_end=max(row.date for row in importable),
            )
        )
        return summary

    def _apply(
        self,
        session: LedgerSession,
        wallet_id: int,
        candidate: CandidateTransaction,
        plan: ResolutionPlan,
        tally: _Tally,
        batch_id: str,
    ) -> None:
        action = plan.action_for(candidate.row_number)
        if action is None or action.action_type in _INSERTING_ACTIONS:
            inserted = session.insert_transaction(
                _new_ledger_row(candidate, wallet_id, batch_id)
            )
            tally.inserted_ids.append(inserted.id)
            tally.balance_delta += inserted.amount
            tally.count_amount(candidate)
        elif action.action_type is DuplicateActionType.SKIP:
            tally.total_skipped += 1
            tally.duplicates_skipped += 1
        elif action.action_type is DuplicateActionType.MERGE:
            existing = session.get_transaction(action.existing_transaction_id)
            if existing is None or existing.wallet_id != wallet_id:
                raise StorageError(
                    f"Matched transaction {action.existing_transaction_id} is not in "
                    f"wallet {wallet_id}"
                )
            merged = _merge(existing, candidate)
            session.replace_transaction(merged)
            tally.merged_snapshots.append(existing)
            tally.balance_delta += merged.amount - existing.amount
            tally.duplicates_merged += 1
        else:
            raise AssertionError(f"Unhandled duplicate action {action.action_type!r}")


def _conversion_fields(candidate: CandidateTransaction) -> dict[str, object]:
    original = candidate.original_amount
    return {
        "original_amount": None if original is None else _signed(candidate, original),
        "original_currency": candidate.original_currency,
        "exchange_rate": candidate.exchange_rate,
        "exchange_rate_source": candidate.exchange_rate_source,
        "exchange_rate_date": candidate.exchange_rate_date,
    }


def _new_ledger_row(
    candidate: CandidateTransaction, wallet_id: int, batch_id: str
) -> NewLedgerTransaction:
    return NewLedgerTransaction(
        wallet_id=wallet_id,
        amount=_signed(candidate, candidate.amount),
        currency=candidate.currency,
        date=candidate.date,
        note=candidate.description,
        category_id=candidate.suggested_category_id,
        reference_number=candidate.reference_number,
        import_batch_id=batch_id,
        **_conversion_fields(candidate),
    )


def _merge(existing: LedgerTransaction, candidate: CandidateTransaction) -> LedgerTransaction:
    return existing.model_copy(
        update={
            "amount": _signed(candidate, candidate.amount),
            "currency": candidate.currency,
            "date": candidate.date,
            "note": candidate.description,
            "category_id": candidate.suggested_category_id or existing.category_id,
            "reference_number": candidate.reference_number or existing.reference_number,
            **_conversion_fields(candidate),
        }
    )


__all__ = ["ImportExecutor"]
