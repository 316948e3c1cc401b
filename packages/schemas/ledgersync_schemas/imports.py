"""Schemas describing duplicate handling, conversion and committed import batches."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field

from .transactions import (
    CandidateTransaction,
    FrozenModel,
    LedgerTransaction,
    NormalizationHint,
    RateSource,
    RawRow,
)


class DuplicateStrategy(str, Enum):
    """Default disposition for duplicates that have no recorded action."""

    SKIP_ALL = "skip_all"
    AUTO_MERGE = "auto_merge"
    REVIEW_EACH = "review_each"
    KEEP_ALL = "keep_all"


class DuplicateActionType(str, Enum):
    """What to do with one candidate that matched an existing transaction."""

    MERGE = "merge"
    KEEP_BOTH = "keep_both"
    SKIP = "skip"
    NOT_DUPLICATE = "not_duplicate"


class Bucket(str, Enum):
    """Review bucket a candidate is classified into."""

    ERRORS = "errors"
    DUPLICATES = "duplicates"
    NEEDS_CATEGORY = "needs_category"
    READY_TO_IMPORT = "ready_to_import"


class DuplicateMatch(FrozenModel):
    """A candidate paired with an existing ledger transaction."""

    candidate_row_number: int
    existing_transaction_id: int
    confidence: int = Field(ge=0, le=100)
    match_reason: str


class DuplicateAction(FrozenModel):
    """A reviewer's decision for one duplicate match."""

    candidate_row_number: int
    existing_transaction_id: int
    action_type: DuplicateActionType


class ManualRate(FrozenModel):
    """Caller supplied exchange rate overriding the automatic lookup."""

    rate: Decimal
    rate_date: Optional[int] = None


class CurrencyConversion(FrozenModel):
    """Summary of one currency group converted into the wallet currency."""

    from_currency: str
    to_currency: str
    rate: Decimal
    rate_source: RateSource
    rate_date: int
    transaction_count: int
    total_original: int
    total_converted: int


class Classification(FrozenModel):
    """Candidates partitioned into review buckets."""

    errors: list[CandidateTransaction] = Field(default_factory=list)
    duplicates: list[CandidateTransaction] = Field(default_factory=list)
    needs_category: list[CandidateTransaction] = Field(default_factory=list)
    ready_to_import: list[CandidateTransaction] = Field(default_factory=list)

    def bucket_of(self, row_number: int) -> Bucket | None:
        for bucket in Bucket:
            if any(c.row_number == row_number for c in self.rows(bucket)):
                return bucket
        return None

    def rows(self, bucket: Bucket) -> list[CandidateTransaction]:
        return getattr(self, bucket.value)

    def counts(self) -> dict[str, int]:
        return {bucket.value: len(self.rows(bucket)) for bucket in Bucket}


class ImportSummary(FrozenModel):
    """Totals reported back after a batch has been committed."""

    batch_id: str
    total_imported: int
    total_skipped: int
    total_income: int
    total_expenses: int
    net_change: int
    new_wallet_balance: int
    duplicates_merged: int
    duplicates_skipped: int
    can_undo: bool
    undo_expires_at: datetime


class ImportBatch(FrozenModel):
    """Immutable record of a committed import.

    ``merged_snapshots`` holds every merged ledger row exactly as it was before
    the merge; ``balance_delta`` is the signed amount applied to the wallet.
    """

    batch_id: str
    wallet_id: int
    committed_at: datetime
    undo_expires_at: datetime
    strategy: DuplicateStrategy
    rows: list[CandidateTransaction]
    actions: list[DuplicateAction] = Field(default_factory=list)
    summary: ImportSummary
    merged_snapshots: list[LedgerTransaction] = Field(default_factory=list)
    inserted_transaction_ids: list[int] = Field(default_factory=list)
    balance_delta: int = 0
    total_rows: int = 0
    valid_rows: int = 0
    date_range_start: Optional[int] = None
    date_range_end: Optional[int] = None
    undone_at: Optional[datetime] = None

    def undoable_at(self, now: datetime) -> bool:
        return self.undone_at is None and now < self.undo_expires_at


class UndoResult(FrozenModel):
    """Outcome of a successful undo."""

    batch_id: str
    wallet_id: int
    transactions_removed: int
    transactions_restored: int
    balance_delta_reverted: int
    new_wallet_balance: int
    undone_at: datetime


class ImportHistoryEntry(FrozenModel):
    """One row of a wallet's import history."""

    batch_id: str
    wallet_id: int
    committed_at: datetime
    summary: ImportSummary
    can_undo: bool
    total_rows: int = 0
    valid_rows: int = 0
    date_range_start: Optional[int] = None
    date_range_end: Optional[int] = None
    undone_at: Optional[datetime] = None


class ImportHistoryPage(FrozenModel):
    """A page of import history, newest first."""

    entries: list[ImportHistoryEntry]
    page: int
    page_size: int
    total_count: int
    total_pages: int


class NormalizeRequest(FrozenModel):
    """Body for the `/imports/normalize` endpoint."""

    rows: list[RawRow]
    hint: NormalizationHint = Field(default_factory=NormalizationHint)


class DetectDuplicatesRequest(FrozenModel):
    """Body for the `/imports/duplicates` endpoint."""

    wallet_id: int
    candidates: list[CandidateTransaction]


class ConvertCurrencyRequest(FrozenModel):
    """Body for the `/imports/convert` endpoint."""

    wallet_id: int
    candidates: list[CandidateTransaction]
    manual_rates: dict[str, ManualRate] = Field(default_factory=dict)


class ConvertCurrencyResponse(FrozenModel):
    """Converted candidates with one summary per currency group."""

    candidates: list[CandidateTransaction]
    conversions: list[CurrencyConversion]


class ClassifyRequest(FrozenModel):
    """Body for the `/imports/classify` endpoint."""

    candidates: list[CandidateTransaction]
    duplicate_matches: list[DuplicateMatch] = Field(default_factory=list)
    strategy: DuplicateStrategy = DuplicateStrategy.REVIEW_EACH
    resolved_actions: list[DuplicateAction] = Field(default_factory=list)


class ExecuteImportRequest(FrozenModel):
    """Body for the `/imports/execute` endpoint."""

    wallet_id: int
    rows: list[CandidateTransaction]
    strategy: DuplicateStrategy
    duplicate_actions: list[DuplicateAction] = Field(default_factory=list)
    excluded_row_numbers: list[int] = Field(default_factory=list)


class WalletCreateRequest(FrozenModel):
    """Body for creating a wallet."""

    name: str
    currency: str = "VND"
    balance: int = 0


__all__ = [
    "Bucket",
    "Classification",
    "ClassifyRequest",
    "ConvertCurrencyRequest",
    "ConvertCurrencyResponse",
    "CurrencyConversion",
    "DetectDuplicatesRequest",
    "DuplicateAction",
    "DuplicateActionType",
    "DuplicateMatch",
    "DuplicateStrategy",
    "ExecuteImportRequest",
    "ImportBatch",
    "ImportHistoryEntry",
    "ImportHistoryPage",
    "ImportSummary",
    "ManualRate",
    "NormalizeRequest",
    "UndoResult",
    "WalletCreateRequest",
]
