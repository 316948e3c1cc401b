"""Exceptions raised by the reconciliation engine."""

from __future__ import annotations


class LedgerSyncError(Exception):
    """Base class for batch-level failures."""


class ParseError(LedgerSyncError):
    """A statement could not be turned into raw rows."""


class IncompleteReview(LedgerSyncError):
    """REVIEW_EACH is active and not every duplicate has an action."""

    def __init__(self, expected: int, received: int) -> None:
        self.expected = expected
        self.received = received
        super().__init__(
            f"Every duplicate needs a review decision: "
            f"{received} action(s) for {expected} duplicate(s)"
        )


class InvalidDuplicateAction(LedgerSyncError):
    """A duplicate action does not line up with a detected match."""


class CurrencyRateInvalid(LedgerSyncError):
    """A manual exchange rate was zero or negative."""


class CurrencyRateUnavailable(LedgerSyncError):
    """No manual, automatic or fallback rate exists for a currency pair."""


class WalletNotFound(LedgerSyncError):
    """The target wallet does not exist."""


class BatchNotFound(LedgerSyncError):
    """The import batch does not exist."""


class NothingToImport(LedgerSyncError):
    """No row survived filtering, exclusion and duplicate handling."""


class BatchTooLarge(LedgerSyncError):
    """The import exceeds the configured row limit."""


class StorageError(LedgerSyncError):
    """The ledger store failed to read or write."""


class CommitFailure(LedgerSyncError):
    """A commit was rolled back because the ledger store failed."""


class AlreadyUndone(LedgerSyncError):
    """The batch has been undone before."""


class UndoExpired(LedgerSyncError):
    """The batch's undo window has closed."""


class UndoConflict(LedgerSyncError):
    """A later, still active batch merged into rows this batch owns."""

    def __init__(self, batch_id: str, blocking_batch_id: str) -> None:
        self.batch_id = batch_id
        self.blocking_batch_id = blocking_batch_id
        super().__init__(
            f"Import batch {batch_id} cannot be undone before batch {blocking_batch_id}, "
            f"which merged into its transactions"
        )


__all__ = [
    "AlreadyUndone",
    "BatchNotFound",
    "BatchTooLarge",
    "CommitFailure",
    "CurrencyRateInvalid",
    "CurrencyRateUnavailable",
    "IncompleteReview",
    "InvalidDuplicateAction",
    "LedgerSyncError",
    "NothingToImport",
    "ParseError",
    "StorageError",
    "UndoConflict",
    "UndoExpired",
    "WalletNotFound",
]
