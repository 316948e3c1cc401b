"""Reverse a committed import inside its undo window."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from ledgersync_schemas import UndoResult

from .errors import (
    AlreadyUndone,
    BatchNotFound,
    CommitFailure,
    StorageError,
    UndoConflict,
    UndoExpired,
)
from .ledger import LedgerStore
from .logging_setup import get_logger

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UndoCoordinator:
    """Delete a batch's inserts, restore its merges and revert the balance.

    The whole reversal runs in a single ledger transaction; a failure leaves
    the ledger and the batch record exactly as they were.
    """

    def __init__(self, store: LedgerStore, *, clock: Callable[[], datetime] = _utc_now) -> None:
        self._store = store
        self._clock = clock

    def undo(self, batch_id: str) -> UndoResult:
        try:
            with self._store.transaction() as session:
                batch = session.get_batch(batch_id)
                if batch is None:
                    raise BatchNotFound(f"Import batch {batch_id} not found")
                if batch.undone_at is not None:
                    raise AlreadyUndone(
                        f"Import batch {batch_id} was undone at {batch.undone_at.isoformat()}"
                    )
                now = self._clock()
                if now >= batch.undo_expires_at:
                    raise UndoExpired(
                        f"Undo window for import batch {batch_id} closed at "
                        f"{batch.undo_expires_at.isoformat()}"
                    )
                # Undo is last-in-first-out over batches that share rows.
                owned = set(batch.inserted_transaction_ids)
                owned.update(snapshot.id for snapshot in batch.merged_snapshots)
                for later in session.active_batches_after(batch):
                    if any(snapshot.id in owned for snapshot in later.merged_snapshots):
                        raise UndoConflict(batch_id, later.batch_id)

                removed = session.delete_transactions(batch.inserted_transaction_ids)
                for snapshot in batch.merged_snapshots:
                    session.replace_transaction(snapshot)
                new_balance = session.adjust_wallet_balance(batch.wallet_id, -batch.balance_delta)
                session.update_batch(
                    batch.model_copy(
                        update={
                            "undone_at": now,
                            "summary": batch.summary.model_copy(update={"can_undo": False}),
                        }
                    )
                )
        except StorageError as exc:
            logger.error("Undo failed; rolled back", extra={"batch_id": batch_id}, exc_info=True)
            raise CommitFailure(f"Undo of import {batch_id} was rolled back: {exc}") from exc

        logger.info(
            "Import undone",
            extra={
                "batch_id": batch_id,
                "wallet_id": batch.wallet_id,
                "transactions_removed": removed,
                "transactions_restored": len(batch.merged_snapshots),
            },
        )
        return UndoResult(
            batch_id=batch_id,
            wallet_id=batch.wallet_id,
            transactions_removed=removed,
            transactions_restored=len(batch.merged_snapshots),
            balance_delta_reverted=batch.balance_delta,
            new_wallet_balance=new_balance,
            undone_at=now,
        )


__all__ = ["UndoCoordinator"]
