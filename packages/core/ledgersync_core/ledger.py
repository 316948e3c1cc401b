"""Ledger storage: wallets, transactions and import batches backed by SQLite."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any, ContextManager, Iterator, Optional, Protocol, Sequence

from ledgersync_schemas import ImportBatch, LedgerTransaction, NewLedgerTransaction, Wallet

from .errors import LedgerSyncError, StorageError, WalletNotFound
from .logging_setup import get_logger

logger = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS wallets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    currency TEXT NOT NULL,
    balance INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    wallet_id INTEGER NOT NULL REFERENCES wallets(id),
    amount INTEGER NOT NULL,
    currency TEXT NOT NULL,
    date INTEGER NOT NULL,
    note TEXT NOT NULL DEFAULT '',
    category_id INTEGER,
    reference_number TEXT NOT NULL DEFAULT '',
    import_batch_id TEXT,
    original_amount INTEGER,
    original_currency TEXT,
    exchange_rate TEXT,
    exchange_rate_source TEXT,
    exchange_rate_date INTEGER
);
CREATE INDEX IF NOT EXISTS idx_transactions_wallet_date
    ON transactions (wallet_id, date);
CREATE INDEX IF NOT EXISTS idx_transactions_batch
    ON transactions (import_batch_id);
CREATE TABLE IF NOT EXISTS import_batches (
    batch_id TEXT PRIMARY KEY,
    wallet_id INTEGER NOT NULL REFERENCES wallets(id),
    committed_at TEXT NOT NULL,
    undo_expires_at TEXT NOT NULL,
    undone_at TEXT,
    batch_json TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_import_batches_wallet
    ON import_batches (wallet_id, committed_at);
"""

_TX_COLUMNS = (
    "wallet_id",
    "amount",
    "currency",
    "date",
    "note",
    "category_id",
    "reference_number",
    "import_batch_id",
    "original_amount",
    "original_currency",
    "exchange_rate",
    "exchange_rate_source",
    "exchange_rate_date",
)


class LedgerSession(Protocol):
    """Operations available inside one ledger transaction boundary."""

    def get_wallet(self, wallet_id: int) -> Wallet: ...

    def adjust_wallet_balance(self, wallet_id: int, delta: int) -> int: ...

    def find_transactions(
        self, wallet_id: int, start: int, end: int
    ) -> list[LedgerTransaction]: ...

    def get_transaction(self, transaction_id: int) -> Optional[LedgerTransaction]: ...

    def insert_transaction(self, values: NewLedgerTransaction) -> LedgerTransaction: ...

    def replace_transaction(self, transaction: LedgerTransaction) -> None: ...

    def delete_transactions(self, transaction_ids: Sequence[int]) -> int: ...

    def save_batch(self, batch: ImportBatch) -> None: ...

    def get_batch(self, batch_id: str) -> Optional[ImportBatch]: ...

    def update_batch(self, batch: ImportBatch) -> None: ...

    def list_batches(
        self, wallet_id: int, *, limit: int, offset: int
    ) -> tuple[list[ImportBatch], int]: ...

    def active_batches_after(self, batch: ImportBatch) -> list[ImportBatch]: ...


class LedgerStore(Protocol):
    """Hands out sessions; every mutation happens inside ``transaction()``."""

    def transaction(self) -> ContextManager[LedgerSession]: ...

    def snapshot(self) -> ContextManager[LedgerSession]: ...


def _rate_to_db(rate: Optional[Decimal]) -> Optional[str]:
    return None if rate is None else str(rate)


class SqliteLedgerSession:
    """A :class:`LedgerSession` bound to one open SQLite transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def create_wallet(self, name: str, currency: str, balance: int = 0) -> Wallet:
        cursor = self._conn.execute(
            "INSERT INTO wallets (name, currency, balance) VALUES (?, ?, ?)",
            (name, currency, balance),
        )
        return Wallet(id=int(cursor.lastrowid or 0), name=name, currency=currency, balance=balance)

    def get_wallet(self, wallet_id: int) -> Wallet:
        row = self._conn.execute(
            "SELECT * FROM wallets WHERE id = ?", (wallet_id,)
        ).fetchone()
        if row is None:
            raise WalletNotFound(f"Wallet {wallet_id} not found")
        return Wallet(
            id=row["id"], name=row["name"], currency=row["currency"], balance=row["balance"]
        )

    def adjust_wallet_balance(self, wallet_id: int, delta: int) -> int:
        cursor = self._conn.execute(
            "UPDATE wallets SET balance = balance + ? WHERE id = ?",
            (delta, wallet_id),
        )
        if cursor.rowcount != 1:
            raise WalletNotFound(f"Wallet {wallet_id} not found")
        return self.get_wallet(wallet_id).balance

    def find_transactions(self, wallet_id: int, start: int, end: int) -> list[LedgerTransaction]:
        rows = self._conn.execute(
            """
            SELECT * FROM transactions
            WHERE wallet_id = ? AND date BETWEEN ? AND ?
            ORDER BY date ASC, id ASC
            """,
            (wallet_id, start, end),
        ).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def list_transactions(self, wallet_id: int) -> list[LedgerTransaction]:
        rows = self._conn.execute(
            "SELECT * FROM transactions WHERE wallet_id = ? ORDER BY id ASC",
            (wallet_id,),
        ).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def get_transaction(self, transaction_id: int) -> Optional[LedgerTransaction]:
        row = self._conn.execute(
            "SELECT * FROM transactions WHERE id = ?", (transaction_id,)
        ).fetchone()
        return None if row is None else self._row_to_transaction(row)

    def insert_transaction(self, values: NewLedgerTransaction) -> LedgerTransaction:
        params = self._transaction_params(values)
        placeholders = ", ".join("?" for _ in _TX_COLUMNS)
        cursor = self._conn.execute(
            f"INSERT INTO transactions ({', '.join(_TX_COLUMNS)}) VALUES ({placeholders})",
            params,
        )
        return LedgerTransaction(id=int(cursor.lastrowid or 0), **values.model_dump())

    def replace_transaction(self, transaction: LedgerTransaction) -> None:
        assignments = ", ".join(f"{column} = ?" for column in _TX_COLUMNS)
        cursor = self._conn.execute(
            f"UPDATE transactions SET {assignments} WHERE id = ?",
            (*self._transaction_params(transaction), transaction.id),
        )
        if cursor.rowcount != 1:
            raise StorageError(f"Transaction {transaction.id} vanished during update")

    def delete_transactions(self, transaction_ids: Sequence[int]) -> int:
        removed = 0
        for transaction_id in transaction_ids:
            cursor = self._conn.execute(
                "DELETE FROM transactions WHERE id = ?", (transaction_id,)
            )
            removed += cursor.rowcount
        return removed

    def save_batch(self, batch: ImportBatch) -> None:
        self._conn.execute(
            """
            INSERT INTO import_batches (
                batch_id,
                wallet_id,
                committed_at,
                undo_expires_at,
                undone_at,
                batch_json
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                batch.batch_id,
                batch.wallet_id,
                batch.committed_at.isoformat(),
                batch.undo_expires_at.isoformat(),
                batch.undone_at.isoformat() if batch.undone_at else None,
                batch.model_dump_json(),
            ),
        )

    def get_batch(self, batch_id: str) -> Optional[ImportBatch]:
        row = self._conn.execute(
            "SELECT batch_json FROM import_batches WHERE batch_id = ?", (batch_id,)
        ).fetchone()
        if row is None:
            return None
        return ImportBatch.model_validate_json(row["batch_json"])

    def update_batch(self, batch: ImportBatch) -> None:
        cursor = self._conn.execute(
            """
            UPDATE import_batches
            SET undone_at = ?,
                batch_json = ?
            WHERE batch_id = ?
            """,
            (
                batch.undone_at.isoformat() if batch.undone_at else None,
                batch.model_dump_json(),
                batch.batch_id,
            ),
        )
        if cursor.rowcount != 1:
            raise StorageError(f"Import batch {batch.batch_id} vanished during update")

    def list_batches(
        self, wallet_id: int, *, limit: int, offset: int
    ) -> tuple[list[ImportBatch], int]:
        total = self._conn.execute(
            "SELECT COUNT(*) FROM import_batches WHERE wallet_id = ?", (wallet_id,)
        ).fetchone()[0]
        rows = self._conn.execute(
            """
            SELECT batch_json FROM import_batches
            WHERE wallet_id = ?
            ORDER BY committed_at DESC, rowid DESC
            LIMIT ? OFFSET ?
            """,
            (wallet_id, limit, offset),
        ).fetchall()
        return [ImportBatch.model_validate_json(row["batch_json"]) for row in rows], int(total)

    def active_batches_after(self, batch: ImportBatch) -> list[ImportBatch]:
        """Batches of the same wallet saved after ``batch`` and not yet undone, oldest first."""
        rows = self._conn.execute(
            """
            SELECT batch_json FROM import_batches
            WHERE wallet_id = ?
              AND undone_at IS NULL
              AND rowid > (SELECT rowid FROM import_batches WHERE batch_id = ?)
            ORDER BY rowid
            """,
            (batch.wallet_id, batch.batch_id),
        ).fetchall()
        return [ImportBatch.model_validate_json(row["batch_json"]) for row in rows]

    @staticmethod
    def _transaction_params(values: NewLedgerTransaction | LedgerTransaction) -> tuple[Any, ...]:
        return (
            values.wallet_id,
            values.amount,
            values.currency,
            values.date,
            values.note,
            values.category_id,
            values.reference_number,
            values.import_batch_id,
            values.original_amount,
            values.original_currency,
            _rate_to_db(values.exchange_rate),
            values.exchange_rate_source,
            values.exchange_rate_date,
        )

    @staticmethod
    def _row_to_transaction(row: sqlite3.Row) -> LedgerTransaction:
        return LedgerTransaction(
            id=row["id"],
            wallet_id=row["wallet_id"],
            amount=row["amount"],
            currency=row["currency"],
            date=row["date"],
            note=row["note"],
            category_id=row["category_id"],
            reference_number=row["reference_number"],
            import_batch_id=row["import_batch_id"],
            original_amount=row["original_amount"],
            original_currency=row["original_currency"],
            exchange_rate=Decimal(row["exchange_rate"]) if row["exchange_rate"] else None,
            exchange_rate_source=row["exchange_rate_source"],
            exchange_rate_date=row["exchange_rate_date"],
        )


class SqliteLedgerStore:
    """Provide transactional access to a single SQLite ledger file."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly below.
        conn = sqlite3.connect(self.db_path, isolation_level=None, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._connect()
        try:
            conn.executescript(_SCHEMA)
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[SqliteLedgerSession]:
        """Open a write transaction; commit on success, roll back on any error."""
        with self._session("BEGIN IMMEDIATE", commit=True) as session:
            yield session

    @contextmanager
    def snapshot(self) -> Iterator[SqliteLedgerSession]:
        """Open a read transaction so every query sees the same ledger state."""
        with self._session("BEGIN", commit=False) as session:
            yield session

    @contextmanager
    def _session(self, begin: str, *, commit: bool) -> Iterator[SqliteLedgerSession]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StorageError(f"Could not open ledger at {self.db_path}: {exc}") from exc
        try:
            conn.execute(begin)
            yield SqliteLedgerSession(conn)
            conn.execute("COMMIT" if commit else "ROLLBACK")
        except LedgerSyncError:
            self._rollback(conn)
            raise
        except sqlite3.Error as exc:
            self._rollback(conn)
            raise StorageError(str(exc)) from exc
        except BaseException:
            self._rollback(conn)
            raise
        finally:
            conn.close()

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            try:
                conn.execute("ROLLBACK")
            except sqlite3.Error:
                logger.exception("Rollback failed")

    def create_wallet(self, name: str, currency: str, balance: int = 0) -> Wallet:
        with self.transaction() as session:
            return session.create_wallet(name, currency, balance)

    def get_wallet(self, wallet_id: int) -> Wallet:
        with self.snapshot() as session:
            return session.get_wallet(wallet_id)

    def list_transactions(self, wallet_id: int) -> list[LedgerTransaction]:
        with self.snapshot() as session:
            return session.list_transactions(wallet_id)

    def get_batch(self, batch_id: str) -> Optional[ImportBatch]:
        with self.snapshot() as session:
            return session.get_batch(batch_id)


__all__ = [
    "LedgerSession",
    "LedgerStore",
    "SqliteLedgerSession",
    "SqliteLedgerStore",
]
