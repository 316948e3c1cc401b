"""Shared fixtures for the core engine tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest
from ledgersync_core import EngineSettings, ImportService, SqliteLedgerStore
from ledgersync_schemas import CandidateTransaction, NewLedgerTransaction, TransactionType, Wallet

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def settings(tmp_path: Path) -> EngineSettings:
    return EngineSettings(data_root=tmp_path / "ledgers")


@pytest.fixture
def store(tmp_path: Path) -> SqliteLedgerStore:
    return SqliteLedgerStore(tmp_path / "ledger.db")


@pytest.fixture
def wallet(store: SqliteLedgerStore) -> Wallet:
    return store.create_wallet("Everyday", "VND", 1_000_000_000)


@pytest.fixture
def service(
    store: SqliteLedgerStore, settings: EngineSettings, clock: FixedClock
) -> ImportService:
    return ImportService(store, settings=settings, clock=clock)


def _timestamp(day: str) -> int:
    return int(datetime.fromisoformat(day).replace(tzinfo=timezone.utc).timestamp())


@pytest.fixture
def make_candidate() -> Callable[..., CandidateTransaction]:
    def _make(
        row_number: int,
        amount: int,
        description: str = "Coffee shop purchase",
        *,
        day: str = "2024-06-10",
        currency: str = "VND",
        category_id: int | None = 7,
        confidence: int = 90,
        reference: str = "",
    ) -> CandidateTransaction:
        return CandidateTransaction(
            row_number=row_number,
            date=_timestamp(day),
            amount=amount,
            currency=currency,
            description=description,
            original_description=description,
            type=TransactionType.INCOME if amount > 0 else TransactionType.EXPENSE,
            suggested_category_id=category_id,
            category_confidence=confidence,
            reference_number=reference,
        )

    return _make


@pytest.fixture
def seed_transaction(store: SqliteLedgerStore) -> Callable[..., int]:
    """Insert a ledger row directly, bypassing the import pipeline."""

    def _seed(
        wallet_id: int,
        amount: int,
        note: str,
        *,
        day: str = "2024-06-10",
        reference: str = "",
        category_id: int | None = None,
    ) -> int:
        with store.transaction() as session:
            row = session.insert_transaction(
                NewLedgerTransaction(
                    wallet_id=wallet_id,
                    amount=amount,
                    currency="VND",
                    date=_timestamp(day),
                    note=note,
                    category_id=category_id,
                    reference_number=reference,
                )
            )
            session.adjust_wallet_balance(wallet_id, amount)
        return row.id

    return _seed
