"""Facade wiring the import pipeline stages to one ledger store."""

from __future__ import annotations

import math
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, Mapping, Optional, Sequence

from ledgersync_schemas import (
    CandidateTransaction,
    Classification,
    CurrencyConversion,
    DuplicateAction,
    DuplicateMatch,
    DuplicateStrategy,
    ExecuteImportRequest,
    ImportHistoryEntry,
    ImportHistoryPage,
    ImportSummary,
    ManualRate,
    NormalizationHint,
    RawRow,
    UndoResult,
    Wallet,
)

from .classifier import classify
from .config import EngineSettings
from .currency import CurrencyConverter, FxRateProvider
from .errors import BatchNotFound
from .executor import ImportExecutor
from .ledger import SqliteLedgerStore
from .logging_setup import get_logger
from .matching import DuplicateMatcher
from .normalizer import Normalizer
from .parsers import ColumnMapping, CsvStatementParser, Source, StatementParser
from .strategy import StrategyResolver
from .suggest import CategorySuggester, RuleCategorySuggester
from .undo import UndoCoordinator
from .workspace import ledger_db_path, rules_path

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ImportService:
    """Entry point for callers driving an import from statement to commit.

    Every collaborator is injected; nothing here is process-wide. Work that
    reads or mutates a wallet's ledger is serialized on that wallet's lock.
    """

    def __init__(
        self,
        store: SqliteLedgerStore,
        *,
        fx_provider: Optional[FxRateProvider] = None,
        suggester: Optional[CategorySuggester] = None,
        parser: Optional[StatementParser] = None,
        settings: Optional[EngineSettings] = None,
        clock: Clock = _utc_now,
    ) -> None:
        self.store = store
        self.settings = settings or EngineSettings()
        self.suggester = suggester
        self._clock = clock
        self._parser = parser or CsvStatementParser()
        self._normalizer = Normalizer(self.settings, clock=clock, suggester=suggester)
        self._matcher = DuplicateMatcher(store, self.settings)
        self._converter = CurrencyConverter(fx_provider, self.settings, clock=clock)
        self._resolver = StrategyResolver()
        self._executor = ImportExecutor(
            store, self._matcher, self._resolver, self.settings, clock=clock
        )
        self._undo = UndoCoordinator(store, clock=clock)
        self._locks: dict[int, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def wallet_lock(self, wallet_id: int) -> Iterator[None]:
        """Hold the wallet's lock, e.g. across a caller's own detect and commit."""
        with self._registry_lock:
            lock = self._locks.setdefault(wallet_id, threading.RLock())
        with lock:
            yield

    def parse_statement(
        self, source: Source, mapping: Optional[ColumnMapping] = None
    ) -> list[RawRow]:
        return self._parser.parse(source, mapping)

    def normalize(
        self, rows: Sequence[RawRow], hint: Optional[NormalizationHint] = None
    ) -> list[CandidateTransaction]:
        return self._normalizer.normalize(rows, hint)

    def create_wallet(self, name: str, currency: Optional[str] = None, balance: int = 0) -> Wallet:
        wallet = self.store.create_wallet(
            name, (currency or self.settings.default_wallet_currency).upper(), balance
        )
        logger.info("Wallet created", extra={"wallet_id": wallet.id, "currency": wallet.currency})
        return wallet

    def get_wallet(self, wallet_id: int) -> Wallet:
        return self.store.get_wallet(wallet_id)

    def detect_duplicates(
        self, candidates: Sequence[CandidateTransaction], wallet_id: int
    ) -> list[DuplicateMatch]:
        with self.wallet_lock(wallet_id):
            with self.store.snapshot() as session:
                session.get_wallet(wallet_id)
                return self._matcher.detect_duplicates(candidates, wallet_id, session=session)

    def convert_currency(
        self,
        candidates: Sequence[CandidateTransaction],
        manual_rates: Optional[Mapping[str, ManualRate]],
        wallet_id: int,
    ) -> tuple[list[CandidateTransaction], list[CurrencyConversion]]:
        wallet = self.store.get_wallet(wallet_id)
        return self._converter.convert(candidates, manual_rates, wallet_currency=wallet.currency)

    def classify(
        self,
        candidates: Sequence[CandidateTransaction],
        duplicate_matches: Iterable[DuplicateMatch],
        strategy: DuplicateStrategy,
        resolved_actions: Iterable[DuplicateAction] = (),
    ) -> Classification:
        return classify(
            candidates,
            duplicate_matches,
            strategy,
            resolved_actions,
            confidence_threshold=self.settings.category_confidence_threshold,
        )

    def pending_reviews(
        self,
        matches: Sequence[DuplicateMatch],
        strategy: DuplicateStrategy,
        actions: Iterable[DuplicateAction] = (),
    ) -> list[DuplicateMatch]:
        return self._resolver.pending(matches, strategy, actions)

    def execute_import(
        self,
        wallet_id: int,
        rows: Sequence[CandidateTransaction],
        strategy: DuplicateStrategy,
        duplicate_actions: Iterable[DuplicateAction] = (),
        excluded_row_numbers: Iterable[int] = (),
    ) -> ImportSummary:
        request = ExecuteImportRequest(
            wallet_id=wallet_id,
            rows=list(rows),
            strategy=strategy,
            duplicate_actions=list(duplicate_actions),
            excluded_row_numbers=list(excluded_row_numbers),
        )
        with self.wallet_lock(wallet_id):
            return self._executor.execute(request)

    def undo_import(self, batch_id: str) -> UndoResult:
        batch = self.store.get_batch(batch_id)
        if batch is None:
            raise BatchNotFound(f"Import batch {batch_id} not found")
        with self.wallet_lock(batch.wallet_id):
            return self._undo.undo(batch_id)

    def import_history(
        self, wallet_id: int, page: int = 1, page_size: int = 20
    ) -> ImportHistoryPage:
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")
        now = self._clock()
        with self.store.snapshot() as session:
            session.get_wallet(wallet_id)
            batches, total = session.list_batches(
                wallet_id, limit=page_size, offset=(page - 1) * page_size
            )
        entries = [
            ImportHistoryEntry(
                batch_id=batch.batch_id,
                wallet_id=batch.wallet_id,
                committed_at=batch.committed_at,
                summary=batch.summary,
                can_undo=batch.undoable_at(now),
                total_rows=batch.total_rows,
                valid_rows=batch.valid_rows,
                date_range_start=batch.date_range_start,
                date_range_end=batch.date_range_end,
                undone_at=batch.undone_at,
            )
            for batch in batches
        ]
        return ImportHistoryPage(
            entries=entries,
            page=page,
            page_size=page_size,
            total_count=total,
            total_pages=math.ceil(total / page_size) if total else 0,
        )

    def learn_category(self, candidate: CandidateTransaction, category_id: int) -> bool:
        """Feed a reviewer's category correction back into the suggester."""
        if not isinstance(self.suggester, RuleCategorySuggester):
            return False
        learned = self.suggester.learn(candidate, category_id)
        if learned:
            logger.info(
                "Learned category rule",
                extra={"row_number": candidate.row_number, "category_id": category_id},
            )
        return learned


def build_service(
    settings: Optional[EngineSettings] = None,
    *,
    fx_provider: Optional[FxRateProvider] = None,
) -> ImportService:
    """Service over the workspace under ``settings.data_root``."""
    settings = settings or EngineSettings()
    store = SqliteLedgerStore(ledger_db_path(settings.data_root))
    suggester = RuleCategorySuggester(rules_path(settings.data_root))
    return ImportService(store, fx_provider=fx_provider, suggester=suggester, settings=settings)


__all__ = ["ImportService", "build_service"]
