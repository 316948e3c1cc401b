"""Core reconciliation engine for LedgerSync."""

from .classifier import DEFAULT_CONFIDENCE_THRESHOLD, classify, classify_candidate
from .config import EngineSettings, load_settings
from .currency import CurrencyConverter, FxRateProvider, StaticFxRateProvider
from .errors import (
    AlreadyUndone,
    BatchNotFound,
    BatchTooLarge,
    CommitFailure,
    CurrencyRateInvalid,
    CurrencyRateUnavailable,
    IncompleteReview,
    InvalidDuplicateAction,
    LedgerSyncError,
    NothingToImport,
    ParseError,
    StorageError,
    UndoConflict,
    UndoExpired,
    WalletNotFound,
)
from .executor import ImportExecutor
from .ledger import LedgerSession, LedgerStore, SqliteLedgerSession, SqliteLedgerStore
from .logging_setup import (
    ImportContextFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from .matching import DuplicateMatcher, extract_merchant, extract_reference, similarity
from .money import SCALE, apply_rate, format_minor, from_minor, parse_decimal, to_minor
from .normalizer import Normalizer, apply_suggestion, parse_date
from .parsers import ColumnMapping, CsvStatementParser, StatementParser, clean_description
from .service import ImportService, build_service
from .strategy import ResolutionPlan, StrategyResolver, validate_actions
from .suggest import CategoryRule, CategorySuggester, RuleCategorySuggester
from .undo import UndoCoordinator
from .workspace import ledger_db_path, ledger_root, rules_path

__all__ = [
    "AlreadyUndone",
    "BatchNotFound",
    "BatchTooLarge",
    "CategoryRule",
    "CategorySuggester",
    "ColumnMapping",
    "CommitFailure",
    "CsvStatementParser",
    "CurrencyConverter",
    "CurrencyRateInvalid",
    "CurrencyRateUnavailable",
    "DEFAULT_CONFIDENCE_THRESHOLD",
    "DuplicateMatcher",
    "EngineSettings",
    "FxRateProvider",
    "ImportExecutor",
    "ImportContextFormatter",
    "ImportService",
    "IncompleteReview",
    "InvalidDuplicateAction",
    "LedgerSession",
    "LedgerStore",
    "LedgerSyncError",
    "Normalizer",
    "NothingToImport",
    "ParseError",
    "ResolutionPlan",
    "RuleCategorySuggester",
    "SCALE",
    "SqliteLedgerSession",
    "SqliteLedgerStore",
    "StatementParser",
    "StaticFxRateProvider",
    "StorageError",
    "StrategyResolver",
    "UndoCoordinator",
    "UndoConflict",
    "UndoExpired",
    "WalletNotFound",
    "apply_rate",
    "apply_suggestion",
    "build_service",
    "classify",
    "classify_candidate",
    "clean_description",
    "configure_logging",
    "extract_merchant",
    "extract_reference",
    "format_minor",
    "from_minor",
    "get_logger",
    "ledger_db_path",
    "ledger_root",
    "load_settings",
    "parse_date",
    "parse_decimal",
    "reset_logging",
    "rules_path",
    "similarity",
    "to_minor",
    "validate_actions",
]
