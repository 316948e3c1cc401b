"""Shared Pydantic schemas for LedgerSync."""

from .imports import (
    Bucket,
    Classification,
    ClassifyRequest,
    ConvertCurrencyRequest,
    ConvertCurrencyResponse,
    CurrencyConversion,
    DetectDuplicatesRequest,
    DuplicateAction,
    DuplicateActionType,
    DuplicateMatch,
    DuplicateStrategy,
    ExecuteImportRequest,
    ImportBatch,
    ImportHistoryEntry,
    ImportHistoryPage,
    ImportSummary,
    ManualRate,
    NormalizeRequest,
    UndoResult,
    WalletCreateRequest,
)
from .transactions import (
    CandidateTransaction,
    FrozenModel,
    LedgerTransaction,
    NewLedgerTransaction,
    NormalizationHint,
    RateSource,
    RawRow,
    RowValidationError,
    Severity,
    TransactionType,
    Wallet,
)

__all__ = [
    "Bucket",
    "CandidateTransaction",
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
    "FrozenModel",
    "ImportBatch",
    "ImportHistoryEntry",
    "ImportHistoryPage",
    "ImportSummary",
    "LedgerTransaction",
    "ManualRate",
    "NewLedgerTransaction",
    "NormalizationHint",
    "NormalizeRequest",
    "RateSource",
    "RawRow",
    "RowValidationError",
    "Severity",
    "TransactionType",
    "UndoResult",
    "Wallet",
    "WalletCreateRequest",
]
