"""Typed schemas for statement rows, candidates and ledger records."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

Severity = Literal["error", "warning", "info"]
RateSource = Literal["auto", "manual", "fallback"]


class FrozenModel(BaseModel):
    """Base model with shared configuration settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class TransactionType(str, Enum):
    """Direction of money movement for a row."""

    INCOME = "income"
    EXPENSE = "expense"


class RowValidationError(FrozenModel):
    """Field-level problem found while normalising a statement row."""

    field: str
    message: str
    severity: Severity = "error"


class RawRow(FrozenModel):
    """A statement row as handed over by a statement parser.

    Every value is the untouched cell text; the normaliser owns all parsing.
    """

    row_number: int = Field(ge=1)
    date: str = ""
    amount: str = ""
    description: str = ""
    currency: Optional[str] = None
    type: Optional[str] = None
    reference_number: str = ""


class NormalizationHint(FrozenModel):
    """Caller supplied parsing hints for a statement."""

    date_format: Optional[str] = None
    currency: str = "VND"


def _normalise_category(value: Any) -> Any:
    # 0 was historically both "unset" and an "Uncategorized" sentinel; unset wins.
    if value == 0:
        return None
    return value


class CandidateTransaction(FrozenModel):
    """Canonical view of a statement row pending an import decision.

    ``amount`` is a signed integer at a fixed x10000 scale; income is positive
    and expense negative. When the row was converted from another currency the
    pre-conversion values are kept in ``original_amount``/``original_currency``
    so conversion can always be re-derived from them.
    """

    row_number: int = Field(ge=1)
    date: int
    amount: int
    currency: str
    description: str
    original_description: str = ""
    type: TransactionType
    suggested_category_id: Optional[int] = None
    category_confidence: int = Field(default=0, ge=0, le=100)
    reference_number: str = ""
    validation_errors: list[RowValidationError] = Field(default_factory=list)
    original_amount: Optional[int] = None
    original_currency: Optional[str] = None
    exchange_rate: Optional[Decimal] = None
    exchange_rate_source: Optional[RateSource] = None
    exchange_rate_date: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _drop_derived_fields(cls, data: Any) -> Any:
        if isinstance(data, dict) and "is_valid" in data:
            data = {key: value for key, value in data.items() if key != "is_valid"}
        return data

    @field_validator("suggested_category_id", mode="before")
    @classmethod
    def _unset_zero_category(cls, value: Any) -> Any:
        return _normalise_category(value)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_valid(self) -> bool:
        return not any(err.severity == "error" for err in self.validation_errors)

    @property
    def is_converted(self) -> bool:
        return self.original_amount is not None


class Wallet(FrozenModel):
    """A ledger account holding a running balance in one currency."""

    id: int
    name: str
    currency: str
    balance: int = 0


class LedgerTransaction(FrozenModel):
    """A transaction already recorded on the ledger."""

    id: int
    wallet_id: int
    amount: int
    currency: str
    date: int
    note: str = ""
    category_id: Optional[int] = None
    reference_number: str = ""
    import_batch_id: Optional[str] = None
    original_amount: Optional[int] = None
    original_currency: Optional[str] = None
    exchange_rate: Optional[Decimal] = None
    exchange_rate_source: Optional[RateSource] = None
    exchange_rate_date: Optional[int] = None

    @field_validator("category_id", mode="before")
    @classmethod
    def _unset_zero_category(cls, value: Any) -> Any:
        return _normalise_category(value)


class NewLedgerTransaction(FrozenModel):
    """Values for a ledger row that does not exist yet."""

    wallet_id: int
    amount: int
    currency: str
    date: int
    note: str = ""
    category_id: Optional[int] = None
    reference_number: str = ""
    import_batch_id: Optional[str] = None
    original_amount: Optional[int] = None
    original_currency: Optional[str] = None
    exchange_rate: Optional[Decimal] = None
    exchange_rate_source: Optional[RateSource] = None
    exchange_rate_date: Optional[int] = None


__all__ = [
    "CandidateTransaction",
    "FrozenModel",
    "LedgerTransaction",
    "NewLedgerTransaction",
    "NormalizationHint",
    "RateSource",
    "RawRow",
    "RowValidationError",
    "Severity",
    "TransactionType",
    "Wallet",
]
