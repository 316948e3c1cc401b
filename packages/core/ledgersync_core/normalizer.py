"""Turn raw statement rows into canonical candidate transactions."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from ledgersync_schemas import (
    CandidateTransaction,
    NormalizationHint,
    RawRow,
    RowValidationError,
    TransactionType,
)

from .config import EngineSettings
from .money import parse_decimal, to_minor
from .suggest import CategorySuggester

Clock = Callable[[], datetime]

_DATE_FORMATS: Sequence[str] = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d/%m/%y",
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%d.%m.%Y",
)
_EPOCH_RE = re.compile(r"^\d{9,10}$")
_MULTI_SPACE_RE = re.compile(r"\s+")
_MIN_DESCRIPTION = 2
_MAX_DESCRIPTION = 500

_TYPE_ALIASES: dict[str, TransactionType] = {
    "income": TransactionType.INCOME,
    "credit": TransactionType.INCOME,
    "cr": TransactionType.INCOME,
    "deposit": TransactionType.INCOME,
    "expense": TransactionType.EXPENSE,
    "debit": TransactionType.EXPENSE,
    "dr": TransactionType.EXPENSE,
    "withdrawal": TransactionType.EXPENSE,
}

SUPPORTED_CURRENCIES: frozenset[str] = frozenset(
    {
        "VND", "USD", "EUR", "GBP", "JPY", "CNY", "KRW", "THB", "SGD", "MYR",
        "IDR", "PHP", "INR", "AUD", "CAD", "CHF", "SEK", "NOK", "DKK", "NZD",
        "HKD", "TWD", "ZAR", "BRL", "MXN", "RUB", "TRY", "AED", "SAR", "PLN",
        "CZK", "HUF", "ILS", "CLP", "ARS", "COP", "PEN", "EGP", "PKR", "BDT",
        "VEF", "NGN", "KES",
    }
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_date(value: str, preferred: Optional[str] = None) -> datetime:
    """Parse a statement date into an aware UTC datetime."""
    candidate = value.strip()
    if not candidate:
        raise ValueError("Date is empty")
    formats = [preferred, *_DATE_FORMATS] if preferred else list(_DATE_FORMATS)
    for fmt in formats:
        try:
            return datetime.strptime(candidate, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    if _EPOCH_RE.match(candidate):
        return datetime.fromtimestamp(int(candidate), tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError(f"Unsupported date format: {value}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalise_description(raw: str) -> str:
    return _MULTI_SPACE_RE.sub(" ", raw).strip()


class Normalizer:
    """Build :class:`CandidateTransaction` records from raw rows.

    Rows that cannot be resolved are returned with error-severity validation
    errors rather than dropped, so every input row is accounted for.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        *,
        clock: Clock = _utc_now,
        suggester: Optional[CategorySuggester] = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self._clock = clock
        self._suggester = suggester

    def normalize(
        self, rows: Sequence[RawRow], hint: Optional[NormalizationHint] = None
    ) -> list[CandidateTransaction]:
        hint = hint or NormalizationHint(currency=self.settings.default_wallet_currency)
        seen: set[int] = set()
        for row in rows:
            if row.row_number in seen:
                raise ValueError(f"Duplicate row number {row.row_number} in batch")
            seen.add(row.row_number)
        now = self._clock()
        return [self._normalize_row(row, hint, now) for row in rows]

    def _normalize_row(
        self, row: RawRow, hint: NormalizationHint, now: datetime
    ) -> CandidateTransaction:
        errors: list[RowValidationError] = []

        timestamp = 0
        try:
            parsed_date = parse_date(row.date, hint.date_format)
        except ValueError as exc:
            errors.append(RowValidationError(field="date", message=str(exc)))
        else:
            timestamp = int(parsed_date.timestamp())
            errors.extend(self._check_date(parsed_date, now))

        amount = 0
        try:
            amount = to_minor(parse_decimal(row.amount))
        except ValueError as exc:
            errors.append(RowValidationError(field="amount", message=str(exc)))

        currency = (row.currency or hint.currency or "").strip().upper()
        errors.extend(self._check_currency(currency))

        tx_type = self._resolve_type(row.type, amount)
        if tx_type is TransactionType.EXPENSE:
            amount = -abs(amount)
        else:
            amount = abs(amount)
        if not any(err.field == "amount" for err in errors):
            errors.extend(self._check_amount(amount, currency))

        description = normalise_description(row.description)
        errors.extend(self._check_description(description))

        candidate = CandidateTransaction(
            row_number=row.row_number,
            date=timestamp,
            amount=amount,
            currency=currency,
            description=description,
            original_description=row.description,
            type=tx_type,
            reference_number=row.reference_number.strip(),
            validation_errors=errors,
        )
        if self._suggester is not None:
            candidate = apply_suggestion(candidate, self._suggester)
        return candidate

    def _check_date(self, value: datetime, now: datetime) -> list[RowValidationError]:
        if value > now:
            return [RowValidationError(field="date", message="Date cannot be in the future")]
        threshold = now - timedelta(days=self.settings.old_date_threshold_days)
        if value < threshold:
            return [
                RowValidationError(
                    field="date",
                    message=(
                        f"Date is older than {self.settings.old_date_threshold_days} "
                        "days. Please verify."
                    ),
                    severity="warning",
                )
            ]
        return []

    def _check_amount(self, amount: int, currency: str) -> list[RowValidationError]:
        if amount == 0:
            return [RowValidationError(field="amount", message="Amount cannot be zero")]
        if abs(amount) > self.settings.large_amount_threshold:
            return [
                RowValidationError(
                    field="amount",
                    message=f"Amount is very large for {currency or 'this currency'}. Please verify.",
                    severity="warning",
                )
            ]
        return []

    @staticmethod
    def _check_currency(currency: str) -> list[RowValidationError]:
        if not currency:
            return [RowValidationError(field="currency", message="Currency is required")]
        if currency not in SUPPORTED_CURRENCIES:
            return [
                RowValidationError(
                    field="currency",
                    message=f"Unsupported currency code {currency!r}",
                )
            ]
        return []

    @staticmethod
    def _check_description(description: str) -> list[RowValidationError]:
        if len(description) < _MIN_DESCRIPTION:
            return [
                RowValidationError(
                    field="description",
                    message=f"Description must be at least {_MIN_DESCRIPTION} characters",
                )
            ]
        if len(description) > _MAX_DESCRIPTION:
            return [
                RowValidationError(
                    field="description",
                    message=f"Description must be at most {_MAX_DESCRIPTION} characters",
                )
            ]
        return []

    @staticmethod
    def _resolve_type(raw_type: Optional[str], amount: int) -> TransactionType:
        if raw_type:
            resolved = _TYPE_ALIASES.get(raw_type.strip().lower())
            if resolved is not None:
                return resolved
        return TransactionType.EXPENSE if amount < 0 else TransactionType.INCOME


def apply_suggestion(
    candidate: CandidateTransaction, suggester: CategorySuggester
) -> CandidateTransaction:
    """Fill in a category suggestion when the candidate has none."""
    if candidate.suggested_category_id is not None or not candidate.is_valid:
        return candidate
    suggestion = suggester.suggest(candidate)
    if suggestion is None:
        return candidate
    category_id, confidence = suggestion
    return candidate.model_copy(
        update={
            "suggested_category_id": category_id or None,
            "category_confidence": max(0, min(100, int(confidence))),
        }
    )


__all__ = [
    "Normalizer",
    "SUPPORTED_CURRENCIES",
    "apply_suggestion",
    "normalise_description",
    "parse_date",
]
