"""CSV statement parser and description helpers."""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Mapping, Optional, Protocol, Sequence, Union

from ledgersync_schemas import FrozenModel, RawRow

from .errors import ParseError

_NON_ALPHA_RE = re.compile(r"[^\w\s]", re.UNICODE)
_DIGITS_RE = re.compile(r"\d")
_MULTI_SPACE_RE = re.compile(r"\s+")
_DATE_TOKEN_RE = re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b")
_NUMERIC_TOKEN_RE = re.compile(r"\b\d+\b")

Source = Union[Path, str, io.TextIOBase]


def clean_description(raw: str) -> str:
    """Normalise descriptions for matching by stripping noise."""
    lowered = raw.lower()
    without_dates = _DATE_TOKEN_RE.sub(" ", lowered)
    without_numbers = _NUMERIC_TOKEN_RE.sub(" ", without_dates)
    alpha_only = _DIGITS_RE.sub(" ", _NON_ALPHA_RE.sub(" ", without_numbers))
    alpha_only = alpha_only.replace("_", " ")
    squashed = _MULTI_SPACE_RE.sub(" ", alpha_only)
    return squashed.strip()


class ColumnMapping(FrozenModel):
    """Explicit header names for a statement layout."""

    date: str
    amount: str
    description: str
    currency: Optional[str] = None
    type: Optional[str] = None
    reference_number: Optional[str] = None


class StatementParser(Protocol):
    """Turns a statement file into raw rows."""

    def parse(
        self, source: Source, mapping: Optional[ColumnMapping] = None
    ) -> list[RawRow]: ...


def _resolve_header(headers: Sequence[str], candidates: Sequence[str]) -> Optional[str]:
    for candidate in candidates:
        if candidate in headers:
            return candidate
    return None


@dataclass(slots=True)
class CsvStatementParser:
    """Parse delimited bank exports into :class:`RawRow` records.

    Cells are passed through untouched; an empty or malformed cell becomes an
    invalid candidate later instead of being dropped here.
    """

    date_headers: ClassVar[tuple[str, ...]] = ("date", "transaction date", "posting date")
    amount_headers: ClassVar[tuple[str, ...]] = ("amount", "value", "net amount")
    description_headers: ClassVar[tuple[str, ...]] = (
        "description",
        "details",
        "narrative",
        "memo",
    )
    currency_headers: ClassVar[tuple[str, ...]] = ("currency", "ccy")
    type_headers: ClassVar[tuple[str, ...]] = ("type", "direction")
    reference_headers: ClassVar[tuple[str, ...]] = ("reference", "ref", "reference number")

    delimiter: str = ","

    def parse(self, source: Source, mapping: Optional[ColumnMapping] = None) -> list[RawRow]:
        with _ensure_text_io(source) as handle:
            reader = csv.DictReader(handle, delimiter=self.delimiter)
            if reader.fieldnames is None:
                raise ParseError("Statement is empty")
            headers = [name.strip().lower() for name in reader.fieldnames if name]
            columns = self._columns(headers, mapping)
            results: list[RawRow] = []
            for idx, row in enumerate(reader, start=1):
                normalised_row: Mapping[str, str] = {
                    key.strip().lower(): (value or "").strip()
                    for key, value in row.items()
                    if key is not None
                }
                results.append(
                    RawRow(
                        row_number=idx,
                        date=normalised_row.get(columns["date"], ""),
                        amount=normalised_row.get(columns["amount"], ""),
                        description=normalised_row.get(columns["description"], ""),
                        currency=self._optional(normalised_row, columns.get("currency")),
                        type=self._optional(normalised_row, columns.get("type")),
                        reference_number=normalised_row.get(
                            columns.get("reference_number") or "", ""
                        ),
                    )
                )
        return results

    def _columns(
        self, headers: Sequence[str], mapping: Optional[ColumnMapping]
    ) -> dict[str, Optional[str]]:
        if mapping is not None:
            columns = {
                key: (value.strip().lower() if value else None)
                for key, value in mapping.model_dump().items()
            }
        else:
            columns = {
                "date": _resolve_header(headers, self.date_headers),
                "amount": _resolve_header(headers, self.amount_headers),
                "description": _resolve_header(headers, self.description_headers),
                "currency": _resolve_header(headers, self.currency_headers),
                "type": _resolve_header(headers, self.type_headers),
                "reference_number": _resolve_header(headers, self.reference_headers),
            }
        missing = [
            key
            for key in ("date", "amount", "description")
            if not columns[key] or columns[key] not in headers
        ]
        if missing:
            raise ParseError(f"Could not find column(s) {missing} in headers {list(headers)}")
        return columns

    @staticmethod
    def _optional(row: Mapping[str, str], column: Optional[str]) -> Optional[str]:
        if not column:
            return None
        return row.get(column) or None


class _TempFileWrapper:
    """Context manager ensuring all sources act like TextIO."""

    def __init__(self, handle: io.TextIOBase, close: bool) -> None:
        self._handle = handle
        self._close = close

    def __enter__(self) -> io.TextIOBase:
        return self._handle

    def __exit__(self, *_args: object) -> None:
        if self._close:
            self._handle.close()


def _ensure_text_io(source: Source) -> _TempFileWrapper:
    if isinstance(source, io.TextIOBase):
        return _TempFileWrapper(source, close=False)
    path = Path(source)
    if not path.exists():
        raise ParseError(f"Statement file not found: {path}")
    handle = path.open("r", encoding="utf-8-sig")
    return _TempFileWrapper(handle, close=True)


__all__ = [
    "ColumnMapping",
    "CsvStatementParser",
    "StatementParser",
    "clean_description",
]
